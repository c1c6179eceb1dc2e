"""
Centralized database configuration and monitoring parameters
Connection targets are given as libpq DSNs; anything a DSN leaves out
falls back to the environment
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
import psycopg2
from psycopg2.extensions import parse_dsn

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)

# Connection keywords DatabaseConfig keeps as fields; the rest of a DSN is passed through
_CONFIG_KEYWORDS = ("host", "port", "dbname", "user", "password")


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration"""
    host: str
    port: int
    database: str
    user: str
    password: str
    connect_timeout: int = 10
    options: dict = field(default_factory=dict)

    @property
    def connection_string(self) -> str:
        """Get PostgreSQL connection string"""
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"

    @property
    def address(self) -> str:
        """host:port label used on the dashboard"""
        return f"{self.host}:{self.port}"

    def connect_kwargs(self) -> dict:
        """Keyword arguments for psycopg2.connect"""
        kwargs = dict(self.options)
        kwargs.update(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password,
            connect_timeout=self.connect_timeout,
        )
        return kwargs

    @classmethod
    def from_dsn(cls, dsn: str, defaults: Optional["DatabaseConfig"] = None) -> "DatabaseConfig":
        """
        Build a config from a key/value DSN or a postgresql:// URI

        Args:
            dsn: libpq connection string, e.g. "host=db1 port=5433"
            defaults: config supplying whatever the DSN omits

        Raises:
            ValueError: if the DSN cannot be parsed or the port is not numeric
        """
        defaults = defaults or DEFAULT_CONFIG
        try:
            params = parse_dsn(dsn)
        except psycopg2.ProgrammingError as e:
            raise ValueError(f"Invalid connection string {dsn!r}: {e}") from e

        port = params.get("port", defaults.port)
        try:
            port = int(port)
        except ValueError:
            raise ValueError(f"Invalid port {port!r} in connection string {dsn!r}")

        timeout = int(params.get("connect_timeout", defaults.connect_timeout))
        extra = {k: v for k, v in params.items() if k not in _CONFIG_KEYWORDS and k != "connect_timeout"}

        return cls(
            host=params.get("host", defaults.host),
            port=port,
            database=params.get("dbname", defaults.database),
            user=params.get("user", defaults.user),
            password=params.get("password", defaults.password),
            connect_timeout=timeout,
            options=extra,
        )


# Defaults for any node whose DSN leaves parameters out
DEFAULT_CONFIG = DatabaseConfig(
    host=os.getenv("PGHOST", "localhost"),
    port=int(os.getenv("PGPORT", "5432")),
    database=os.getenv("PGDATABASE", "postgres"),
    user=os.getenv("PGUSER", "postgres"),
    password=os.getenv("PGPASSWORD", ""),
    connect_timeout=int(os.getenv("CONNECT_TIMEOUT", "10")),
)

# Connection retry behaviour
CONNECT_RETRIES = int(os.getenv("CONNECT_RETRIES", "5"))
CONNECT_RETRY_DELAY_SECONDS = float(os.getenv("CONNECT_RETRY_DELAY", "2"))

# Monitoring loop
MONITORING_INTERVAL_SECONDS = float(os.getenv("MONITORING_INTERVAL", "5"))  # 5s default
ROUND_FAILURE_POLICY = os.getenv("ROUND_FAILURE_POLICY", "fatal")  # fatal | retry

# Segments addressable per WAL segment id in the slot formula (legacy 0xFF)
WAL_SEGMENTS_PER_ID = int(os.getenv("WAL_SEGMENTS_PER_ID", "255"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
