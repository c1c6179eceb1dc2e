"""
Error taxonomy for the standby status monitor

Node-level errors carry the node they came from and the operation that
failed, so a round can render a per-node error row instead of crashing.
"""
from typing import Optional


class StandbyStatusError(Exception):
    """Base class for all monitor errors"""


class NodeError(StandbyStatusError):
    """An error attributable to a single node"""

    def __init__(self, message: str, node: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.node = node
        self.operation = operation

    def __str__(self):
        if self.node and self.operation:
            return f"{self.node} ({self.operation}): {self.message}"
        if self.node:
            return f"{self.node}: {self.message}"
        return self.message


class NodeConnectionError(NodeError):
    """Could not reach, authenticate to, or query a node"""


class NodeDataError(NodeError):
    """A node answered, but with data that cannot be used"""


class MalformedPositionError(NodeDataError):
    """A WAL position token is not of the form <hex>/<hex>"""

    def __init__(self, token, node: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(f"malformed WAL position {token!r}", node=node, operation=operation)
        self.token = token


class MissingConfigurationError(NodeDataError):
    """The primary did not return its segment size / retention settings"""
