"""
MCP PDF Pages - remove pages from PDF files over the Model Context Protocol
"""

from .server import PDFPagesServer, create_server, get_version, main
from .page_removal import (
    ErrorKind,
    OperationOutcome,
    PageRemovalOperation,
    RemovalRequest,
    remove_pages,
)
from .security import SecurityPolicy

__version__ = get_version()

__all__ = [
    "PDFPagesServer",
    "create_server",
    "main",
    "ErrorKind",
    "OperationOutcome",
    "PageRemovalOperation",
    "RemovalRequest",
    "remove_pages",
    "SecurityPolicy",
    "__version__",
]
