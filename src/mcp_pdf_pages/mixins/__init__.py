"""
FastMCP mixins for PDF page tools

Each mixin uses the official fastmcp.contrib.mcp_mixin pattern and is registered
on the server by PDFPagesServer.
"""

from .page_removal import PageRemovalMixin

__all__ = [
    "PageRemovalMixin",
]
