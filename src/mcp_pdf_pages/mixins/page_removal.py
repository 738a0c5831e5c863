"""
Page Removal Mixin - delete pages from a PDF in place
Uses official fastmcp.contrib.mcp_mixin pattern
"""

import logging
from typing import Annotated, List, Optional

from fastmcp.contrib.mcp_mixin import MCPMixin, mcp_tool
from pydantic import Field

from ..page_removal import OperationOutcome, RemovalRequest, PageRemovalOperation
from ..security import SecurityPolicy

logger = logging.getLogger(__name__)


class PageRemovalMixin(MCPMixin):
    """
    Handles whole-page deletion from PDF documents.
    Uses the official FastMCP mixin pattern.
    """

    def __init__(self, policy: Optional[SecurityPolicy] = None):
        super().__init__()
        self.policy = policy or SecurityPolicy.from_env()

    # Argument names are part of the tool's wire contract, hence camelCase.
    @mcp_tool(
        name="remove-pdf-pages",
        description="Remove pages from a PDF"
    )
    async def remove_pdf_pages(
        self,
        pdfPath: Annotated[str, Field(description="The path to the PDF file")],
        pageNumbers: Annotated[List[int], Field(description="The page numbers to remove from the PDF (1-indexed)")],
        outputPath: Annotated[
            Optional[str],
            Field(description="Optional path for the edited PDF; the input file is overwritten when omitted")
        ] = None,
    ) -> str:
        """
        Remove pages from a PDF and report the result as text.

        Returns:
            A confirmation such as "Successfully removed 2 pages from the PDF."
            or an error message starting with "Error".
        """
        outcome = await self.remove_pages(
            RemovalRequest(pdf_path=pdfPath, page_numbers=pageNumbers, output_path=outputPath)
        )
        return outcome.message

    async def remove_pages(self, request: RemovalRequest) -> OperationOutcome:
        """Run a removal and return the structured outcome"""
        logger.info(f"Removing pages {request.page_numbers} from {request.pdf_path}")
        return await PageRemovalOperation(request, policy=self.policy).run()
