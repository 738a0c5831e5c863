"""
Page removal pipeline

Loads a PDF with PyMuPDF, checks the requested 1-based page numbers against the
document's page count, deletes the pages highest first and writes the result
back atomically. Each step returns a StepResult instead of raising, and the
first failing step ends the run.
"""

import io
import os
import stat
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

import fitz  # PyMuPDF
import pypdf
from pydantic import BaseModel, Field

from .security import (
    SecurityPolicy,
    create_sibling_temp_file,
    is_url,
    sanitize_error_message,
    validate_output_path,
    validate_pdf_path,
)

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    LOAD = "load"
    VALIDATION = "validation"
    MUTATION = "mutation"
    PERSISTENCE = "persistence"


class RemovalRequest(BaseModel):
    """A single remove-pages call"""
    pdf_path: str = Field(description="Path or URL of the PDF to edit")
    page_numbers: List[int] = Field(default_factory=list, description="1-based page numbers to remove")
    output_path: Optional[str] = Field(default=None, description="Write here instead of overwriting pdf_path")


class OperationOutcome(BaseModel):
    """Result of one removal run; ``message`` is what the client sees"""
    success: bool
    message: str
    pages_removed: int = 0
    page_count: Optional[int] = None
    remaining_pages: Optional[int] = None
    error_kind: Optional[ErrorKind] = None
    invalid_pages: List[int] = Field(default_factory=list)
    output_path: Optional[str] = None


@dataclass
class PipelineError:
    kind: ErrorKind
    message: str
    invalid_pages: Optional[List[int]] = None
    page_count: Optional[int] = None


@dataclass
class StepResult:
    value: Any = None
    error: Optional[PipelineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ValidationResult:
    page_count: int
    invalid_pages: List[int]

    @property
    def valid(self) -> bool:
        return not self.invalid_pages


def validate_page_numbers(page_numbers: List[int], page_count: int) -> ValidationResult:
    """Collect every page number outside ``[1, page_count]``, each reported once in input order."""
    invalid = [n for n in dict.fromkeys(page_numbers) if n < 1 or n > page_count]
    return ValidationResult(page_count=page_count, invalid_pages=invalid)


def removal_order(page_numbers: List[int]) -> List[int]:
    """
    Distinct page numbers, highest first.

    Deleting a page shifts every later page down by one index, so working from
    the end keeps each remaining target at its original position. Duplicates
    collapse to a single deletion.
    """
    return sorted(set(page_numbers), reverse=True)


def success_message(pages_removed: int) -> str:
    return f"Successfully removed {pages_removed} pages from the PDF."


def invalid_pages_message(invalid_pages: List[int], page_count: int) -> str:
    listed = ", ".join(str(n) for n in invalid_pages)
    return f"Error: Invalid page numbers: {listed}. The document has {page_count} pages."


def processing_error_message(error: str) -> str:
    return f"Error processing PDF: {error}"


def empty_pdf_bytes() -> bytes:
    """A valid PDF with no pages; PyMuPDF refuses to save one, pypdf does not."""
    buffer = io.BytesIO()
    pypdf.PdfWriter().write(buffer)
    return buffer.getvalue()


def write_atomically(target: Path, data: bytes) -> None:
    """Replace ``target`` with ``data`` so readers never observe a partial file."""
    temp_file = create_sibling_temp_file(target)
    try:
        with open(temp_file, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        mode = stat.S_IMODE(target.stat().st_mode) if target.exists() else 0o644
        os.chmod(temp_file, mode)
        os.replace(temp_file, target)
    except BaseException:
        temp_file.unlink(missing_ok=True)
        raise


class PageRemovalOperation:
    """
    Removes a set of pages from one PDF.

    Steps: resolve target, load, validate, order, delete, persist. The PyMuPDF
    document is owned by one run and closed on every exit path.
    """

    def __init__(self, request: RemovalRequest, policy: Optional[SecurityPolicy] = None):
        self.request = request
        self.policy = policy or SecurityPolicy.from_env()
        self.source_path: Optional[Path] = None

    async def run(self) -> OperationOutcome:
        target = self._resolve_target()
        if not target.ok:
            return self._failure(target.error)

        loaded = await self._load()
        if not loaded.ok:
            return self._failure(loaded.error)

        doc = loaded.value
        try:
            validated = self._validate(doc)
            if not validated.ok:
                return self._failure(validated.error)
            page_count = validated.value.page_count

            order = removal_order(self.request.page_numbers)
            # With a separate output path the copy is still written.
            if not order and target.value is None:
                logger.info("No pages requested for removal; leaving PDF untouched")
                return OperationOutcome(
                    success=True,
                    message=success_message(0),
                    page_count=page_count,
                    remaining_pages=page_count,
                )

            deleted = self._delete(doc, order)
            if not deleted.ok:
                return self._failure(deleted.error, page_count)

            persisted = self._persist(doc, target.value)
            if not persisted.ok:
                return self._failure(persisted.error, page_count)

            logger.info(f"Removed {len(order)} of {page_count} pages, wrote {persisted.value}")
            return OperationOutcome(
                success=True,
                message=success_message(len(order)),
                pages_removed=len(order),
                page_count=page_count,
                remaining_pages=doc.page_count,
                output_path=str(persisted.value),
            )
        finally:
            doc.close()

    def _resolve_target(self) -> StepResult:
        if self.request.output_path:
            try:
                return StepResult(value=validate_output_path(self.request.output_path, self.policy))
            except ValueError as e:
                return StepResult(error=PipelineError(ErrorKind.LOAD, str(e)))

        if is_url(self.request.pdf_path):
            return StepResult(error=PipelineError(
                ErrorKind.LOAD, "An output path is required when the PDF is fetched from a URL"
            ))
        # The source path itself is checked by the load step.
        return StepResult(value=None)

    async def _load(self) -> StepResult:
        try:
            source = await validate_pdf_path(self.request.pdf_path, self.policy)
            self.source_path = source
            data = source.read_bytes()
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            return StepResult(error=PipelineError(ErrorKind.LOAD, str(e)))

        if doc.needs_pass:
            doc.close()
            return StepResult(error=PipelineError(ErrorKind.LOAD, "PDF is encrypted and requires a password"))

        logger.debug(f"Loaded {source} ({doc.page_count} pages)")
        return StepResult(value=doc)

    def _validate(self, doc: fitz.Document) -> StepResult:
        result = validate_page_numbers(self.request.page_numbers, doc.page_count)
        if not result.valid:
            return StepResult(error=PipelineError(
                ErrorKind.VALIDATION,
                invalid_pages_message(result.invalid_pages, result.page_count),
                invalid_pages=result.invalid_pages,
                page_count=result.page_count,
            ))
        return StepResult(value=result)

    def _delete(self, doc: fitz.Document, order: List[int]) -> StepResult:
        for page_number in order:
            try:
                doc.delete_page(page_number - 1)
            except Exception as e:
                return StepResult(error=PipelineError(
                    ErrorKind.MUTATION, f"Failed to delete page {page_number}: {e}"
                ))
        return StepResult(value=len(order))

    def _persist(self, doc: fitz.Document, target: Optional[Path]) -> StepResult:
        destination = target or self.source_path
        try:
            if doc.page_count == 0:
                data = empty_pdf_bytes()
            else:
                data = doc.tobytes(garbage=4, deflate=True)
            write_atomically(destination, data)
        except Exception as e:
            return StepResult(error=PipelineError(ErrorKind.PERSISTENCE, str(e)))
        return StepResult(value=destination)

    def _failure(self, error: PipelineError, page_count: Optional[int] = None) -> OperationOutcome:
        if error.kind is ErrorKind.VALIDATION:
            logger.warning(f"Rejected removal from {self.request.pdf_path}: {error.message}")
            return OperationOutcome(
                success=False,
                message=invalid_pages_message(error.invalid_pages, error.page_count),
                error_kind=error.kind,
                invalid_pages=error.invalid_pages,
                page_count=error.page_count,
            )

        error_msg = sanitize_error_message(error.message)
        logger.error(f"PDF page removal failed ({error.kind.value}): {error_msg}")
        return OperationOutcome(
            success=False,
            message=processing_error_message(error_msg),
            error_kind=error.kind,
            page_count=page_count,
        )


async def remove_pages(
    pdf_path: str,
    page_numbers: List[int],
    output_path: Optional[str] = None,
    policy: Optional[SecurityPolicy] = None,
) -> OperationOutcome:
    """Convenience wrapper running one PageRemovalOperation"""
    request = RemovalRequest(pdf_path=pdf_path, page_numbers=page_numbers, output_path=output_path)
    return await PageRemovalOperation(request, policy=policy).run()
