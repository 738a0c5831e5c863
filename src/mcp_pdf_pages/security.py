"""
Security utilities for MCP PDF Pages server

Provides the checks every tool call goes through before PyMuPDF touches a file:
- Input path validation and URL downloads
- Path traversal and allowed-path checks for network deployments
- Error message sanitization
- Temporary files for atomic writes
"""

import os
import re
import hashlib
import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

import httpx

logger = logging.getLogger(__name__)

# Security Configuration
MAX_PDF_SIZE = 100 * 1024 * 1024  # 100MB
DOWNLOAD_TIMEOUT = 30.0
DEFAULT_CACHE_DIR = "/tmp/mcp-pdf-processing"


def parse_allowed_paths(value: Optional[str]) -> Optional[List[Path]]:
    """Split a colon-separated MCP_PDF_ALLOWED_PATHS value; None means unrestricted"""
    if value is None:
        return None
    return [Path(p.strip()).expanduser().resolve() for p in value.split(':') if p.strip()]


def parse_allowed_domains(value: Optional[str]) -> List[str]:
    return [d.strip() for d in (value or '').split(',') if d.strip()]


@dataclass
class SecurityPolicy:
    """
    Limits applied to every file a tool call reads or writes.

    In stdio mode the caller is the local user, so local paths are not
    restricted. ``network_mode`` turns on traversal and allowed-path checks.
    """
    max_pdf_size: int = MAX_PDF_SIZE
    network_mode: bool = False
    allowed_paths: Optional[List[Path]] = None
    allowed_domains: List[str] = field(default_factory=list)
    cache_dir: Path = Path(DEFAULT_CACHE_DIR)

    @classmethod
    def from_env(cls) -> "SecurityPolicy":
        return cls(
            max_pdf_size=int(os.getenv("MAX_PDF_SIZE", str(MAX_PDF_SIZE))),
            network_mode=os.getenv('MCP_TRANSPORT', 'stdio') == 'http' or bool(os.getenv('MCP_PUBLIC_MODE')),
            allowed_paths=parse_allowed_paths(os.getenv('MCP_PDF_ALLOWED_PATHS')),
            allowed_domains=parse_allowed_domains(os.getenv('ALLOWED_DOMAINS')),
            cache_dir=Path(os.getenv("PDF_TEMP_DIR", DEFAULT_CACHE_DIR)),
        )


def is_url(pdf_path: str) -> bool:
    return pdf_path.startswith(('http://', 'https://'))


def _check_network_access(raw_path: str, resolved_path: Path, policy: SecurityPolicy, label: str):
    """Apply traversal and allowed-path rules when the server is network exposed"""
    if not policy.network_mode:
        logger.debug(f"STDIO mode detected - allowing local path: {resolved_path}")
        return

    if '../' in raw_path or '\\..\\' in raw_path:
        raise ValueError(f"Path traversal detected in {label}")

    if policy.allowed_paths is None:
        logger.warning(f"MCP_PDF_ALLOWED_PATHS not set - allowing access to any directory: {resolved_path}")
        return

    for allowed_path in policy.allowed_paths:
        try:
            resolved_path.relative_to(allowed_path)
            logger.debug(f"Path allowed under: {allowed_path}")
            return
        except ValueError:
            continue

    allowed = ":".join(str(p) for p in policy.allowed_paths)
    raise ValueError(f"{label.capitalize()} not allowed: {resolved_path}. Allowed paths: {allowed}")


async def validate_pdf_path(pdf_path: str, policy: Optional[SecurityPolicy] = None) -> Path:
    """
    Validate PDF path and handle URL downloads securely.

    Args:
        pdf_path: File path or URL to PDF
        policy: Limits to apply; read from the environment when omitted

    Returns:
        Validated Path object

    Raises:
        ValueError: If path is invalid or insecure
        FileNotFoundError: If file doesn't exist
    """
    policy = policy or SecurityPolicy.from_env()

    if not pdf_path:
        raise ValueError("PDF path cannot be empty")

    if is_url(pdf_path):
        return await _download_url_safely(pdf_path, policy)

    path = Path(pdf_path).expanduser().resolve()
    _check_network_access(pdf_path, path, policy, "PDF path")

    if not path.exists():
        raise FileNotFoundError(f"PDF file not found: {path}")

    if not path.is_file():
        raise ValueError(f"Path is not a file: {path}")

    file_size = path.stat().st_size
    if file_size > policy.max_pdf_size:
        raise ValueError(
            f"PDF file too large: {file_size / (1024*1024):.1f}MB > {policy.max_pdf_size / (1024*1024)}MB"
        )

    # Basic PDF header validation
    try:
        with open(path, 'rb') as f:
            header = f.read(8)
    except OSError as e:
        raise ValueError(f"Cannot read PDF file: {e}")
    if not header.startswith(b'%PDF-'):
        raise ValueError("File does not appear to be a valid PDF")

    return path


async def _download_url_safely(url: str, policy: SecurityPolicy) -> Path:
    """
    Download PDF from URL with security checks.

    Args:
        url: URL to download from
        policy: Size limit, domain allowlist and cache directory

    Returns:
        Path to downloaded file in cache directory
    """
    parsed_url = urlparse(url)
    if parsed_url.scheme not in ['http', 'https']:
        raise ValueError(f"Unsupported URL scheme: {parsed_url.scheme}")

    if policy.allowed_domains and parsed_url.netloc not in policy.allowed_domains:
        raise ValueError(f"Domain not allowed: {parsed_url.netloc}")

    cache_dir = policy.cache_dir
    cache_dir.mkdir(exist_ok=True, parents=True, mode=0o700)

    url_hash = hashlib.md5(url.encode()).hexdigest()
    cached_file = cache_dir / f"downloaded_{url_hash}.pdf"

    if cached_file.exists():
        if cached_file.stat().st_size <= policy.max_pdf_size:
            logger.info(f"Using cached PDF: {cached_file}")
            return cached_file
        cached_file.unlink()  # Remove oversized cached file

    downloaded_size = 0
    try:
        async with httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT, follow_redirects=True) as client:
            async with client.stream('GET', url) as response:
                response.raise_for_status()

                content_type = response.headers.get('content-type', '')
                if 'application/pdf' not in content_type.lower():
                    logger.warning(f"Unexpected content type: {content_type}")

                with open(cached_file, 'wb') as f:
                    async for chunk in response.aiter_bytes(chunk_size=8192):
                        downloaded_size += len(chunk)
                        if downloaded_size > policy.max_pdf_size:
                            raise ValueError(f"Downloaded file too large: {downloaded_size / (1024*1024):.1f}MB")
                        f.write(chunk)
    except (httpx.HTTPError, OSError, ValueError) as e:
        if cached_file.exists():
            cached_file.unlink()
        raise ValueError(f"Failed to download PDF: {e}")

    cached_file.chmod(0o600)
    logger.info(f"Downloaded PDF: {downloaded_size / (1024*1024):.1f}MB to {cached_file}")
    return cached_file


def validate_output_path(path: str, policy: Optional[SecurityPolicy] = None) -> Path:
    """
    Validate and secure output paths.

    Args:
        path: Output path to validate
        policy: Limits to apply; read from the environment when omitted

    Returns:
        Validated Path object

    Raises:
        ValueError: If path is invalid or insecure
    """
    policy = policy or SecurityPolicy.from_env()

    if not path:
        raise ValueError("Output path cannot be empty")

    resolved_path = Path(path).expanduser().resolve()
    _check_network_access(path, resolved_path, policy, "output path")

    if resolved_path.is_dir():
        raise ValueError(f"Output path is a directory: {resolved_path}")
    if not resolved_path.parent.is_dir():
        raise ValueError(f"Output directory does not exist: {resolved_path.parent}")

    return resolved_path


def sanitize_error_message(error_msg: Optional[str]) -> str:
    """
    Sanitize error messages to prevent information disclosure.

    Args:
        error_msg: Raw error message

    Returns:
        Sanitized error message
    """
    if not error_msg:
        return "Unknown error occurred"

    patterns_to_remove = [
        r'/home/[^/\s]+',  # Home directory paths
        r'/tmp/[^/\s]+',   # Temp file paths
        r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}',  # Email addresses
        r'password[=:]\s*\S+',
        r'token[=:]\s*\S+',
    ]

    sanitized = error_msg
    for pattern in patterns_to_remove:
        sanitized = re.sub(pattern, '[REDACTED]', sanitized, flags=re.IGNORECASE)

    # Limit length to prevent verbose stack traces
    if len(sanitized) > 500:
        sanitized = sanitized[:500] + "... [truncated]"

    return sanitized


def create_sibling_temp_file(target: Path, prefix: str = '.mcp_pdf_') -> Path:
    """
    Create a temporary file next to ``target``.

    Living in the same directory keeps ``os.replace`` a same-filesystem rename.
    The file is created with owner-only permissions.
    """
    fd, temp_path = tempfile.mkstemp(suffix='.pdf', prefix=prefix, dir=target.parent)
    os.close(fd)
    return Path(temp_path)
