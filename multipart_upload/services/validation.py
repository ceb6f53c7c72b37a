"""
Input validation that runs before any remote call.
"""
import logging
from typing import List, Optional, Sequence

from ..core.config import Settings
from ..core.errors import ValidationError, PartValidationError
from ..schemas import PartETag

logger = logging.getLogger(__name__)


def validate_file_metadata(
    file_name: Optional[str],
    size_bytes: int,
    content_type: Optional[str],
    settings: Settings,
) -> None:
    """
    Check name, content type and size of a file about to be uploaded.

    Raises:
        ValidationError: If any check fails
    """
    if file_name is None or not file_name.strip():
        logger.warning("Upload rejected: file name is empty")
        raise ValidationError("File name cannot be empty")

    prefixes = settings.allowed_content_type_prefixes
    if content_type is None or not any(content_type.startswith(p) for p in prefixes):
        logger.warning(f"Upload rejected: invalid content type {content_type}")
        raise ValidationError(f"Content type {content_type} is not allowed. Allowed: {', '.join(prefixes)}")

    if size_bytes <= 0:
        raise ValidationError("Empty file provided")

    if size_bytes > settings.UPLOAD_MAX_FILE_SIZE:
        logger.warning(f"Upload rejected: file size {size_bytes} exceeds maximum {settings.UPLOAD_MAX_FILE_SIZE}")
        raise ValidationError(
            f"File too large: {size_bytes} bytes. Maximum: {settings.UPLOAD_MAX_FILE_SIZE} bytes"
        )


def require_session(session_id: Optional[str], object_key: Optional[str]) -> None:
    if session_id is None or not session_id.strip():
        raise ValidationError("Session ID cannot be empty")
    if object_key is None or not object_key.strip():
        raise ValidationError("Object key cannot be empty")


def validate_parts(parts: Optional[Sequence[PartETag]]) -> List[PartETag]:
    """
    Verify a completion part list and return it sorted by part number.

    Accepts parts in any order. Rejects an empty list, non-positive part
    numbers, empty ETags, duplicates, and any gap in 1..N.

    Raises:
        PartValidationError: Naming the offending condition
    """
    if not parts:
        raise PartValidationError("Parts list cannot be empty")

    seen = set()
    for part in parts:
        if part.part_number <= 0:
            raise PartValidationError(f"Part numbers must be positive, got: {part.part_number}")
        if part.etag is None or not part.etag.strip():
            raise PartValidationError(f"ETag cannot be empty for part: {part.part_number}")
        if part.part_number in seen:
            raise PartValidationError(f"Duplicate part number found: {part.part_number}")
        seen.add(part.part_number)

    ordered = sorted(parts, key=lambda p: p.part_number)
    for expected, part in enumerate(ordered, start=1):
        if part.part_number != expected:
            raise PartValidationError(
                f"Parts must be consecutive. Expected part {expected}, but found {part.part_number}"
            )

    logger.debug(f"Parts validation passed for {len(ordered)} parts")
    return ordered
