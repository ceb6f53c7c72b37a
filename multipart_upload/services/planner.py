"""
Chunk planning for multipart uploads.

S3 requires every part except the last to be at least 5 MiB, and no part
may exceed 5 GiB.
"""
import math
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

from ..core.errors import ConfigurationError

MIN_CHUNK_SIZE = 5 * 1024 * 1024  # 5MB
MAX_CHUNK_SIZE = 5 * 1024 * 1024 * 1024  # 5GB


@dataclass(frozen=True)
class ChunkPlan:
    """Part layout of one file: all parts are chunk_size except possibly the last."""
    file_size: int
    chunk_size: int
    part_count: int

    def part_range(self, part_number: int) -> Tuple[int, int]:
        """Return (offset, length) of a 1-based part."""
        if part_number < 1 or part_number > self.part_count:
            raise ValueError(f"Part number {part_number} outside 1..{self.part_count}")
        offset = (part_number - 1) * self.chunk_size
        return offset, min(self.chunk_size, self.file_size - offset)

    def ranges(self) -> Iterator[Tuple[int, int, int]]:
        """Yield (part_number, offset, length) for every part in order."""
        for part_number in range(1, self.part_count + 1):
            offset, length = self.part_range(part_number)
            yield part_number, offset, length


def plan(file_size: int, requested_chunk_size: Optional[int], default_chunk_size: int) -> ChunkPlan:
    """
    Compute the chunk layout for a file.

    Args:
        file_size: Total bytes
        requested_chunk_size: Caller's part size; the default is used when None or not positive
        default_chunk_size: Configured default part size

    Raises:
        ConfigurationError: If the chunk size is outside [5MB, 5GB]
    """
    chunk_size = requested_chunk_size if requested_chunk_size and requested_chunk_size > 0 else default_chunk_size

    if chunk_size < MIN_CHUNK_SIZE:
        raise ConfigurationError(f"Chunk size must be at least 5MB ({MIN_CHUNK_SIZE} bytes)")
    if chunk_size > MAX_CHUNK_SIZE:
        raise ConfigurationError(f"Chunk size cannot exceed 5GB ({MAX_CHUNK_SIZE} bytes)")
    if file_size < 0:
        raise ConfigurationError("File size cannot be negative")

    return ChunkPlan(
        file_size=file_size,
        chunk_size=chunk_size,
        part_count=math.ceil(file_size / chunk_size),
    )
