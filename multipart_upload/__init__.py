"""Resumable chunked uploads on top of an S3-compatible object store."""

__version__ = "1.0.0"
