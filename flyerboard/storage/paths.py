"""
Path generation for raw upload storage.
All paths are relative to ARTIFACT_ROOT.
"""

import hashlib
from pathlib import Path


def image_hash(file_bytes: bytes) -> str:
    """SHA-256 hash of file content."""
    return hashlib.sha256(file_bytes).hexdigest()


def raw_image_path(submission_id: str, extension: str) -> str:
    """Path for the original uploaded photo. The client's filename is never used."""
    return f"{submission_id}/raw/original.{extension}"


def ensure_parent_dirs(artifact_root: str, relative_path: str) -> Path:
    """Create parent directories and return the full absolute path."""
    full_path = Path(artifact_root) / relative_path
    full_path.parent.mkdir(parents=True, exist_ok=True)
    return full_path
