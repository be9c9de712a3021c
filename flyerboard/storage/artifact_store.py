"""
Artifact store for raw submission photos.
Local filesystem; the relative-path API keeps an object-store backend possible.
"""

import shutil
from pathlib import Path

import structlog

from flyerboard.storage.paths import ensure_parent_dirs

logger = structlog.get_logger(__name__)


class ArtifactStore:
    """
    Save and load submission artifacts.
    All paths are relative to the store root.
    """

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, relative_path: str) -> Path:
        full_path = (self.root / relative_path).resolve()
        if not full_path.is_relative_to(self.root.resolve()):
            raise ValueError(f"Path escapes artifact root: {relative_path}")
        return full_path

    def save_bytes(self, relative_path: str, data: bytes) -> str:
        """Save raw bytes. Returns the relative path."""
        self._resolve(relative_path)
        full_path = ensure_parent_dirs(str(self.root), relative_path)
        full_path.write_bytes(data)
        logger.info("artifact_saved", path=relative_path, size_bytes=len(data))
        return relative_path

    def load_bytes(self, relative_path: str) -> bytes:
        """Load raw bytes from storage."""
        full_path = self._resolve(relative_path)
        if not full_path.exists():
            raise FileNotFoundError(f"Artifact not found: {relative_path}")
        return full_path.read_bytes()

    def exists(self, relative_path: str) -> bool:
        return self._resolve(relative_path).exists()

    def delete_submission_artifacts(self, submission_id: str) -> int:
        """Delete all artifacts for a submission. Returns count deleted."""
        sub_dir = self._resolve(submission_id)
        if not sub_dir.exists():
            return 0
        count = sum(1 for p in sub_dir.rglob("*") if p.is_file())
        shutil.rmtree(sub_dir)
        logger.info("submission_artifacts_deleted", submission_id=submission_id, count=count)
        return count
