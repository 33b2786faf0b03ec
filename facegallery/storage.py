"""On-disk storage for uploaded images.

Uploads are first written to ``<upload_dir>/.incoming`` and only moved to
their final name by ``StagedFile.commit()``. Leaving the ``stage()`` block
without committing removes the staged file.
"""
import logging
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)

INCOMING_DIR = ".incoming"

# Stored paths are "uploads/<filename>", the URL the web UI loads thumbnails from.
URL_PREFIX = "uploads"


class StagedFile:
    def __init__(self, temp_path: Path, final_path: Path):
        self.temp_path = temp_path
        self.final_path = final_path
        self.committed = False

    @property
    def filename(self) -> str:
        return self.final_path.name

    @property
    def stored_path(self) -> str:
        return f"{URL_PREFIX}/{self.filename}"

    def commit(self) -> Path:
        os.replace(self.temp_path, self.final_path)
        self.committed = True
        return self.final_path


class UploadStore:
    def __init__(self, root: str):
        self.root = Path(root).resolve()
        self.incoming = self.root / INCOMING_DIR

    def ensure_dirs(self):
        self.incoming.mkdir(parents=True, exist_ok=True)

    def purge_incoming(self) -> int:
        """Remove staged files left behind by an interrupted upload."""
        if not self.incoming.is_dir():
            return 0
        removed = 0
        for p in self.incoming.iterdir():
            if p.is_file() and self._unlink(p):
                removed += 1
        if removed:
            logger.info(f"Removed {removed} stale staged upload(s)")
        return removed

    @staticmethod
    def new_filename(original_name: str) -> str:
        ext = os.path.splitext(original_name or "")[1].lower()
        return f"{int(time.time() * 1000)}-{uuid4().hex[:8]}{ext}"

    @contextmanager
    def stage(self, data: bytes, original_name: str) -> Iterator[StagedFile]:
        self.ensure_dirs()
        name = self.new_filename(original_name)
        staged = StagedFile(self.incoming / name, self.root / name)
        with open(staged.temp_path, "wb") as f:
            f.write(data)
        try:
            yield staged
        finally:
            if not staged.committed:
                self._unlink(staged.temp_path)

    def resolve(self, path: str) -> Optional[Path]:
        """Absolute path of a stored file, or None if ``path`` escapes the upload dir."""
        if path.startswith(URL_PREFIX + "/"):
            path = path[len(URL_PREFIX) + 1:]
        full = (self.root / path).resolve()
        if full.parent != self.root:
            return None
        return full

    def exists(self, path: str) -> bool:
        full = self.resolve(path)
        return full is not None and full.is_file()

    def remove(self, path: str) -> bool:
        full = self.resolve(path)
        if full is None:
            return False
        return self._unlink(full)

    @staticmethod
    def _unlink(p: Path) -> bool:
        try:
            p.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Could not remove {p}: {e}")
            return False
