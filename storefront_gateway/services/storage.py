from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class StagedFile:
    path: Path
    filename: str | None = None


class UploadStaging:
    """
    Local scratch area for multipart uploads.
    Files only live between request parsing and their single upload attempt.
    """

    def __init__(self, base_dir: str):
        self.base = Path(base_dir)
        self.base.mkdir(parents=True, exist_ok=True)

    def put_bytes(self, *, data: bytes, filename: str | None = None) -> StagedFile:
        # Client file names are never used on disk
        suffix = Path(filename).suffix if filename else ""
        path = self.base / f"upl_{uuid.uuid4().hex}{suffix}"
        path.write_bytes(data)
        return StagedFile(path=path, filename=filename)


def read_staged(staged: StagedFile) -> bytes:
    return staged.path.read_bytes()


def release(staged: StagedFile) -> None:
    """Delete the scratch file; already-gone is fine."""
    try:
        staged.path.unlink(missing_ok=True)
    except OSError:
        log.warning("could not remove staged upload %s", staged.path, exc_info=True)
