from __future__ import annotations

import re
from pathlib import Path
from typing import Protocol

"""Original-file storage for committed imports.

Storing the uploaded file is best-effort: the reconciler logs a failure here
and still reports the commit as successful.
"""

__all__ = [
    "FileStorage",
    "LocalFileStorage",
]

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


class FileStorage(Protocol):
    def store_original_file(self, revision_group_id: str, job_id: str, name: str, data: bytes) -> str: ...


class LocalFileStorage:
    """Writes files to ``{root}/{revision_group_id}/{job_id}/{name}``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def store_original_file(self, revision_group_id: str, job_id: str, name: str, data: bytes) -> str:
        safe_name = _UNSAFE.sub("_", Path(name).name) or "upload"
        relative = Path(revision_group_id) / job_id / safe_name
        target = self.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.exists():
            raise FileExistsError(f"import file already stored: {relative}")
        target.write_bytes(data)
        return relative.as_posix()
