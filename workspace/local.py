"""
Filesystem workspace rooted at a project directory.

Every write goes to a temp file beside the target and is moved into place with
os.replace, so other readers of the project see either the old or the new
file and never a partial one.
"""

import hashlib
import logging
import os
import tempfile
from pathlib import Path

from .base import CONFLICT, OK, Manifest, Workspace

logger = logging.getLogger(__name__)

_MISSING_DIGEST = "absent"


class LocalWorkspace(Workspace):

    def __init__(self, root: str | Path, manifest_names: list[str] | None = None) -> None:
        self._root = Path(root).resolve()
        self._manifest_names = list(manifest_names or ["requirements.txt", "pyproject.toml"])

    @property
    def root(self) -> Path:
        return self._root

    @property
    def manifest_names(self) -> list[str]:
        return list(self._manifest_names)

    def resolve_target(self, ref: str, create: bool = False) -> Path | None:
        if not ref:
            return None
        location = (self._root / ref).resolve()
        if location != self._root and self._root not in location.parents:
            logger.warning("Target %r escapes workspace root %s", ref, self._root)
            return None
        if location.is_dir():
            return None
        if not location.exists() and not create:
            return None
        return location

    def read_text(self, location: Path) -> str:
        try:
            return location.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""

    def digest(self, location: Path) -> str:
        try:
            data = location.read_bytes()
        except FileNotFoundError:
            return _MISSING_DIGEST
        return hashlib.sha256(data).hexdigest()

    def write_edit(self, location: Path, content: str, expected_digest: str | None = None) -> str:
        if expected_digest is not None and self.digest(location) != expected_digest:
            logger.info("Conflict writing %s: content changed since it was read", location)
            return CONFLICT

        location.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{location.name}.", suffix=".tmp", dir=location.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(content)
            os.replace(tmp_path, location)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        return OK

    def read_manifest(self) -> Manifest | None:
        for name in self._manifest_names:
            path = self._root / name
            if path.is_file():
                return Manifest(path=name, content=path.read_text(encoding="utf-8"))
        return None
