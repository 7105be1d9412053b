"""
Collaborator interfaces the loop needs from the outside world.

The loop never touches the filesystem or a package manager directly; it goes
through these interfaces so tests can substitute in-memory fakes.
Expected failures (missing target, edit conflict, install failure) are
returned as values, never raised.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

OK = "ok"
CONFLICT = "conflict"


@dataclass
class Manifest:
    """A dependency manifest as read from the workspace."""
    path: str
    content: str


@dataclass
class InstallResult:
    success: bool
    details: str = ""


class Workspace(ABC):
    """Holds source artifacts and applies edits."""

    @property
    @abstractmethod
    def root(self) -> Path:
        """Directory all targets are resolved against."""

    @property
    @abstractmethod
    def manifest_names(self) -> list[str]:
        """Workspace-relative paths that count as the dependency manifest."""

    @abstractmethod
    def resolve_target(self, ref: str, create: bool = False) -> Path | None:
        """
        Map a workspace-relative reference to a location.

        Returns None (NotFound) when the target does not exist and `create`
        is False, or when the reference escapes the workspace.
        """

    @abstractmethod
    def read_text(self, location: Path) -> str:
        """Current content of `location`; empty string when it does not exist."""

    @abstractmethod
    def digest(self, location: Path) -> str:
        """Content fingerprint used for optimistic conflict detection."""

    @abstractmethod
    def write_edit(self, location: Path, content: str, expected_digest: str | None = None) -> str:
        """
        Write `content` to `location` as one atomic mutation.

        Returns OK, or CONFLICT when the file no longer matches `expected_digest`.
        """

    @abstractmethod
    def read_manifest(self) -> Manifest | None:
        """Return the first manifest present, or None when absent."""

    def relative(self, location: Path) -> str:
        return location.relative_to(self.root).as_posix()


class Installer(ABC):
    """Manifest-driven dependency installer."""

    @abstractmethod
    async def install(self, manifest: Manifest) -> InstallResult:
        """Install dependencies declared by `manifest`. Never raises on failure."""
