"""
Dependency Gate: decides whether the installer must run before verification.

Install failures are not a separate failure channel: they come back as an
error diagnostic located at the manifest, which the remediation path handles
like any other.
"""

import logging
from collections.abc import Iterable

from orchestrator.models import DIAGNOSTICS, ERROR, DiagnosticEvent, Location
from workspace.base import Installer, Workspace

logger = logging.getLogger(__name__)

INSTALL_FAILURE_PREFIX = "Dependency install failed"


class DependencyGate:

    def __init__(self, workspace: Workspace, installer: Installer) -> None:
        self._workspace = workspace
        self._installer = installer

    def should_install(self, workspace_delta: Iterable[str]) -> bool:
        """True exactly when the delta touched a dependency manifest."""
        manifests = set(self._workspace.manifest_names)
        return any(path in manifests for path in workspace_delta)

    async def run(self, workspace_delta: Iterable[str]) -> DiagnosticEvent | None:
        """
        Install if needed.

        Returns None when nothing had to run or the install succeeded,
        otherwise the synthesized error diagnostic describing the failure.
        """
        delta = sorted(set(workspace_delta))
        if not self.should_install(delta):
            return None

        manifest = self._workspace.read_manifest()
        if manifest is None:
            # Manifest was touched but is gone now (e.g. deleted by an edit)
            touched = next(p for p in delta if p in self._workspace.manifest_names)
            return DiagnosticEvent(
                source=DIAGNOSTICS,
                severity=ERROR,
                message=f"{INSTALL_FAILURE_PREFIX}: manifest {touched} is absent",
                location=Location(touched),
            )

        result = await self._installer.install(manifest)
        if result.success:
            return None

        logger.warning("Installer failed for %s: %s", manifest.path, result.details)
        return DiagnosticEvent(
            source=DIAGNOSTICS,
            severity=ERROR,
            message=f"{INSTALL_FAILURE_PREFIX}: {result.details}",
            location=Location(manifest.path),
        )
