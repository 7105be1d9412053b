"""
Blueprint Store: durable single source of truth for the project.

The blueprint is one YAML document with exactly three sections:
  overview       free text, replaced on write
  feature_log    append-only history of completed requests
  current_plan   the in-flight request's steps

Design decisions:
  - Readers get copies of an immutable snapshot; a write builds a new
    snapshot and swaps it in with a single assignment, so no reader ever
    sees a half-updated plan
  - Every write hits disk before returning: temp file in the same directory,
    fsync, then os.replace over the previous version. A crash mid-write
    leaves the last good document in place
  - The in-memory snapshot is swapped only after the file is durable
"""

import logging
import os
import tempfile
from pathlib import Path

import yaml

from orchestrator.errors import UnknownStepError
from orchestrator.models import (
    BlueprintDocument,
    FeatureEntry,
    PlanStep,
    can_transition,
)

logger = logging.getLogger(__name__)


class BlueprintStore:
    """Persists the BlueprintDocument. Initialised lazily on first use."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._doc = self._load()

    @property
    def path(self) -> Path:
        return self._path

    # --- Readers ---

    def read_overview(self) -> str:
        return self._doc.overview

    def feature_log(self) -> list[FeatureEntry]:
        return self._doc.copy().feature_log

    def current_plan(self) -> list[PlanStep]:
        return self._doc.copy().current_plan

    def snapshot(self) -> BlueprintDocument:
        return self._doc.copy()

    # --- Writers ---

    def write_overview(self, text: str) -> None:
        doc = self._doc.copy()
        doc.overview = text
        self._commit(doc)

    def append_feature_entry(self, entry: FeatureEntry) -> bool:
        """
        Append to the feature log.

        Returns False (and writes nothing) when `entry` equals the last entry,
        so a repeated append after a re-read stays a no-op.
        """
        log = self._doc.feature_log
        if log and log[-1] == entry:
            logger.debug("Feature entry already recorded; skipping append")
            return False
        doc = self._doc.copy()
        doc.feature_log.append(FeatureEntry.from_dict(entry.to_dict()))
        self._commit(doc)
        return True

    def replace_current_plan(self, steps: list[PlanStep]) -> None:
        ids = [s.id for s in steps]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Plan step ids must be unique: {ids}")
        doc = self._doc.copy()
        doc.current_plan = [PlanStep.from_dict(s.to_dict()) for s in steps]
        self._commit(doc)

    def clear_current_plan(self) -> None:
        if not self._doc.current_plan:
            return
        self.replace_current_plan([])

    def update_step_status(self, step_id: int, status: str) -> PlanStep:
        doc = self._doc.copy()
        for step in doc.current_plan:
            if step.id == step_id:
                break
        else:
            raise UnknownStepError(step_id)

        if not can_transition(step.status, status):
            raise ValueError(
                f"Step {step_id} cannot move from {step.status} to {status}"
            )
        step.status = status
        self._commit(doc)
        return PlanStep.from_dict(step.to_dict())

    # --- Rendering ---

    def render_markdown(self) -> str:
        """Human readable view of the blueprint."""
        doc = self._doc
        lines = ["# Blueprint", "", "## Overview", "", doc.overview or "_No overview yet._", ""]
        lines += ["## Feature log", ""]
        if not doc.feature_log:
            lines.append("_Nothing completed yet._")
        for idx, entry in enumerate(doc.feature_log, start=1):
            lines.append(f"{idx}. {entry.summary}")
            lines.extend(f"   - {change}" for change in entry.changes)
        lines += ["", "## Current plan", ""]
        if not doc.current_plan:
            lines.append("_Idle._")
        for step in doc.current_plan:
            target = f" ({step.target})" if step.target else ""
            lines.append(f"- [{step.status}] {step.id}. {step.description}{target}")
        return "\n".join(lines) + "\n"

    # --- Persistence ---

    def _load(self) -> BlueprintDocument:
        if not self._path.exists():
            return BlueprintDocument()
        with open(self._path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        logger.info("Loaded blueprint from %s", self._path)
        return BlueprintDocument.from_dict(data)

    def _commit(self, doc: BlueprintDocument) -> None:
        self._write_atomic(doc)
        # Swap only after the document is durable
        self._doc = doc

    def _write_atomic(self, doc: BlueprintDocument) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        text = yaml.safe_dump(doc.to_dict(), sort_keys=False, allow_unicode=True)

        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self._path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
