"""
Signal source interface shared by the diagnostics source and runtime console.

A verification pass calls begin_pass() once, then poll() repeatedly until the
reading is stable, then end_pass(). poll() returns only signals discovered
since the previous poll, in discovery order.
"""

from abc import ABC, abstractmethod
from typing import Any


class SignalSource(ABC):

    @property
    @abstractmethod
    def kind(self) -> str:
        """'diagnostics' or 'console': the DiagnosticEvent source it feeds."""

    async def begin_pass(self) -> None:
        """Start producing signals for a fresh verification pass."""

    @abstractmethod
    async def poll(self) -> list[Any]:
        """Drain raw signals discovered since the last poll."""

    async def end_pass(self) -> None:
        """Release anything started by begin_pass()."""
