"""Domain models for command jobs and their results."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..constants import COMMAND_PREFIX
from .protocols import CompletionHandler


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Outcome of one command, either a device status or a local error."""

    status: Optional[int] = None
    message: Optional[str] = None
    body: str = ""
    raw: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.status == 0

    @classmethod
    def failure(cls, error: str) -> "CommandResult":
        return cls(error=error)

    def as_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        return {
            "status": self.status,
            "message": self.message,
            "body": self.body,
            "raw": self.raw,
        }


@dataclass(slots=True, eq=False)
class CommandJob:
    """One outbound command plus its correlation id and completion hooks.

    A job settles exactly once: either ``complete`` delivers a result to the
    handler and the caller's future, or ``abandon`` drops it without calling
    the handler.
    """

    id: int
    body: str
    is_system: bool = False
    handler: Optional[CompletionHandler] = None
    future: Optional[asyncio.Future[CommandResult]] = None
    _settled: bool = field(default=False, init=False, repr=False)

    @property
    def framed(self) -> str:
        return f"{COMMAND_PREFIX}{self.id}{self.body}"

    @property
    def settled(self) -> bool:
        return self._settled

    def complete(self, result: CommandResult) -> None:
        if self._settled:
            raise RuntimeError(f"Gauger job {self.id} already settled")
        self._settled = True

        if self.future is not None and not self.future.done():
            self.future.set_result(result)
        if self.handler is not None:
            self.handler(result)

    def fail(self, exc: BaseException) -> None:
        """Settle the job by raising ``exc`` in the caller; the handler is skipped."""
        if self._settled:
            raise RuntimeError(f"Gauger job {self.id} already settled")
        self._settled = True

        if self.future is not None and not self.future.done():
            self.future.set_exception(exc)

    def abandon(self, exc: Optional[BaseException] = None) -> None:
        if self._settled:
            return
        if exc is None:
            self._settled = True
            return
        self.fail(exc)
