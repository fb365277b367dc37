"""Routing of lines received from the gauger."""

from __future__ import annotations

import logging
from typing import Optional

from ..constants import ACK_PREFIX
from ..core.models import CommandResult
from .codes import describe_status
from .session import GaugerSession
from .telemetry import TelemetryDecodeError, decode_telemetry

LOGGER = logging.getLogger(__name__)

_BODY_SEPARATORS = (" ", "|")


class AckFormatError(ValueError):
    """Raised when the result text of an acknowledgement cannot be parsed."""


def parse_ack_result(result_text: Optional[str]) -> CommandResult:
    """Parse ``<NN><body>`` into a status result.

    One leading non-digit delimiter before the status is skipped, as is one
    separator between the status and the body. ``raw`` keeps the text as
    received.
    """

    if result_text is None:
        raise AckFormatError("missing result text")

    text = result_text
    if text and not text[0].isdigit():
        text = text[1:]

    code = text[:2]
    if len(code) != 2 or not (code.isascii() and code.isdigit()):
        raise AckFormatError(f"invalid status code {code!r}")

    status = int(code)
    body = text[2:]
    if body[:1] in _BODY_SEPARATORS:
        body = body[1:]

    return CommandResult(
        status=status,
        message=describe_status(status),
        body=body,
        raw=result_text,
    )


class ResponseRouter:
    """Classifies device lines as acknowledgements or telemetry."""

    def __init__(self, session: GaugerSession) -> None:
        self._session = session

    def handle_line(self, line: str) -> None:
        line = line.rstrip("\r\n")
        if not line.strip():
            return

        try:
            if line.startswith(ACK_PREFIX):
                self._handle_ack(line)
            else:
                self._handle_telemetry(line)
        except Exception:
            LOGGER.exception("Exception while handling gauger line %r", line)

    def _handle_ack(self, line: str) -> None:
        parts = line.split(":", 2)
        id_text = parts[1] if len(parts) > 1 else ""
        result_text = parts[2] if len(parts) > 2 else None

        try:
            job_id = int(id_text)
        except ValueError:
            LOGGER.warning("Discarding gauger ACK without a job id: %r", line)
            return

        job = self._session.jobs.take(job_id)
        if job is None:
            LOGGER.info("Unknown gauger job ACKd (id=%d, result=%r)", job_id, result_text)
            return

        try:
            result = parse_ack_result(result_text)
        except AckFormatError as exc:
            LOGGER.warning("Malformed ACK for gauger job %d: %s", job_id, exc)
            result = CommandResult.failure(f"Malformed acknowledgement: {exc}")
        else:
            LOGGER.debug("Gauger ACK job %d: %r", job_id, result_text)

        job.complete(result)

    def _handle_telemetry(self, line: str) -> None:
        try:
            update = decode_telemetry(line)
        except TelemetryDecodeError as exc:
            LOGGER.warning("Failed to decode telemetry line %r: %s", line, exc)
            return

        if not update.recognized:
            LOGGER.info("Unknown module %s", update.module)
            return

        if update.module == "MOD":
            LOGGER.debug("Gauger modules: %s", line.partition(":")[2])
            return

        self._session.telemetry.apply(update)
