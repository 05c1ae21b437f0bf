"""Nominal identifier types and id generation for cadence entities."""

from __future__ import annotations

import re
import secrets
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Final, NewType

TenantId = NewType("TenantId", str)
RecoveryRunId = NewType("RecoveryRunId", str)
CadenceRunId = NewType("CadenceRunId", str)
CadenceWindowId = NewType("CadenceWindowId", str)
CadenceSlotId = NewType("CadenceSlotId", str)
RunPlanId = NewType("RunPlanId", str)
CadencePolicyConstraintId = NewType("CadencePolicyConstraintId", str)
RecoveryCadenceId = NewType("RecoveryCadenceId", str)
CadenceCandidateHash = NewType("CadenceCandidateHash", str)
CadenceConstraintFingerprint = NewType("CadenceConstraintFingerprint", str)
CadenceEnvelopeId = NewType("CadenceEnvelopeId", str)
UserId = NewType("UserId", str)

SESSION_TOKEN_BYTES: Final[int] = 4
ENVELOPE_ID_PREFIX: Final[str] = "env"
CADENCE_ID_PREFIX: Final[str] = "cadence"

_SEPARATOR: Final[str] = "-"
_STAMP_FORMAT: Final[str] = "%Y%m%dT%H%M%S"
_PREFIX: Final[re.Pattern[str]] = re.compile(r"[a-z][a-z0-9_]*")
_TOKEN: Final[re.Pattern[str]] = re.compile(r"\d{8}T\d{6}-[0-9a-f]{8}")


class RevisionSequence:
    """Thread-safe monotonic counter used for candidate revisions."""

    __slots__ = ("_guard", "_last")

    def __init__(self, start: int = 0) -> None:
        if start < 0:
            raise ValueError("start must be >= 0")
        self._guard = threading.Lock()
        self._last = start

    def next(self) -> int:
        with self._guard:
            self._last += 1
            issued = self._last
        return issued

    @property
    def current(self) -> int:
        return self._last


_REVISIONS = RevisionSequence()


def next_revision() -> int:
    """Return the next process-wide candidate revision."""
    return _REVISIONS.next()


def generate_prefixed_id(
    prefix: str,
    *,
    now: datetime | None = None,
    token: Callable[[int], str] = secrets.token_hex,
) -> str:
    """
    Build ``<prefix>-<UTC yyyymmddThhmmss>-<8 hex chars>``.

    ``now`` and ``token`` can be injected to make the result deterministic.
    """
    _check_prefix(prefix)
    moment = (now or datetime.now(UTC)).astimezone(UTC)
    suffix = token(SESSION_TOKEN_BYTES).lower()
    identifier = _SEPARATOR.join((prefix, moment.strftime(_STAMP_FORMAT), suffix))
    validate_prefixed_id(identifier, prefix)
    return identifier


def validate_prefixed_id(id_str: str, expected_prefix: str) -> None:
    """Raise ``ValueError`` unless ``id_str`` was shaped by ``generate_prefixed_id``."""
    _check_prefix(expected_prefix)
    if not isinstance(id_str, str):
        raise ValueError(f"id must be a string, got {type(id_str).__name__}")
    head, sep, rest = id_str.partition(_SEPARATOR)
    if not sep or head != expected_prefix:
        raise ValueError(f"{id_str!r} does not carry the {expected_prefix!r} prefix")
    if not _TOKEN.fullmatch(rest):
        raise ValueError(f"{id_str!r} has a malformed timestamp or random suffix")
    try:
        datetime.strptime(rest.split(_SEPARATOR)[0], _STAMP_FORMAT)
    except ValueError as exc:
        raise ValueError(f"{id_str!r} has an impossible timestamp") from exc


def cadence_plan_id(revision: int) -> RecoveryCadenceId:
    return RecoveryCadenceId(f"{CADENCE_ID_PREFIX}-{revision}")


def cadence_window_id(run_id: str, index: int) -> CadenceWindowId:
    return CadenceWindowId(f"{run_id}-window-{index}")


def cadence_slot_id(run_id: str, step_id: str) -> CadenceSlotId:
    return CadenceSlotId(f"{run_id}-{step_id}")


def run_plan_id(run_id: str, session_id: str) -> RunPlanId:
    return RunPlanId(f"{run_id}-{session_id}")


def to_cadence_run_id(run_id: str) -> CadenceRunId:
    return CadenceRunId(f"{run_id}-cadence")


def _check_prefix(prefix: str) -> None:
    if not isinstance(prefix, str) or not _PREFIX.fullmatch(prefix):
        raise ValueError(f"id prefix must be lowercase alphanumeric, got {prefix!r}")


__all__ = [
    "ENVELOPE_ID_PREFIX",
    "SESSION_TOKEN_BYTES",
    "CadenceCandidateHash",
    "CadenceConstraintFingerprint",
    "CadenceEnvelopeId",
    "CadencePolicyConstraintId",
    "CadenceRunId",
    "CadenceSlotId",
    "CadenceWindowId",
    "RecoveryCadenceId",
    "RecoveryRunId",
    "RevisionSequence",
    "RunPlanId",
    "TenantId",
    "UserId",
    "cadence_plan_id",
    "cadence_slot_id",
    "cadence_window_id",
    "generate_prefixed_id",
    "next_revision",
    "run_plan_id",
    "to_cadence_run_id",
    "validate_prefixed_id",
]
