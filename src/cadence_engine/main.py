"""Process entrypoint for ``cadence_engine``: runs the CLI and maps failures to exit codes."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING, Final

from cadence_engine.config.loader import ConfigLoadError
from cadence_engine.config.schema import ConfigValidationError
from cadence_engine.planning.orchestrator import PlanRejectedError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    SUCCESS = 0
    PLAN_REJECTED = 1
    CONFIG_ERROR = 2
    INTERNAL_ERROR = 4


_KNOWN_CODES: Final[frozenset[int]] = frozenset(ExitCode)

# First match wins while walking an exception and its causes.
_EXCEPTION_ROUTES: Final[tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...]] = (
    ((PlanRejectedError,), ExitCode.PLAN_REJECTED),
    ((ConfigLoadError, ConfigValidationError), ExitCode.CONFIG_ERROR),
    ((OSError, ValueError), ExitCode.CONFIG_ERROR),
)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run the ``cadence`` CLI and return a process exit code from :class:`ExitCode`."""

    try:
        from cadence_engine.ui.cli import run_cli

        return exit_code_for(run_cli(argv))
    except SystemExit as exc:
        # argparse exits on --help and on usage errors
        return exit_code_for(exc.code)
    except Exception as exc:  # noqa: BLE001 - process boundary
        routed = route_exception(exc)
        _report(exc, routed)
        return int(routed)


def exit_code_for(raw: object) -> int:
    """Clamp an arbitrary handler or ``SystemExit`` result onto :class:`ExitCode`."""

    if raw is None:
        return ExitCode.SUCCESS
    if isinstance(raw, int) and raw in _KNOWN_CODES:
        return raw
    if isinstance(raw, str) and raw.strip():
        print(raw.strip(), file=sys.stderr)
    return ExitCode.INTERNAL_ERROR


def route_exception(exc: BaseException) -> ExitCode:
    for item in _causes(exc):
        for types, code in _EXCEPTION_ROUTES:
            if isinstance(item, types):
                return code
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` then its explicit or implicit causes, stopping on cycles."""

    visited: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in visited:
        visited.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif current.__suppress_context__:
            current = None
        else:
            current = current.__context__


def _report(exc: BaseException, code: ExitCode) -> None:
    if code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(exc, file=sys.stderr)
        return
    print(str(exc).strip() or type(exc).__name__, file=sys.stderr)


__all__ = ["ExitCode", "cli_entrypoint", "exit_code_for", "route_exception"]
