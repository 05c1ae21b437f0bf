"""
``cadence`` command-line front end.

Commands read a candidate document (YAML or JSON), apply the effective
configuration, and either print a report or, with ``--json``, one line of
sorted, compact JSON. Exit codes: 0 accepted, 1 rejected, 2 bad config or input.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from cadence_engine.config.loader import ConfigLoadError, dump_effective_config, load_config
from cadence_engine.config.schema import LOG_LEVELS, ConfigValidationError
from cadence_engine.domain.ids import generate_prefixed_id
from cadence_engine.domain.models import PlanOutcome
from cadence_engine.observability.logging import (
    LoggingConfig,
    correlation_scope,
    setup_structured_logging,
    shutdown_logging,
)
from cadence_engine.planning.orchestrator import (
    OrchestrationMode,
    PlanRejectedError,
    create_cadence_orchestrator,
)
from cadence_engine.planning.planner import (
    CandidateSchemaError,
    envelope_for_cadence_plan,
    load_cadence_candidate,
)
from cadence_engine.planning.policy import CadencePolicyEngine, PolicyThresholds
from cadence_engine.ui.render import CLIRenderer, create_renderer

if TYPE_CHECKING:
    from cadence_engine.domain.models import CadencePlanCandidate, CadenceRunPlan

SESSION_ID_PREFIX = "session"

_USAGE_EXAMPLES = """\
examples:
  cadence plan candidate.yaml               build, register, and print a plan
  cadence plan candidate.json --json        same, as one line of JSON
  cadence validate candidate.yaml           exit 1 when policy rejects the candidate
  cadence recommend candidate.yaml          advisory hints only
  cadence config --coverage-floor 0.5       show the effective configuration
"""


class CLIError(Exception):
    """A user-facing failure that maps to a specific exit code."""

    def __init__(self, message: str, exit_code: int = 1) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


Handler = Callable[[argparse.Namespace], int]


@dataclass(frozen=True, slots=True)
class _Command:
    name: str
    summary: str
    handler: Handler
    reads_candidate: bool = True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cadence",
        description="Recovery cadence planning: turn candidate windows and slots into run plans.",
        epilog=_USAGE_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    shared = _shared_options()
    commands = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)
    for command in _COMMANDS:
        sub = commands.add_parser(command.name, parents=[shared], help=command.summary)
        if command.reads_candidate:
            sub.add_argument("candidate_path", metavar="CANDIDATE", help="YAML or JSON candidate file")
        sub.add_argument("--json", action="store_true", help="print one line of sorted JSON")
        sub.set_defaults(handler=command.handler)
        if command.name == "plan":
            sub.add_argument(
                "--mode",
                choices=[mode.value for mode in OrchestrationMode],
                default=OrchestrationMode.ADVISORY.value,
                help="orchestration mode recorded in the decision log (default: advisory)",
            )
            sub.add_argument(
                "--envelope",
                action="store_true",
                help="with --json, wrap the plan in a publishable envelope",
            )
    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse ``argv``, dispatch to the selected command, and return its exit code."""

    args = build_parser().parse_args(None if argv is None else list(argv))
    try:
        return int(args.handler(args))
    except CLIError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return exc.exit_code


def _shared_options() -> argparse.ArgumentParser:
    shared = argparse.ArgumentParser(add_help=False)
    shared.add_argument(
        "--config",
        dest="config_path",
        metavar="PATH",
        help="cadence TOML config (default: ./cadence.toml when present)",
    )
    shared.add_argument(
        "--coverage-floor",
        type=float,
        metavar="RATIO",
        help="override policy.coverage_floor",
    )
    shared.add_argument("--log-level", choices=LOG_LEVELS, help="override observability.log_level")
    shared.add_argument("-v", "--verbose", action="store_true", help="include hashes and fingerprints")
    shared.add_argument("--no-color", action="store_true", help="plain output (NO_COLOR is honored too)")
    return shared


def _plan(args: argparse.Namespace) -> int:
    config = _effective_config(args)
    candidate = _candidate(args)
    mode = OrchestrationMode(args.mode)
    session_id = generate_prefixed_id(SESSION_ID_PREFIX)

    plan: CadenceRunPlan | None = None
    rejection: PlanRejectedError | None = None
    handle = setup_structured_logging(LoggingConfig.from_config(config, session_id=session_id))
    try:
        with correlation_scope(session_id=session_id, run_id=str(candidate.profile.program_run)):
            try:
                plan = create_cadence_orchestrator(config).build_plan(candidate, mode, session_id)
            except PlanRejectedError as exc:
                rejection = exc
    finally:
        shutdown_logging(handle)

    if plan is None:
        reasons = list(rejection.reasons) if rejection is not None else []
        if args.json:
            _print_json({"command": "plan", "accepted": False, "reasons": reasons})
            return 1
        raise CLIError(str(rejection), exit_code=1) from rejection

    accepted = plan.outcome is PlanOutcome.READY
    if args.json:
        body = envelope_for_cadence_plan(plan) if args.envelope else plan
        _print_json({"command": "plan", "accepted": accepted, "plan": body.to_dict()})
    else:
        out = _renderer(args)
        out.kv("Candidate", args.candidate_path)
        out.kv("Mode", mode.value)
        out.plan(plan)
    return 0 if accepted else 1


def _validate(args: argparse.Namespace) -> int:
    engine = _policy(args)
    candidate = _candidate(args)
    evaluation = engine.evaluate(candidate)
    if args.json:
        _print_json(
            {
                "command": "validate",
                "evaluation": evaluation.to_dict(),
                "blocking_rules": list(engine.blocking_rules(candidate)),
            }
        )
    else:
        out = _renderer(args)
        out.kv("Candidate", args.candidate_path)
        out.kv("Revision", candidate.revision)
        out.evaluation(evaluation)
    return 0 if evaluation.ok else 1


def _recommend(args: argparse.Namespace) -> int:
    hints = _policy(args).recommend(_candidate(args))
    if args.json:
        _print_json({"command": "recommend", "recommendations": hints})
    else:
        _renderer(args).recommendations(hints)
    return 0


def _config(args: argparse.Namespace) -> int:
    config = _effective_config(args)
    if args.json:
        print(dump_effective_config({"command": "config", "config": config}))
        return 0
    out = _renderer(args)
    out.kv("Config file", args.config_path or "(default)")
    out.text(json.dumps(config, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


_COMMANDS: tuple[_Command, ...] = (
    _Command("plan", "build, validate, and register a plan from a candidate", _plan),
    _Command("validate", "evaluate a candidate against the policy rules", _validate),
    _Command("recommend", "show advisory hints for a candidate", _recommend),
    _Command("config", "show the effective configuration", _config, reads_candidate=False),
)


def _effective_config(args: argparse.Namespace) -> dict[str, Any]:
    overrides = {
        "policy.coverage_floor": args.coverage_floor,
        "observability.log_level": args.log_level,
    }
    try:
        return load_config(args.config_path, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _policy(args: argparse.Namespace) -> CadencePolicyEngine:
    return CadencePolicyEngine(PolicyThresholds.from_config(_effective_config(args)))


def _candidate(args: argparse.Namespace) -> CadencePlanCandidate:
    try:
        return load_cadence_candidate(args.candidate_path)
    except CandidateSchemaError as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=args.no_color, verbose=args.verbose)


def _print_json(payload: dict[str, object]) -> None:
    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


__all__ = ["SESSION_ID_PREFIX", "CLIError", "build_parser", "run_cli"]
