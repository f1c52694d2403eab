"""CLI entrypoint for the workflow interpreter."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import TextIO

from pydantic import ValidationError

from guided_workflow import __version__
from guided_workflow.config import WorkflowSettings
from guided_workflow.errors import IllegalTransitionError, WorkflowConfigError
from guided_workflow.factory import create_engine, load_knowledge_base
from guided_workflow.logging import configure_logging
from guided_workflow.presentation import format_summary, format_turn
from guided_workflow.workflow.loader import load_workflow
from guided_workflow.workflow.models import SessionPhase
from guided_workflow.workflow.rulesets import default_rulesets
from guided_workflow.workflow.state_machine import AdvanceResult, Answer, WorkflowEngine

logger = logging.getLogger(__name__)

QUIT_COMMANDS = frozenset({":q", ":quit", ":exit"})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="guided-workflow",
        description="Declarative question/answer workflow interpreter",
    )
    parser.add_argument("--version", action="version", version=f"guided-workflow {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Load and validate a workflow definition")
    validate.add_argument(
        "--workflow",
        default=None,
        help="Path to the workflow YAML (defaults to WORKFLOW_PATH)",
    )

    run = subparsers.add_parser("run", help="Walk through a workflow interactively")
    run.add_argument(
        "--workflow",
        default=None,
        help="Path to the workflow YAML (defaults to WORKFLOW_PATH)",
    )

    serve = subparsers.add_parser("serve", help="Serve the REST API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    serve.add_argument("--port", type=int, default=8000, help="Port to bind")

    return parser


def _resolve_choice(raw: str, choices: list[str] | None) -> str:
    """Allow picking a choice by its 1-based number."""

    text = raw.strip()
    if choices and text.isdigit():
        idx = int(text)
        if 1 <= idx <= len(choices):
            return choices[idx - 1]
    return text


def run_interactive(
    engine: WorkflowEngine,
    *,
    input_fn: Callable[[str], str] = input,
    out: TextIO = sys.stdout,
) -> int:
    """Drive one session in the terminal.

    Exit codes: 0 completed, 4 terminated by an advisory, 5 aborted by the user.
    """

    result: AdvanceResult = engine.start_session()
    print(f"Starting workflow: {engine.workflow.title}", file=out)
    # A cycle of question-less steps would never reach a user prompt.
    max_unattended = len(engine.workflow.steps) + 1

    while True:
        unattended = 0
        while result.phase is SessionPhase.COMPUTING:
            unattended += 1
            if unattended > max_unattended:
                print("Workflow loops without asking anything; aborting.", file=out)
                return 1
            result = engine.advance(result.state)

        print("", file=out)
        print(format_turn(result.ui, citations=result.citations), file=out)
        for line in result.advice:
            print(f"- {line}", file=out)

        if result.summary is not None:
            print("", file=out)
            print(format_summary(result.summary), file=out)
            return 0 if result.phase is SessionPhase.DONE else 4

        try:
            raw = input_fn("> ")
        except EOFError:
            print("", file=out)
            return 5
        if raw.strip().lower() in QUIT_COMMANDS:
            return 5

        value = _resolve_choice(raw, result.ui.choices)
        result = engine.advance(result.state, Answer(value))


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = WorkflowSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    if getattr(args, "workflow", None):
        settings = settings.model_copy(update={"workflow_path": Path(args.workflow)})

    try:
        if args.command == "validate":
            workflow = load_workflow(settings.workflow_path, rulesets=default_rulesets())
            print(
                f"Workflow OK: {workflow.id} v{workflow.version} "
                f"({len(workflow.steps)} steps) - {workflow.title}"
            )
            return 0

        if args.command == "run":
            engine = create_engine(settings, knowledge_base=load_knowledge_base(settings))
            try:
                return run_interactive(engine)
            finally:
                engine.close()

        if args.command == "serve":
            import uvicorn

            from guided_workflow.server.app import create_app

            uvicorn.run(create_app(settings), host=args.host, port=args.port)
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except WorkflowConfigError as e:
        logger.error("Workflow configuration error", extra={"error": str(e)})
        print(f"Workflow configuration error: {e}", file=sys.stderr)
        return 2

    except IllegalTransitionError as e:
        print(str(e), file=sys.stderr)
        return 3

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
