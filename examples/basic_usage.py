#!/usr/bin/env python3
"""Programmatic session example.

This drives the bundled battery export workflow without the CLI or REST API:

* load settings from `.env`
* build the engine (workflow + rulesets + optional guidance)
* feed a fixed list of answers and print each turn

The session state is a plain pydantic model; a host can persist it between
turns however it likes (the REST server writes one JSON file per session).
"""

from __future__ import annotations

import argparse
from typing import Sequence

from guided_workflow.config import WorkflowSettings
from guided_workflow.factory import create_engine, load_knowledge_base
from guided_workflow.logging import configure_logging
from guided_workflow.presentation import format_summary, format_turn
from guided_workflow.workflow.state_machine import Answer

AIR_SHIPMENT = [
    "air",
    "cells_or_batteries_alone",
    "",
    "yes",
    "STP-2024-001",
    "UN3480",
    "50",
    "3",
    "unknown",
    "yes",
    "yes",
    "",
]


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a scripted workflow session.")
    parser.add_argument(
        "--answers",
        default=None,
        help="Comma-separated answers (defaults to a complete air shipment)",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    answers = args.answers.split(",") if args.answers is not None else AIR_SHIPMENT

    settings = WorkflowSettings()
    configure_logging(settings.log_level)

    engine = create_engine(settings, knowledge_base=load_knowledge_base(settings))
    result = engine.start_session()

    for value in answers:
        print(format_turn(result.ui, citations=result.citations))
        print(f"> {value}\n")
        result = engine.advance(result.state, Answer(value))
        if result.summary is not None:
            break

    print(format_turn(result.ui, citations=result.citations))
    if result.summary is not None:
        print()
        print(format_summary(result.summary))
    print(f"\nPhase: {result.phase.value}, steps left behind: {len(result.state.history)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
