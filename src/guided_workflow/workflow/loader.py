"""Load and validate workflow definitions.

Authoring defects are reported here, at startup, rather than to a user in the
middle of a session.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from guided_workflow.errors import ExpressionError, UnknownRulesetError, WorkflowConfigError
from guided_workflow.workflow.expressions import ALWAYS, comparisons, parse
from guided_workflow.workflow.models import CHOICE_TYPES, DONE_STEP_ID, Workflow
from guided_workflow.workflow.rulesets import RulesetRegistry

logger = logging.getLogger(__name__)


def parse_workflow(raw: Any, *, source: str = "<memory>") -> Workflow:
    if not isinstance(raw, dict):
        raise WorkflowConfigError(f"{source}: workflow document must be a mapping")
    try:
        return Workflow.model_validate(raw)
    except ValidationError as e:
        raise WorkflowConfigError(f"{source}: invalid workflow definition\n{e}") from e


def _check_expression(
    expression: str, *, location: str, boolean_ids: frozenset[str] = frozenset()
) -> None:
    try:
        node = parse(expression)
    except ExpressionError as e:
        raise ExpressionError(f"{location}: {e}") from e
    # Boolean answers are stored as true/false, so a word literal never matches.
    for term in comparisons(node):
        if term.name in boolean_ids and term.literal is not None and not isinstance(
            term.literal, bool
        ):
            raise ExpressionError(
                f"{location}: boolean question {term.name!r} is compared with "
                f"{term.literal!r}; use true or false"
            )


def validate_workflow(workflow: Workflow, *, rulesets: RulesetRegistry) -> None:
    """Raise :class:`WorkflowConfigError` for the first defect found."""

    if not workflow.steps:
        raise WorkflowConfigError("Workflow declares no steps")

    step_ids = [s.id for s in workflow.steps]
    duplicates = sorted({sid for sid in step_ids if step_ids.count(sid) > 1})
    if duplicates:
        raise WorkflowConfigError(f"Duplicate step ids: {', '.join(duplicates)}")
    if workflow.first_step_id == DONE_STEP_ID:
        raise WorkflowConfigError(f"The first step cannot be the terminal step {DONE_STEP_ID!r}")

    known_targets = set(step_ids) | {DONE_STEP_ID}
    boolean_ids = frozenset(q.id for s in workflow.steps for q in s.ask if q.type == "boolean")
    outputs = {d.output for s in workflow.steps for d in s.compute}
    can_terminate = False

    for step in workflow.steps:
        where = f"step:{step.id}"

        question_ids = [q.id for q in step.ask]
        dup_q = sorted({qid for qid in question_ids if question_ids.count(qid) > 1})
        if dup_q:
            raise WorkflowConfigError(f"{where}: duplicate question ids: {', '.join(dup_q)}")

        for q in step.ask:
            q_where = f"{where}/question:{q.id}"
            if q.type in CHOICE_TYPES and not q.options:
                raise WorkflowConfigError(f"{q_where}: {q.type} requires options")
            if q.pattern:
                try:
                    re.compile(q.pattern)
                except re.error as e:
                    raise WorkflowConfigError(f"{q_where}: invalid validate pattern: {e}") from e
            if q.required_if:
                _check_expression(
                    q.required_if, location=f"{q_where}/required_if", boolean_ids=boolean_ids
                )
            if q.derive_from and q.derive_from.split(".")[0] not in outputs:
                raise WorkflowConfigError(
                    f"{q_where}: derive_from {q.derive_from!r} does not name a compute output"
                )

        for directive in step.compute:
            if directive.using not in rulesets:
                raise UnknownRulesetError(
                    f"{where}/compute:{directive.output}: unknown ruleset {directive.using!r}"
                )

        for idx, advisory in enumerate(step.actions_if):
            _check_expression(
                advisory.when, location=f"{where}/actions_if[{idx}]", boolean_ids=boolean_ids
            )

        has_always = False
        for idx, rule in enumerate(step.next):
            if rule.goto not in known_targets:
                raise WorkflowConfigError(f"{where}/next[{idx}]: unknown goto {rule.goto!r}")
            if rule.when.strip() == ALWAYS:
                has_always = True
            else:
                _check_expression(
                    rule.when, location=f"{where}/next[{idx}]", boolean_ids=boolean_ids
                )
            if rule.goto == DONE_STEP_ID:
                can_terminate = True
        if step.id != DONE_STEP_ID and not has_always:
            can_terminate = True

    if not can_terminate:
        raise WorkflowConfigError(
            f"Workflow {workflow.id!r} never reaches the terminal step {DONE_STEP_ID!r}"
        )


def load_workflow(path: Path, *, rulesets: RulesetRegistry) -> Workflow:
    """Read a YAML workflow document and validate it against ``rulesets``."""

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise WorkflowConfigError(f"Cannot read workflow file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise WorkflowConfigError(f"{path}: invalid YAML: {e}") from e

    workflow = parse_workflow(raw, source=str(path))
    if not workflow.id:
        workflow = workflow.model_copy(update={"id": path.stem})
    validate_workflow(workflow, rulesets=rulesets)
    logger.info(
        "Workflow loaded",
        extra={
            "workflow_id": workflow.id,
            "version": workflow.version,
            "steps": len(workflow.steps),
            "path": str(path),
        },
    )
    return workflow
