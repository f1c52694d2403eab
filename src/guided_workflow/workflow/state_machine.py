from __future__ import annotations

import copy
import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from guided_workflow.errors import IllegalTransitionError
from guided_workflow.workflow.expressions import ALWAYS, evaluate
from guided_workflow.workflow.guidance import Guidance, GuidanceResolver
from guided_workflow.workflow.models import (
    DONE_STEP_ID,
    AdvisoryRule,
    HistoryEntry,
    Question,
    SessionPhase,
    SessionState,
    Step,
    UiDescriptor,
    Workflow,
    WorkflowSummary,
)
from guided_workflow.workflow.rulesets import RulesetRegistry
from guided_workflow.workflow.summary import summarize

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[SessionPhase, set[SessionPhase]] = {
    SessionPhase.AWAITING_ANSWER: {
        SessionPhase.AWAITING_ANSWER,
        SessionPhase.COMPUTING,
        SessionPhase.TERMINATED,
        SessionPhase.DONE,
    },
    SessionPhase.COMPUTING: {
        SessionPhase.AWAITING_ANSWER,
        SessionPhase.COMPUTING,
        SessionPhase.DONE,
    },
    SessionPhase.TERMINATED: set(),
    SessionPhase.DONE: {SessionPhase.DONE},
}

_TRUE_WORDS = frozenset({"yes", "true", "1", "y"})
_FALSE_WORDS = frozenset({"no", "false", "0", "n"})

NUMBER_ERROR = "Please enter a number."
BOOLEAN_ERROR = "Please answer with yes or no."
FORMAT_ERROR = "Invalid format."
REQUIRED_ERROR = "An answer is required."

_MISSING = object()


@dataclass(frozen=True, slots=True)
class Answer:
    """An answer submitted for the pending question.

    ``Answer(None)`` is an explicit empty answer, distinct from submitting nothing.
    """

    value: Any


@dataclass(frozen=True, slots=True)
class AdvanceResult:
    state: SessionState
    phase: SessionPhase
    ui: UiDescriptor
    citations: list[str] = field(default_factory=list)
    summary: WorkflowSummary | None = None
    advice: list[str] = field(default_factory=list)


def _enter(state: SessionState, to: SessionPhase) -> None:
    if to not in ALLOWED_TRANSITIONS[state.phase]:
        raise IllegalTransitionError(f"Illegal transition: {state.phase.value} -> {to.value}")
    state.phase = to


def is_answered(answers: Mapping[str, Any], question_id: str) -> bool:
    return question_id in answers and answers[question_id] != ""


def is_required(question: Question, answers: Mapping[str, Any]) -> bool:
    if question.required:
        return True
    return bool(question.required_if) and evaluate(question.required_if or "", answers)


def next_question(step: Step, answers: Mapping[str, Any]) -> Question | None:
    """The first required-and-unanswered question, else the first unanswered one.

    Derived questions are never asked. A question skipped while optional is
    asked again once its ``required_if`` condition holds.
    """

    askable = [q for q in step.ask if not q.is_derived]
    for q in askable:
        if is_required(q, answers) and answers.get(q.id) in (None, ""):
            return q
    for q in askable:
        if not is_answered(answers, q.id):
            return q
    return None


def resolve_path(computed: Mapping[str, Any], path: str) -> Any:
    value: Any = computed
    for key in path.split("."):
        if isinstance(value, Mapping) and key in value:
            value = value[key]
        else:
            return _MISSING
    return value


def derive_fields(step: Step, state: SessionState) -> None:
    for q in step.ask:
        if not q.derive_from:
            continue
        value = resolve_path(state.computed, q.derive_from)
        if value is not _MISSING:
            state.answers[q.id] = copy.deepcopy(value)


def _raw_text(raw: Any) -> str:
    if isinstance(raw, bool):
        return "true" if raw else "false"
    return str(raw)


def _parse_number(raw: Any) -> int | float | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int | float):
        number = float(raw)
    else:
        try:
            number = float(str(raw).strip())
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def _parse_boolean(raw: Any) -> bool | None:
    if isinstance(raw, bool):
        return raw
    text = _raw_text(raw).strip().lower()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    return None


def _split_choices(raw: Any) -> list[str]:
    if isinstance(raw, list | tuple):
        return [str(item).strip() for item in raw if str(item).strip()]
    return [part.strip() for part in str(raw).split(",") if part.strip()]


def normalize_answer(
    question: Question, raw: Any, *, required: bool
) -> tuple[Any, str | None]:
    """Validate and type-coerce a submitted answer.

    Returns ``(value, None)`` on success or ``(None, message)`` on failure.
    An empty answer to an optional question is recorded as ``None`` (skipped).
    """

    if question.type == "multi_select" and raw is not None:
        items = _split_choices(raw)
        empty = not items
    else:
        items = []
        empty = raw is None or (isinstance(raw, str) and not raw.strip())

    if empty:
        return (None, REQUIRED_ERROR) if required else (None, None)

    value: Any
    if question.type == "integer":
        value = _parse_number(raw)
        if value is None:
            return None, NUMBER_ERROR
    elif question.type == "boolean":
        value = _parse_boolean(raw)
        if value is None:
            return None, BOOLEAN_ERROR
    elif question.type == "single_select":
        value = _raw_text(raw).strip()
        if question.options and value not in question.options:
            return None, f"Please choose one of: {', '.join(question.options)}."
    elif question.type == "multi_select":
        invalid = [item for item in items if question.options and item not in question.options]
        if invalid:
            return None, f"Please choose from: {', '.join(question.options or ())}."
        value = ",".join(items)
    else:
        value = raw

    if question.pattern and not re.search(question.pattern, _raw_text(raw)):
        return None, FORMAT_ERROR
    return value, None


def _matching_advisory(step: Step, answers: Mapping[str, Any]) -> AdvisoryRule | None:
    for rule in step.actions_if:
        if evaluate(rule.when, answers):
            return rule
    return None


def _ruleset_inputs(inputs: Mapping[str, str] | None, answers: Mapping[str, Any]) -> dict[str, Any]:
    if inputs is None:
        return copy.deepcopy(dict(answers))
    return {param: copy.deepcopy(answers.get(answer_id)) for param, answer_id in inputs.items()}


def apply_computations(step: Step, state: SessionState, rulesets: RulesetRegistry) -> None:
    for directive in step.compute:
        state.computed[directive.output] = rulesets.run(
            directive.using, _ruleset_inputs(directive.inputs, state.answers)
        )


def resolve_transition(step: Step, answers: Mapping[str, Any]) -> str:
    for rule in step.next:
        if rule.when.strip() == ALWAYS or evaluate(rule.when, answers):
            return rule.goto
    return DONE_STEP_ID


def _resolve_guidance(guidance: GuidanceResolver | None, step: Step) -> Guidance:
    if guidance is None:
        return Guidance()
    return guidance.resolve(step)


def _ui(
    step: Step, question: Question | None, g: Guidance, *, error: str | None = None
) -> UiDescriptor:
    return UiDescriptor(
        step_id=step.id,
        title=step.title,
        question_id=question.id if question else None,
        question=question.label if question else None,
        question_type=question.type if question else None,
        help=g.help,
        choices=list(question.options) if question and question.options else None,
        error=error,
    )


def _require_step(workflow: Workflow, step_id: str) -> Step:
    step = workflow.find_step(step_id)
    if step is None:
        raise IllegalTransitionError(
            f"Session is at step {step_id!r} which workflow {workflow.id!r} does not define"
        )
    return step


def _finish(
    workflow: Workflow, state: SessionState, guidance: GuidanceResolver | None
) -> AdvanceResult:
    _enter(state, SessionPhase.DONE)
    done_step = workflow.find_step(DONE_STEP_ID)
    if done_step is not None:
        g = _resolve_guidance(guidance, done_step)
        ui = _ui(done_step, None, g)
    else:
        g = Guidance()
        ui = UiDescriptor(step_id=DONE_STEP_ID, title=workflow.title)
    return AdvanceResult(
        state=state,
        phase=SessionPhase.DONE,
        ui=ui,
        citations=list(g.citations),
        summary=summarize(workflow, state, DONE_STEP_ID),
    )


def advance(
    workflow: Workflow,
    state: SessionState,
    answer: Answer | None = None,
    *,
    rulesets: RulesetRegistry,
    guidance: GuidanceResolver | None = None,
) -> AdvanceResult:
    """Run one turn of the session.

    The caller's ``state`` is never mutated; the returned result carries an
    updated copy. Every call depends only on its arguments.

    Raises:
        IllegalTransitionError: If the session was terminated by an advisory rule.
    """

    if state.phase is SessionPhase.TERMINATED:
        raise IllegalTransitionError(
            "Session was terminated by an advisory rule; start a new session"
        )

    state = state.model_copy(deep=True)
    if state.current_step_id == DONE_STEP_ID:
        return _finish(workflow, state, guidance)

    step = _require_step(workflow, state.current_step_id)
    derive_fields(step, state)

    question = next_question(step, state.answers)
    if question is not None:
        if answer is not None:
            value, error = normalize_answer(
                question, answer.value, required=is_required(question, state.answers)
            )
            if error is not None:
                logger.info(
                    "Answer rejected",
                    extra={"step_id": step.id, "question_id": question.id, "error": error},
                )
                g = _resolve_guidance(guidance, step)
                _enter(state, SessionPhase.AWAITING_ANSWER)
                return AdvanceResult(
                    state=state,
                    phase=SessionPhase.AWAITING_ANSWER,
                    ui=_ui(step, question, g, error=error),
                    citations=list(g.citations),
                )

            state.answers[question.id] = value

            rule = _matching_advisory(step, state.answers)
            if rule is not None:
                logger.info(
                    "Session terminated by advisory rule",
                    extra={"step_id": step.id, "when": rule.when},
                )
                _enter(state, SessionPhase.TERMINATED)
                advice = list(rule.advise)
                return AdvanceResult(
                    state=state,
                    phase=SessionPhase.TERMINATED,
                    ui=UiDescriptor(step_id=step.id, title=step.title),
                    summary=summarize(
                        workflow, state, step.id, message=" ".join(advice) or None
                    ),
                    advice=advice,
                )
            answer = None

            question = next_question(step, state.answers)

        if question is not None:
            g = _resolve_guidance(guidance, step)
            _enter(state, SessionPhase.AWAITING_ANSWER)
            return AdvanceResult(
                state=state,
                phase=SessionPhase.AWAITING_ANSWER,
                ui=_ui(step, question, g),
                citations=list(g.citations),
            )

    if answer is not None:
        logger.debug("Ignoring answer for a step with nothing to ask", extra={"step_id": step.id})

    apply_computations(step, state, rulesets)
    goto = resolve_transition(step, state.answers)
    state.history.append(
        HistoryEntry(
            step=step.id,
            answers=copy.deepcopy(state.answers),
            computed=copy.deepcopy(state.computed),
        )
    )
    state.current_step_id = goto
    logger.info("Step completed", extra={"step_id": step.id, "goto": goto})

    if goto == DONE_STEP_ID:
        return _finish(workflow, state, guidance)

    next_step = _require_step(workflow, goto)
    nq = next_question(next_step, state.answers)
    g = _resolve_guidance(guidance, next_step)
    phase = SessionPhase.AWAITING_ANSWER if nq is not None else SessionPhase.COMPUTING
    _enter(state, phase)
    return AdvanceResult(
        state=state,
        phase=phase,
        ui=_ui(next_step, nq, g),
        citations=list(g.citations),
    )


def start_session(
    workflow: Workflow,
    *,
    rulesets: RulesetRegistry,
    guidance: GuidanceResolver | None = None,
) -> AdvanceResult:
    """Create a fresh session positioned at the first step."""

    return advance(
        workflow, SessionState.initial(workflow), rulesets=rulesets, guidance=guidance
    )


@dataclass(frozen=True, slots=True)
class WorkflowEngine:
    """Process-level bundle of the read-only collaborators.

    Holds no session state; every call is driven by the state passed in.
    """

    workflow: Workflow
    rulesets: RulesetRegistry
    guidance: GuidanceResolver | None = None

    def start_session(self) -> AdvanceResult:
        return start_session(self.workflow, rulesets=self.rulesets, guidance=self.guidance)

    def advance(self, state: SessionState, answer: Answer | None = None) -> AdvanceResult:
        return advance(
            self.workflow, state, answer, rulesets=self.rulesets, guidance=self.guidance
        )

    def close(self) -> None:
        if self.guidance is not None:
            self.guidance.close()
