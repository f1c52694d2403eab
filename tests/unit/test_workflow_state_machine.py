"""Unit tests for the session state machine.

Each test drives `advance` with an explicit state and asserts on the returned
copy; the state passed in must never change.
"""

from __future__ import annotations

from typing import Any

import pytest

from guided_workflow.errors import IllegalTransitionError
from guided_workflow.workflow.loader import load_workflow, parse_workflow
from guided_workflow.workflow.models import SessionPhase, SessionState, Workflow
from guided_workflow.workflow.rulesets import RulesetRegistry
from guided_workflow.workflow.state_machine import (
    BOOLEAN_ERROR,
    FORMAT_ERROR,
    NUMBER_ERROR,
    REQUIRED_ERROR,
    AdvanceResult,
    Answer,
    WorkflowEngine,
    advance,
    derive_fields,
    is_required,
    next_question,
    normalize_answer,
    resolve_transition,
    start_session,
)


def _workflow(*steps: dict[str, Any]) -> Workflow:
    return parse_workflow({"id": "wf", "title": "Test workflow", "version": 1, "steps": list(steps)})


def _engine(workflow: Workflow, rulesets: RulesetRegistry) -> WorkflowEngine:
    return WorkflowEngine(workflow=workflow, rulesets=rulesets)


def _permit_workflow() -> Workflow:
    return _workflow(
        {
            "id": "basics",
            "title": "Basics",
            "ask": [{"id": "mode", "label": "Mode?", "type": "text", "required": True}],
            "next": [{"when": "always", "goto": "permit"}],
        },
        {
            "id": "permit",
            "title": "Permit",
            "ask": [
                {
                    "id": "has_permit",
                    "label": "Permit?",
                    "type": "single_select",
                    "options": ["yes", "no"],
                    "required": True,
                }
            ],
            "actions_if": [{"when": "has_permit==no", "advise": ["Get a permit first."]}],
            "next": [{"when": "always", "goto": "shipping"}],
        },
        {
            "id": "shipping",
            "title": "Shipping",
            "ask": [{"id": "carrier", "label": "Carrier?", "required": True}],
        },
    )


def test_no_input_returns_pending_required_question(rulesets: RulesetRegistry) -> None:
    wf = _workflow(
        {"id": "s1", "title": "One", "ask": [{"id": "q1", "label": "Q1?", "required": True}]}
    )

    first = start_session(wf, rulesets=rulesets)
    again = advance(wf, first.state, rulesets=rulesets)

    for result in (first, again):
        assert result.phase is SessionPhase.AWAITING_ANSWER
        assert result.ui.step_id == "s1"
        assert result.ui.question_id == "q1"
        assert result.ui.question == "Q1?"
        assert result.ui.error is None
        assert result.state.history == []
        assert result.state.answers == {}


def test_last_required_answer_without_matching_rule_goes_to_done(
    rulesets: RulesetRegistry,
) -> None:
    wf = _workflow(
        {
            "id": "s1",
            "title": "One",
            "ask": [{"id": "q1", "label": "Q1?", "required": True}],
            "next": [{"when": "q1==other", "goto": "s2"}],
        },
        {"id": "s2", "title": "Two", "ask": [{"id": "q2", "label": "Q2?", "required": True}]},
    )
    engine = _engine(wf, rulesets)

    result = engine.advance(engine.start_session().state, Answer("value"))

    assert result.phase is SessionPhase.DONE
    assert result.state.current_step_id == "done"
    assert result.state.answers == {"q1": "value"}
    assert [h.step for h in result.state.history] == ["s1"]
    assert result.summary is not None
    assert result.summary.completed is True
    assert [s.status for s in result.summary.steps] == ["completed", "completed"]
    # No declared `done` step: the workflow title is shown.
    assert result.ui.step_id == "done"
    assert result.ui.title == "Test workflow"


def test_required_if_blocks_only_when_condition_holds(rulesets: RulesetRegistry) -> None:
    wf = _workflow(
        {
            "id": "s1",
            "title": "One",
            "ask": [
                {"id": "a", "label": "A?", "type": "single_select", "options": ["yes", "no"]},
                {"id": "b", "label": "B?", "required_if": "a==yes"},
                {"id": "c", "label": "C?", "required": True},
            ],
        }
    )
    step = wf.steps[0]
    b = step.ask[1]

    assert is_required(b, {}) is False
    assert is_required(b, {"a": "no"}) is False
    assert is_required(b, {"a": "yes"}) is True

    # Required questions are asked first; `b` only jumps the queue when a==yes.
    assert next_question(step, {}).id == "c"
    assert next_question(step, {"a": "no"}).id == "c"
    assert next_question(step, {"a": "yes"}).id == "b"

    # Skipping `b` is accepted when it is optional.
    state = SessionState(current_step_id="s1", answers={"a": "no", "c": "x"})
    result = advance(wf, state, Answer(""), rulesets=rulesets)
    assert result.phase is SessionPhase.DONE
    assert result.state.answers["b"] is None

    # ... and rejected when it is required.
    state = SessionState(current_step_id="s1", answers={"a": "yes", "c": "x"})
    result = advance(wf, state, Answer(""), rulesets=rulesets)
    assert result.phase is SessionPhase.AWAITING_ANSWER
    assert result.ui.question_id == "b"
    assert result.ui.error == REQUIRED_ERROR
    assert "b" not in result.state.answers


def test_skipped_question_is_asked_again_once_it_becomes_required(
    rulesets: RulesetRegistry,
) -> None:
    wf = _workflow(
        {
            "id": "s",
            "title": "One",
            "ask": [
                {"id": "b", "label": "B?", "required_if": "a==yes"},
                {"id": "a", "label": "A?", "type": "single_select", "options": ["yes", "no"]},
            ],
        }
    )
    engine = _engine(wf, rulesets)

    result = engine.start_session()
    assert result.ui.question_id == "b"

    result = engine.advance(result.state, Answer(""))
    assert result.state.answers["b"] is None
    assert result.ui.question_id == "a"

    result = engine.advance(result.state, Answer("yes"))
    assert result.phase is SessionPhase.AWAITING_ANSWER
    assert (result.state.current_step_id, result.ui.question_id) == ("s", "b")

    result = engine.advance(result.state, Answer(""))
    assert result.ui.error == REQUIRED_ERROR

    result = engine.advance(result.state, Answer("value"))
    assert result.phase is SessionPhase.DONE
    assert result.state.answers == {"b": "value", "a": "yes"}


def test_derived_question_is_filled_from_computed_value(rulesets: RulesetRegistry) -> None:
    wf = _workflow(
        {
            "id": "details",
            "title": "Details",
            "ask": [{"id": "un_number", "label": "UN?", "required": True}],
            "compute": [{"output": "dg_profile", "using": "stub_profile"}],
            "next": [{"when": "always", "goto": "confirm"}],
        },
        {
            "id": "confirm",
            "title": "Confirm",
            "ask": [
                {"id": "confirmed_un", "label": "UN", "derive_from": "dg_profile.un"},
                {"id": "ready", "label": "Ready?", "type": "boolean", "required": True},
            ],
        },
    )
    engine = _engine(wf, rulesets)

    moved = engine.advance(engine.start_session().state, Answer("UN3480"))
    assert moved.state.current_step_id == "confirm"
    assert moved.state.computed["dg_profile"] == {"un": "UN3480", "pi": "PI965"}
    # Derived questions are never posed to the user.
    assert moved.ui.question_id == "ready"

    refreshed = engine.advance(moved.state)
    assert refreshed.state.answers["confirmed_un"] == "UN3480"
    assert refreshed.ui.question_id == "ready"


def test_derive_fields_ignores_missing_paths() -> None:
    wf = _workflow(
        {
            "id": "s1",
            "title": "One",
            "ask": [
                {"id": "un", "label": "UN", "derive_from": "profile.un"},
                {"id": "pi", "label": "PI", "derive_from": "profile.pi"},
            ],
            "compute": [{"output": "profile", "using": "stub_profile"}],
        }
    )
    state = SessionState(current_step_id="s1", computed={"profile": {"un": "UN3090"}})

    derive_fields(wf.steps[0], state)

    assert state.answers == {"un": "UN3090"}


def test_integer_answers_are_validated_and_coerced(rulesets: RulesetRegistry) -> None:
    wf = _workflow(
        {
            "id": "s1",
            "title": "One",
            "ask": [
                {"id": "qty", "label": "Qty?", "type": "integer", "required": True},
                {"id": "note", "label": "Note?", "required": True},
            ],
        }
    )
    engine = _engine(wf, rulesets)
    start = engine.start_session()

    rejected = engine.advance(start.state, Answer("abc"))
    assert rejected.phase is SessionPhase.AWAITING_ANSWER
    assert rejected.ui.question_id == "qty"
    assert rejected.ui.error == NUMBER_ERROR
    assert rejected.state.answers == {}
    assert rejected.state.history == []

    accepted = engine.advance(rejected.state, Answer("5"))
    assert accepted.state.answers == {"qty": 5}
    assert isinstance(accepted.state.answers["qty"], int)
    assert accepted.ui.question_id == "note"
    assert accepted.ui.error is None


def test_advisory_rule_terminates_session_with_blocked_summary(
    rulesets: RulesetRegistry,
) -> None:
    wf = _permit_workflow()
    engine = _engine(wf, rulesets)

    at_permit = engine.advance(engine.start_session().state, Answer("air"))
    assert at_permit.ui.step_id == "permit"

    result = engine.advance(at_permit.state, Answer("no"))

    assert result.phase is SessionPhase.TERMINATED
    assert result.state.phase is SessionPhase.TERMINATED
    assert result.state.current_step_id == "permit"
    assert result.advice == ["Get a permit first."]
    assert result.summary is not None
    assert result.summary.completed is False
    assert result.summary.message == "Get a permit first."
    assert [s.status for s in result.summary.steps] == ["completed", "blocked", "pending"]
    assert [h.step for h in result.state.history] == ["basics"]

    with pytest.raises(IllegalTransitionError):
        engine.advance(result.state, Answer("yes"))
    with pytest.raises(IllegalTransitionError):
        engine.advance(result.state)


def test_history_is_append_only(rulesets: RulesetRegistry) -> None:
    wf = _permit_workflow()
    engine = _engine(wf, rulesets)

    r1 = engine.advance(engine.start_session().state, Answer("sea"))
    first_entry = r1.state.history[0].model_dump()

    r2 = engine.advance(r1.state, Answer("yes"))
    r3 = engine.advance(r2.state, Answer("DHL"))

    assert r3.phase is SessionPhase.DONE
    assert [h.step for h in r3.state.history] == ["basics", "permit", "shipping"]
    assert r3.state.history[0].model_dump() == first_entry
    assert r3.state.history[0].answers == {"mode": "sea"}
    assert r3.state.history[1].answers == {"mode": "sea", "has_permit": "yes"}
    # Earlier results keep their own history.
    assert len(r1.state.history) == 1
    assert len(r2.state.history) == 2


def test_advance_does_not_mutate_caller_state(rulesets: RulesetRegistry) -> None:
    wf = _permit_workflow()
    engine = _engine(wf, rulesets)
    state = engine.start_session().state
    before = state.model_dump()

    result = engine.advance(state, Answer("road"))

    assert result.state is not state
    assert state.model_dump() == before


@pytest.mark.parametrize(("qty", "expected"), [("1", "first"), ("2", "second")])
def test_transitions_resolve_in_declaration_order(
    rulesets: RulesetRegistry, qty: str, expected: str
) -> None:
    wf = _workflow(
        {
            "id": "s1",
            "title": "One",
            "ask": [{"id": "x", "label": "X?", "type": "integer", "required": True}],
            "next": [
                {"when": "x==1", "goto": "first"},
                {"when": "always", "goto": "second"},
                {"when": "x==2", "goto": "third"},
            ],
        },
        {"id": "first", "title": "First", "ask": [{"id": "f", "label": "F?", "required": True}]},
        {"id": "second", "title": "Second", "ask": [{"id": "s", "label": "S?", "required": True}]},
        {"id": "third", "title": "Third", "ask": [{"id": "t", "label": "T?", "required": True}]},
    )

    result = advance(wf, start_session(wf, rulesets=rulesets).state, Answer(qty), rulesets=rulesets)

    assert result.state.current_step_id == expected
    assert resolve_transition(wf.steps[0], {"x": 2}) == "second"
    assert resolve_transition(wf.steps[0], {}) == "second"


def test_step_without_questions_reports_computing_phase(rulesets: RulesetRegistry) -> None:
    wf = _workflow(
        {
            "id": "s1",
            "title": "One",
            "ask": [{"id": "q1", "label": "Q1?", "required": True}],
            "next": [{"when": "always", "goto": "classify"}],
        },
        {
            "id": "classify",
            "title": "Classify",
            "compute": [{"output": "profile", "using": "stub_profile"}],
            "next": [{"when": "always", "goto": "done"}],
        },
        {"id": "done", "title": "All set"},
    )
    engine = _engine(wf, rulesets)

    computing = engine.advance(engine.start_session().state, Answer("x"))
    assert computing.phase is SessionPhase.COMPUTING
    assert computing.ui.step_id == "classify"
    assert computing.ui.question_id is None

    # An answer submitted for a step with nothing to ask is ignored.
    done = engine.advance(computing.state, Answer("ignored"))
    assert done.phase is SessionPhase.DONE
    assert done.state.computed["profile"]["un"] == "UN3480"
    assert done.ui.title == "All set"
    assert done.summary is not None
    assert [s.id for s in done.summary.steps] == ["s1", "classify"]

    again = engine.advance(done.state)
    assert again.phase is SessionPhase.DONE
    assert again.summary == done.summary
    assert len(again.state.history) == len(done.state.history)


def test_format_validation_rejects_non_matching_text(rulesets: RulesetRegistry) -> None:
    wf = _workflow(
        {
            "id": "s1",
            "title": "One",
            "ask": [{"id": "un", "label": "UN?", "required": True, "validate": r"^UN\d{4}$"}],
        }
    )
    engine = _engine(wf, rulesets)

    rejected = engine.advance(engine.start_session().state, Answer("3480"))
    assert rejected.ui.error == FORMAT_ERROR

    accepted = engine.advance(rejected.state, Answer("UN3480"))
    assert accepted.phase is SessionPhase.DONE
    assert accepted.state.answers == {"un": "UN3480"}


def test_normalize_answer_by_question_type() -> None:
    wf = _workflow(
        {
            "id": "s1",
            "title": "One",
            "ask": [
                {"id": "flag", "label": "Flag?", "type": "boolean"},
                {"id": "pick", "label": "Pick", "type": "single_select", "options": ["a", "b"]},
                {"id": "many", "label": "Many", "type": "multi_select", "options": ["a", "b", "c"]},
                {"id": "size", "label": "Size", "type": "integer"},
            ],
        }
    )
    flag, pick, many, size = wf.steps[0].ask

    assert normalize_answer(flag, "Yes", required=True) == (True, None)
    assert normalize_answer(flag, "n", required=True) == (False, None)
    assert normalize_answer(flag, False, required=True) == (False, None)
    assert normalize_answer(flag, "maybe", required=True) == (None, BOOLEAN_ERROR)

    assert normalize_answer(pick, "b", required=True) == ("b", None)
    value, error = normalize_answer(pick, "z", required=True)
    assert value is None and error is not None and "a, b" in error

    assert normalize_answer(many, ["a", "c"], required=True) == ("a,c", None)
    assert normalize_answer(many, "b, c", required=True) == ("b,c", None)
    assert normalize_answer(many, "a,z", required=True)[1] is not None
    assert normalize_answer(many, [], required=True) == (None, REQUIRED_ERROR)

    assert normalize_answer(size, "2.5", required=True) == (2.5, None)
    assert normalize_answer(size, 7, required=True) == (7, None)
    assert normalize_answer(size, "inf", required=True) == (None, NUMBER_ERROR)
    assert normalize_answer(size, True, required=True) == (None, NUMBER_ERROR)
    assert normalize_answer(size, "  ", required=False) == (None, None)


def _answer_all(engine: WorkflowEngine, answers: list[str]) -> AdvanceResult:
    result = engine.start_session()
    for value in answers:
        assert result.summary is None, f"session ended before answering {value!r}"
        result = engine.advance(result.state, Answer(value))
    return result


def test_sample_workflow_air_shipment_completes(
    sample_workflow_path, rulesets: RulesetRegistry
) -> None:
    wf = load_workflow(sample_workflow_path, rulesets=rulesets)
    engine = _engine(wf, rulesets)

    result = _answer_all(
        engine,
        [
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
        ],
    )

    assert result.phase is SessionPhase.DONE
    assert result.ui.title == "Ready to ship"
    assert result.state.computed["dg_profile"] == {
        "un": "UN3480",
        "pi": "PI965",
        "requires_shipper_decl": True,
        "labels": ["Class 9"],
    }
    assert result.state.answers["confirmed_un_number"] == "UN3480"
    assert result.state.answers["packing_instruction"] == "PI965"
    assert result.state.answers["shipper_declaration_ready"] is True
    assert result.state.answers["shipment_reference"] is None
    assert [h.step for h in result.state.history] == [
        "shipment_basics",
        "export_permit",
        "battery_details",
        "air_dangerous_goods",
        "hk_import",
    ]
    assert result.summary is not None
    assert result.summary.completed is True
    assert {s.status for s in result.summary.steps} == {"completed"}


def test_sample_workflow_sea_shipment_skips_air_step(
    sample_workflow_path, rulesets: RulesetRegistry
) -> None:
    wf = load_workflow(sample_workflow_path, rulesets=rulesets)
    engine = _engine(wf, rulesets)

    result = _answer_all(
        engine,
        ["sea", "packed_with_equipment", "REF-1", "yes", "STP-2024-001", "UN3481", "10", "1", ""],
    )

    assert result.ui.step_id == "hk_import"
    assert result.ui.question_id == "consignee_registered"
    assert "air_dangerous_goods" not in [h.step for h in result.state.history]


def test_sample_workflow_without_permit_is_blocked(
    sample_workflow_path, rulesets: RulesetRegistry
) -> None:
    wf = load_workflow(sample_workflow_path, rulesets=rulesets)
    engine = _engine(wf, rulesets)

    result = _answer_all(engine, ["road", "contained_in_equipment", "", "no"])

    assert result.phase is SessionPhase.TERMINATED
    assert len(result.advice) == 2
    assert result.summary is not None
    assert [s.status for s in result.summary.steps] == [
        "completed",
        "blocked",
        "pending",
        "pending",
        "pending",
    ]
