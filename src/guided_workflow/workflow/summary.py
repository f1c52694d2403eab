"""Step-by-step progress report for a finished or blocked session."""

from __future__ import annotations

from guided_workflow.workflow.models import (
    DONE_STEP_ID,
    QuestionSummary,
    SessionState,
    StepStatus,
    StepSummary,
    Workflow,
    WorkflowSummary,
)

COMPLETED_MESSAGE = "All steps are complete."
BLOCKED_MESSAGE = (
    "Looks like you are missing some crucial information here. "
    "Resolve the blocking step before proceeding."
)


def _is_answered(state: SessionState, question_id: str) -> bool:
    return question_id in state.answers and state.answers[question_id] != ""


def summarize(
    workflow: Workflow,
    state: SessionState,
    blocking_step_id: str,
    *,
    message: str | None = None,
) -> WorkflowSummary:
    """Build the report.

    Steps before ``blocking_step_id`` are ``completed``, the blocking step is
    ``blocked`` and everything after it is ``pending``. Passing ``"done"`` as the
    blocking step yields a completed summary in which every step is
    ``completed``.

    Answer values are reported as recorded; display formatting belongs to the
    presentation layer.
    """

    completed = blocking_step_id == DONE_STEP_ID
    steps: list[StepSummary] = []
    passed_blocking = False

    for step in workflow.steps:
        if step.id == DONE_STEP_ID:
            continue

        status: StepStatus
        if passed_blocking:
            status = "pending"
        elif step.id == blocking_step_id:
            status = "blocked"
            passed_blocking = True
        else:
            status = "completed"

        questions = []
        for q in step.ask:
            answered = _is_answered(state, q.id)
            questions.append(
                QuestionSummary(
                    id=q.id,
                    label=q.label,
                    answer=state.answers[q.id] if answered else None,
                    answered=answered,
                )
            )
        steps.append(StepSummary(id=step.id, title=step.title, status=status, questions=questions))

    if message is None:
        message = COMPLETED_MESSAGE if completed else BLOCKED_MESSAGE
    return WorkflowSummary(completed=completed, message=message, steps=steps)
