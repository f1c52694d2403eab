"""Workflow definition and session state models.

A :class:`Workflow` is loaded once per process and shared read-only by every
session. :class:`SessionState` is owned by exactly one session and is passed
explicitly into each advance call; the engine never keeps a reference to it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

DONE_STEP_ID = "done"

QuestionType = Literal["single_select", "multi_select", "boolean", "integer", "long_text", "text"]

CHOICE_TYPES: frozenset[str] = frozenset({"single_select", "multi_select"})

AnswerValue = str | int | float | bool | None


class _Definition(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class Question(_Definition):
    """A single datum to collect from the user."""

    id: str
    label: str
    type: QuestionType = "text"
    options: tuple[str, ...] | None = None
    required: bool = False
    required_if: str | None = None
    # `validate` would shadow the BaseModel attribute.
    pattern: str | None = Field(default=None, alias="validate")
    derive_from: str | None = None

    @field_validator("options", mode="before")
    @classmethod
    def _stringify_options(cls, value: Any) -> Any:
        if isinstance(value, list | tuple):
            return tuple(str(v) for v in value)
        return value

    @property
    def is_derived(self) -> bool:
        return bool(self.derive_from)


class ComputeDirective(_Definition):
    """Run the ruleset ``using`` and store its result under ``output``.

    ``inputs`` maps ruleset parameter names to answer ids. When omitted the
    ruleset receives every recorded answer.
    """

    output: str
    using: str
    inputs: dict[str, str] | None = None


class TransitionRule(_Definition):
    when: str
    goto: str


class AdvisoryRule(_Definition):
    when: str
    advise: tuple[str, ...] = ()


class Step(_Definition):
    id: str
    title: str
    ask: tuple[Question, ...] = ()
    compute: tuple[ComputeDirective, ...] = ()
    next: tuple[TransitionRule, ...] = ()
    guidance_ref: tuple[str, ...] | None = None
    guidance_query: str | None = None
    actions_if: tuple[AdvisoryRule, ...] = ()

    @field_validator("guidance_ref", mode="before")
    @classmethod
    def _coerce_guidance_ref(cls, value: Any) -> Any:
        if isinstance(value, str):
            return (value,)
        return value

    @field_validator("ask", "compute", "next", "actions_if", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return () if value is None else value


class Workflow(_Definition):
    id: str = ""
    title: str
    version: str = "1"
    steps: tuple[Step, ...]

    @field_validator("version", mode="before")
    @classmethod
    def _stringify_version(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int | float) else value

    @property
    def first_step_id(self) -> str:
        return self.steps[0].id

    def find_step(self, step_id: str) -> Step | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


class SessionPhase(str, Enum):
    AWAITING_ANSWER = "awaiting_answer"
    COMPUTING = "computing"
    TERMINATED = "terminated"
    DONE = "done"


class HistoryEntry(BaseModel):
    """Snapshot taken when a step is left. Never modified after it is appended."""

    model_config = ConfigDict(frozen=True)

    step: str
    answers: dict[str, Any]
    computed: dict[str, Any]


class SessionState(BaseModel):
    current_step_id: str
    phase: SessionPhase = SessionPhase.AWAITING_ANSWER
    answers: dict[str, Any] = Field(default_factory=dict)
    computed: dict[str, Any] = Field(default_factory=dict)
    history: list[HistoryEntry] = Field(default_factory=list)

    @classmethod
    def initial(cls, workflow: Workflow) -> SessionState:
        return cls(current_step_id=workflow.first_step_id)


class UiDescriptor(BaseModel):
    """What the presentation layer should show for the current turn."""

    step_id: str
    title: str
    question_id: str | None = None
    question: str | None = None
    question_type: QuestionType | None = None
    help: str | None = None
    choices: list[str] | None = None
    error: str | None = None


StepStatus = Literal["completed", "blocked", "pending"]


class QuestionSummary(BaseModel):
    id: str
    label: str
    answer: Any = None
    answered: bool = False


class StepSummary(BaseModel):
    id: str
    title: str
    status: StepStatus
    questions: list[QuestionSummary] = Field(default_factory=list)


class WorkflowSummary(BaseModel):
    completed: bool
    message: str
    steps: list[StepSummary] = Field(default_factory=list)
