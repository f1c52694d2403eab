"""Pydantic models for the REST server."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from guided_workflow.workflow.models import (
    SessionPhase,
    SessionState,
    UiDescriptor,
    WorkflowSummary,
)
from guided_workflow.workflow.state_machine import AdvanceResult


class AnswerRequest(BaseModel):
    session_id: str
    value: Any = None


class TurnResponse(BaseModel):
    session_id: str
    phase: SessionPhase
    ui: UiDescriptor
    citations: list[str] = Field(default_factory=list)
    summary: WorkflowSummary | None = None
    advice: list[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, session_id: str, result: AdvanceResult) -> TurnResponse:
        return cls(
            session_id=session_id,
            phase=result.phase,
            ui=result.ui,
            citations=result.citations,
            summary=result.summary,
            advice=result.advice,
        )


class SessionResponse(BaseModel):
    session_id: str
    state: SessionState


class SessionListResponse(BaseModel):
    sessions: list[str] = Field(default_factory=list)


class ApiStep(BaseModel):
    id: str
    title: str
    questions: int


class ApiWorkflow(BaseModel):
    id: str
    title: str
    version: str
    steps: list[ApiStep]


class RetrieveRequest(BaseModel):
    query: str = Field(min_length=1)


class DocumentsRequest(BaseModel):
    titles: list[str] = Field(default_factory=list)


class ApiDocument(BaseModel):
    uri: str
    title: str
    content: str
    score: float | None = None


class DocumentsResponse(BaseModel):
    ok: bool = True
    results: list[ApiDocument] = Field(default_factory=list)
