"""FastAPI app factory.

Endpoints are thin wrappers over the workflow engine. The workflow is loaded
and validated once when the app is created; a defective definition fails
startup rather than a user's session.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from guided_workflow import __version__
from guided_workflow.config import WorkflowSettings
from guided_workflow.errors import IllegalTransitionError
from guided_workflow.factory import create_engine, load_knowledge_base
from guided_workflow.knowledge.base import KnowledgeBase
from guided_workflow.server.models import (
    AnswerRequest,
    ApiDocument,
    ApiStep,
    ApiWorkflow,
    DocumentsRequest,
    DocumentsResponse,
    RetrieveRequest,
    SessionListResponse,
    SessionResponse,
    TurnResponse,
)
from guided_workflow.server.session_store import SessionStore, UnknownSessionError
from guided_workflow.workflow.guidance import Document
from guided_workflow.workflow.rulesets import RulesetRegistry
from guided_workflow.workflow.state_machine import Answer, WorkflowEngine

logger = logging.getLogger(__name__)


def _to_api_documents(docs: list[Document]) -> DocumentsResponse:
    return DocumentsResponse(
        results=[
            ApiDocument(uri=d.uri, title=d.title, content=d.content, score=d.score) for d in docs
        ]
    )


def create_app(
    settings: WorkflowSettings | None = None,
    *,
    rulesets: RulesetRegistry | None = None,
    engine: WorkflowEngine | None = None,
    knowledge_base: KnowledgeBase | None = None,
) -> FastAPI:
    settings = settings or WorkflowSettings()
    if knowledge_base is None:
        knowledge_base = load_knowledge_base(settings)
    if engine is None:
        engine = create_engine(settings, rulesets=rulesets, knowledge_base=knowledge_base)
    workflow = engine.workflow

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        engine.close()
        logger.info("Workflow engine closed", extra={"workflow_id": workflow.id})

    app = FastAPI(
        title="Guided Workflow",
        version=__version__,
        description="REST API over the declarative workflow interpreter.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    sessions = SessionStore(settings.session_state_path)
    app.state.sessions = sessions

    @app.get("/api/health")
    def health() -> dict[str, object]:
        return {"status": "ok", "version": __version__, "workflow": workflow.id}

    @app.get("/api/workflow", response_model=ApiWorkflow)
    def describe_workflow() -> ApiWorkflow:
        return ApiWorkflow(
            id=workflow.id,
            title=workflow.title,
            version=workflow.version,
            steps=[ApiStep(id=s.id, title=s.title, questions=len(s.ask)) for s in workflow.steps],
        )

    @app.post("/api/workflow/start", response_model=TurnResponse)
    def start() -> TurnResponse:
        session_id = sessions.new_session_id()
        with sessions.locked(session_id, create=True):
            result = engine.start_session()
            sessions.save(session_id, result.state)
        logger.info("Session started", extra={"session_id": session_id})
        return TurnResponse.from_result(session_id, result)

    @app.post("/api/workflow/answer", response_model=TurnResponse)
    def answer(req: AnswerRequest) -> TurnResponse:
        try:
            with sessions.locked(req.session_id):
                state = sessions.get(req.session_id)
                result = engine.advance(state, Answer(req.value))
                sessions.save(req.session_id, result.state)
        except UnknownSessionError:
            raise HTTPException(status_code=404, detail="Session not found") from None
        except IllegalTransitionError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return TurnResponse.from_result(req.session_id, result)

    @app.post("/api/workflow/sessions/{session_id}/advance", response_model=TurnResponse)
    def advance_without_answer(session_id: str) -> TurnResponse:
        try:
            with sessions.locked(session_id):
                state = sessions.get(session_id)
                result = engine.advance(state)
                sessions.save(session_id, result.state)
        except UnknownSessionError:
            raise HTTPException(status_code=404, detail="Session not found") from None
        except IllegalTransitionError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return TurnResponse.from_result(session_id, result)

    @app.get("/api/workflow/sessions", response_model=SessionListResponse)
    def list_sessions() -> SessionListResponse:
        return SessionListResponse(sessions=sessions.list())

    @app.get("/api/workflow/sessions/{session_id}", response_model=SessionResponse)
    def get_session(session_id: str) -> SessionResponse:
        try:
            state = sessions.get(session_id)
        except UnknownSessionError:
            raise HTTPException(status_code=404, detail="Session not found") from None
        return SessionResponse(session_id=session_id, state=state)

    @app.delete("/api/workflow/sessions/{session_id}")
    def delete_session(session_id: str) -> dict[str, bool]:
        try:
            deleted = sessions.delete(session_id)
        except UnknownSessionError:
            deleted = False
        if not deleted:
            raise HTTPException(status_code=404, detail="Session not found")
        return {"ok": True}

    def _knowledge() -> KnowledgeBase:
        if knowledge_base is None:
            raise HTTPException(status_code=404, detail="No knowledge base configured")
        return knowledge_base

    @app.post("/api/rag/retrieve", response_model=DocumentsResponse)
    def retrieve(req: RetrieveRequest) -> DocumentsResponse:
        return _to_api_documents(_knowledge().semantic_lookup(req.query))

    @app.post("/api/rag/documents", response_model=DocumentsResponse)
    def documents(req: DocumentsRequest) -> DocumentsResponse:
        return _to_api_documents(_knowledge().lookup_by_titles(req.titles))

    return app
