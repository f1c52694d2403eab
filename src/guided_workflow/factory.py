"""Build the process-level engine from settings."""

from __future__ import annotations

import logging

from guided_workflow.config import WorkflowSettings
from guided_workflow.knowledge.base import KnowledgeBase
from guided_workflow.knowledge.http_provider import HttpGuidanceProvider
from guided_workflow.workflow.guidance import GuidanceProvider, GuidanceResolver
from guided_workflow.workflow.loader import load_workflow
from guided_workflow.workflow.rulesets import RulesetRegistry, default_rulesets
from guided_workflow.workflow.state_machine import WorkflowEngine

logger = logging.getLogger(__name__)


def load_knowledge_base(settings: WorkflowSettings) -> KnowledgeBase | None:
    if settings.knowledge_dir is None:
        return None
    return KnowledgeBase.from_directory(settings.knowledge_dir)


def create_guidance_provider(
    settings: WorkflowSettings, *, knowledge_base: KnowledgeBase | None = None
) -> GuidanceProvider | None:
    """Pick the guidance backend.

    A remote knowledge API wins over the local knowledge directory; with neither,
    steps simply have no help text.
    """

    if settings.guidance_base_url.strip():
        logger.info("Using remote guidance provider", extra={"url": settings.guidance_base_url})
        return HttpGuidanceProvider(
            base_url=settings.guidance_base_url,
            timeout_seconds=settings.guidance_timeout_seconds,
        )
    if knowledge_base is not None:
        logger.info(
            "Using local knowledge base for guidance",
            extra={"documents": len(knowledge_base.documents)},
        )
        return knowledge_base
    logger.info("No guidance provider configured")
    return None


def create_engine(
    settings: WorkflowSettings,
    *,
    rulesets: RulesetRegistry | None = None,
    knowledge_base: KnowledgeBase | None = None,
) -> WorkflowEngine:
    """Load and validate the workflow, then wire its collaborators.

    Raises:
        WorkflowConfigError: If the workflow definition is invalid.
    """

    registry = rulesets if rulesets is not None else default_rulesets()
    workflow = load_workflow(settings.workflow_path, rulesets=registry)
    provider = create_guidance_provider(settings, knowledge_base=knowledge_base)
    resolver = (
        GuidanceResolver(provider, timeout_seconds=settings.guidance_timeout_seconds)
        if provider is not None
        else None
    )
    return WorkflowEngine(workflow=workflow, rulesets=registry, guidance=resolver)
