"""Guidance document providers."""

from guided_workflow.knowledge.base import KnowledgeBase
from guided_workflow.knowledge.http_provider import HttpGuidanceProvider

__all__ = ["HttpGuidanceProvider", "KnowledgeBase"]
