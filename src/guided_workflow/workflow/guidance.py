"""Resolve contextual help for a step from an external document store.

Guidance is an enrichment: a slow, failing or missing store never fails a turn.
The resolver runs each lookup on a worker thread and gives up after the
configured timeout, returning empty guidance instead.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

from guided_workflow.workflow.models import Step

logger = logging.getLogger(__name__)

HELP_MAX_CHARS = 400
_ELLIPSIS = "…"
_WS_RE = re.compile(r"\s+")

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Document:
    uri: str
    title: str
    content: str
    score: float | None = None


@dataclass(frozen=True, slots=True)
class Guidance:
    help: str | None = None
    citations: list[str] = field(default_factory=list)


class GuidanceProvider(Protocol):
    """Document lookup capability consumed by the resolver."""

    def lookup_by_titles(self, titles: Sequence[str]) -> list[Document]: ...

    def semantic_lookup(self, query: str) -> list[Document]: ...


def trim_snippet(text: str, max_chars: int = HELP_MAX_CHARS) -> str:
    """Collapse whitespace and cut to ``max_chars`` including the ellipsis."""

    t = _WS_RE.sub(" ", text).strip()
    if len(t) > max_chars:
        return t[: max_chars - 1] + _ELLIPSIS
    return t


class GuidanceResolver:
    """Turn a step's ``guidance_ref`` / ``guidance_query`` into help text.

    Resolution order:
      1. exact title lookup for ``guidance_ref``; all hits are concatenated
      2. otherwise one semantic lookup for ``guidance_query``; top hit only
      3. otherwise no help and no citations
    """

    def __init__(
        self,
        provider: GuidanceProvider | None,
        *,
        timeout_seconds: float = 5.0,
        max_workers: int = 4,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._provider = provider
        self._timeout = timeout_seconds
        self._executor = (
            ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="guidance")
            if provider is not None
            else None
        )

    def close(self) -> None:
        """Stop the lookup pool. Later lookups resolve to no guidance."""

        executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)

    def resolve(self, step: Step) -> Guidance:
        if self._provider is None:
            return Guidance()

        provider = self._provider
        if step.guidance_ref:
            titles = list(step.guidance_ref)
            docs = self._bounded(lambda: provider.lookup_by_titles(titles), step=step)
            if docs:
                return Guidance(
                    help=trim_snippet("\n\n".join(d.content for d in docs)),
                    citations=[d.uri for d in docs],
                )

        if step.guidance_query:
            query = step.guidance_query
            rows = self._bounded(lambda: provider.semantic_lookup(query), step=step)
            if rows:
                top = rows[0]
                return Guidance(help=trim_snippet(top.content), citations=[top.uri])

        return Guidance()

    def _bounded(self, call: Callable[[], list[T]], *, step: Step) -> list[T]:
        executor = self._executor
        if executor is None:
            logger.debug("Guidance resolver is closed", extra={"step_id": step.id})
            return []
        future: Future[list[T]] = executor.submit(call)
        try:
            return future.result(timeout=self._timeout)
        except FutureTimeoutError:
            future.cancel()
            logger.warning(
                "Guidance lookup timed out",
                extra={"step_id": step.id, "timeout_seconds": self._timeout},
            )
        except Exception:
            logger.warning("Guidance lookup failed", extra={"step_id": step.id}, exc_info=True)
        return []
