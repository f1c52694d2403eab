"""Guidance provider backed by a remote knowledge API.

The API is the one served by :mod:`guided_workflow.server.app`:

- ``POST {base}/rag/documents`` with ``{"titles": [...]}``
- ``POST {base}/rag/retrieve`` with ``{"query": "..."}``

Both answer ``{"results": [{"uri", "title", "content", "score"?}, ...]}``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import requests

from guided_workflow.workflow.guidance import Document

logger = logging.getLogger(__name__)


def _documents(payload: object) -> list[Document]:
    if not isinstance(payload, dict):
        return []
    rows = payload.get("results")
    if not isinstance(rows, list):
        return []

    docs: list[Document] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        uri = row.get("uri")
        content = row.get("content")
        if not isinstance(uri, str) or not isinstance(content, str):
            continue
        title = row.get("title")
        score = row.get("score")
        docs.append(
            Document(
                uri=uri,
                title=title if isinstance(title, str) else "",
                content=content,
                score=float(score) if isinstance(score, int | float) else None,
            )
        )
    return docs


class HttpGuidanceProvider:
    """Small wrapper around the knowledge API for the two lookups we need."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        if not base_url.strip():
            raise ValueError("Knowledge API base URL is required")

        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._session = session or requests.Session()
        self._session.headers.update(
            {"Accept": "application/json", "User-Agent": "guided-workflow"}
        )

    def close(self) -> None:
        self._session.close()

    def _post(self, path: str, payload: dict[str, object]) -> list[Document]:
        url = f"{self._base_url}/{path.lstrip('/')}"
        resp = self._session.post(url, json=payload, timeout=self._timeout)
        resp.raise_for_status()
        docs = _documents(resp.json())
        logger.debug("Knowledge API returned documents", extra={"url": url, "count": len(docs)})
        return docs

    def lookup_by_titles(self, titles: Sequence[str]) -> list[Document]:
        if not titles:
            return []
        return self._post("rag/documents", {"titles": list(titles)})

    def semantic_lookup(self, query: str) -> list[Document]:
        if not query.strip():
            return []
        return self._post("rag/retrieve", {"query": query})
