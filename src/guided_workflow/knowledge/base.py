"""In-memory guidance documents loaded from a local directory."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from guided_workflow.workflow.guidance import Document

logger = logging.getLogger(__name__)

URI_SCHEME = "knowledge://"
DEFAULT_TOP_K = 5
SUPPORTED_SUFFIXES = frozenset({".md", ".markdown", ".txt"})

_WORD_RE = re.compile(r"\W+")


def _tokens(text: str) -> set[str]:
    return {t for t in _WORD_RE.split(text.lower()) if t}


def similarity(a: str, b: str) -> float:
    """Jaccard similarity of the word sets of ``a`` and ``b``."""

    set_a = _tokens(a)
    set_b = _tokens(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


@dataclass
class KnowledgeBase:
    """Document store satisfying the guidance provider contract.

    Semantic lookup is approximated by word overlap against title and content.
    """

    documents: list[Document] = field(default_factory=list)
    top_k: int = DEFAULT_TOP_K

    def __post_init__(self) -> None:
        if self.top_k <= 0:
            raise ValueError("top_k must be > 0")

    @classmethod
    def from_directory(cls, root: Path, *, top_k: int = DEFAULT_TOP_K) -> KnowledgeBase:
        if not root.is_dir():
            raise FileNotFoundError(f"Knowledge directory not found: {root}")

        docs: list[Document] = []
        for path in sorted(root.rglob("*"), key=lambda p: p.as_posix()):
            if not path.is_file() or path.suffix.lower() not in SUPPORTED_SUFFIXES:
                continue
            content = path.read_text(encoding="utf-8").strip()
            if not content:
                logger.warning("Skipping empty knowledge file", extra={"path": str(path)})
                continue
            rel = path.relative_to(root).as_posix()
            docs.append(Document(uri=f"{URI_SCHEME}{rel}", title=path.stem, content=content))

        logger.info("Knowledge base loaded", extra={"path": str(root), "documents": len(docs)})
        return cls(documents=docs, top_k=top_k)

    def lookup_by_titles(self, titles: Sequence[str]) -> list[Document]:
        wanted = set(titles)
        return [d for d in self.documents if d.title in wanted]

    def semantic_lookup(self, query: str) -> list[Document]:
        scored: list[Document] = []
        for doc in self.documents:
            score = similarity(query, f"{doc.title} {doc.content}")
            if score > 0:
                scored.append(Document(uri=doc.uri, title=doc.title, content=doc.content, score=score))
        scored.sort(key=lambda d: d.score or 0.0, reverse=True)
        return scored[: self.top_k]
