"""Persisted per-session workflow state.

Each session is stored as one JSON file named after its id so sessions survive
restarts and never share mutable state. The store also hands out a lock per
session id so a host processes one turn at a time for each session.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from guided_workflow.workflow.models import SessionState

logger = logging.getLogger(__name__)

_SESSION_ID_RE = re.compile(r"[A-Za-z0-9_-]{1,64}")


class UnknownSessionError(KeyError):
    pass


@dataclass
class SessionStore:
    path: Path
    _guard: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _locks: dict[str, threading.Lock] = field(default_factory=dict, init=False, repr=False)

    def _file(self, session_id: str) -> Path:
        if not _SESSION_ID_RE.fullmatch(session_id):
            raise UnknownSessionError(session_id)
        return self.path / f"{session_id}.json"

    @contextmanager
    def locked(self, session_id: str, *, create: bool = False) -> Iterator[None]:
        """Serialize turns for one session.

        Unless ``create`` is set the session must already exist; unknown ids
        raise :class:`UnknownSessionError` without registering a lock.
        """

        file = self._file(session_id)
        if not create and not file.exists():
            raise UnknownSessionError(session_id)
        with self._guard:
            lock = self._locks.setdefault(session_id, threading.Lock())
        try:
            with lock:
                yield
        finally:
            if not file.exists():
                with self._guard:
                    if self._locks.get(session_id) is lock:
                        del self._locks[session_id]

    def new_session_id(self) -> str:
        return uuid.uuid4().hex

    def load(self, session_id: str) -> SessionState | None:
        file = self._file(session_id)
        if not file.exists():
            return None
        try:
            raw = json.loads(file.read_text(encoding="utf-8"))
            return SessionState.model_validate(raw)
        except (json.JSONDecodeError, ValidationError):
            logger.warning(
                "Session state file is corrupt; treating as missing",
                extra={"session_id": session_id, "path": str(file)},
            )
            return None

    def get(self, session_id: str) -> SessionState:
        state = self.load(session_id)
        if state is None:
            raise UnknownSessionError(session_id)
        return state

    def save(self, session_id: str, state: SessionState) -> None:
        file = self._file(session_id)
        file.parent.mkdir(parents=True, exist_ok=True)
        tmp = file.with_suffix(".json.tmp")
        tmp.write_text(
            json.dumps(state.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        tmp.replace(file)

    def delete(self, session_id: str) -> bool:
        file = self._file(session_id)
        with self._guard:
            self._locks.pop(session_id, None)
        if not file.exists():
            return False
        file.unlink()
        return True

    def list(self) -> list[str]:
        if not self.path.exists():
            return []
        return sorted(p.stem for p in self.path.glob("*.json"))
