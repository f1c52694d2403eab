"""Named computation plugins invoked by ``compute`` directives.

A ruleset is a pure function ``(inputs) -> result``. The host registers every
ruleset before the workflow is loaded so unknown names are caught by load-time
validation rather than on the first session that reaches the step.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from typing import Any

from pydantic import BaseModel

from guided_workflow.errors import UnknownRulesetError

logger = logging.getLogger(__name__)

Ruleset = Callable[[Mapping[str, Any]], Any]


class RulesetRegistry:
    """Registry of ``name -> ruleset``.

    Registration happens once at startup; afterwards the registry is only read,
    so it can be shared by concurrent sessions.
    """

    def __init__(self, rulesets: Mapping[str, Ruleset] | None = None) -> None:
        self._rulesets: dict[str, Ruleset] = {}
        for name, fn in (rulesets or {}).items():
            self.register(name, fn)

    def register(self, name: str, fn: Ruleset) -> None:
        if not name.strip():
            raise ValueError("Ruleset name must not be empty")
        if name in self._rulesets:
            raise ValueError(f"Ruleset already registered: {name}")
        self._rulesets[name] = fn

    def __contains__(self, name: object) -> bool:
        return name in self._rulesets

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._rulesets))

    def __len__(self) -> int:
        return len(self._rulesets)

    def get(self, name: str) -> Ruleset:
        try:
            return self._rulesets[name]
        except KeyError:
            raise UnknownRulesetError(f"Unknown ruleset: {name}") from None

    def run(self, name: str, inputs: Mapping[str, Any]) -> Any:
        """Run a ruleset and return a JSON-compatible result.

        Pydantic model results are dumped to plain mappings so they can be
        snapshotted into history and addressed by ``derive_from`` paths.
        """

        result = self.get(name)(inputs)
        logger.debug("Ruleset evaluated", extra={"ruleset": name})
        if isinstance(result, BaseModel):
            return result.model_dump(mode="json")
        return result


def default_rulesets() -> RulesetRegistry:
    """Registry pre-populated with the built-in rulesets."""

    from guided_workflow.rulesets import BUILTIN_RULESETS

    return RulesetRegistry(BUILTIN_RULESETS)
