"""Built-in rulesets shipped with the interpreter."""

from __future__ import annotations

from guided_workflow.rulesets import li_ion_air_v1
from guided_workflow.workflow.rulesets import Ruleset

BUILTIN_RULESETS: dict[str, Ruleset] = {
    li_ion_air_v1.NAME: li_ion_air_v1.classify,
}

__all__ = ["BUILTIN_RULESETS"]
