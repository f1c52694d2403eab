"""Dangerous-goods profile for lithium batteries shipped by air."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

NAME = "ruleset_li_ion_air_v1"

# Provisional threshold until the full Wh / lithium-content tables are encoded.
_HIGH_CONTENT_RE = re.compile(r"^9\d|1\d\d")


class DangerousGoodsProfile(BaseModel):
    un: str
    pi: str | None
    requires_shipper_decl: bool
    labels: list[str] = Field(default_factory=list)


def _as_str(value: object) -> str:
    return "" if value is None else str(value)


def _as_number(value: object) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0


def classify(inputs: Mapping[str, Any]) -> DangerousGoodsProfile:
    un_number = _as_str(inputs.get("un_number"))
    content = _as_str(inputs.get("wh_or_li_content"))
    qty = _as_number(inputs.get("qty_per_pkg"))
    candidate = _as_str(inputs.get("pi_candidate"))

    is_li_ion = un_number.startswith("UN348")
    if candidate and candidate != "unknown":
        pi = candidate
    else:
        pi = "PI965" if is_li_ion else "PI968"

    requires_decl = qty > 2 or _HIGH_CONTENT_RE.search(content) is not None
    labels = ["Class 9"] if requires_decl else ["Lithium Battery Mark"]
    return DangerousGoodsProfile(
        un=un_number, pi=pi, requires_shipper_decl=requires_decl, labels=labels
    )
