from __future__ import annotations

import dataclasses
from typing import Any, Mapping, Optional

from pydantic import BaseModel


def entries(value: Any) -> Optional[dict[str, Any]]:
    """Own entries of an object argument, or None when the value has none."""
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return None


def stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
