from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class _Frame(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


class StartFrame(_Frame):
    type: Literal["start"]
    message_id: Optional[str] = Field(default=None, alias="messageId")


class TextStartFrame(_Frame):
    type: Literal["text-start"]
    id: str = ""


class TextDeltaFrame(_Frame):
    type: Literal["text-delta"]
    id: str = ""
    delta: str


class TextEndFrame(_Frame):
    type: Literal["text-end"]
    id: str = ""


class ReasoningDeltaFrame(_Frame):
    type: Literal["reasoning-delta"]
    id: str = ""
    delta: str


class ErrorFrame(_Frame):
    type: Literal["error"]
    error_text: str = Field(alias="errorText")


class FinishFrame(_Frame):
    type: Literal["finish"]


DataFrame = Annotated[
    Union[
        StartFrame,
        TextStartFrame,
        TextDeltaFrame,
        TextEndFrame,
        ReasoningDeltaFrame,
        ErrorFrame,
        FinishFrame,
    ],
    Field(discriminator="type"),
]

_FRAME_ADAPTER: TypeAdapter[DataFrame] = TypeAdapter(DataFrame)


def parse_frame(raw: str) -> Optional[DataFrame]:
    """A typed frame, or None for non-JSON data and unrecognized shapes."""
    try:
        return _FRAME_ADAPTER.validate_json(raw)
    except ValidationError:
        return None
