"""Interaction payloads, keyed by interaction kind.

Clients send a free-form action name and a data object. The action is mapped
to one of a fixed set of kinds and the data parsed into that kind's payload
model. Unknown actions become `other` and keep their raw data.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class InteractionKind(str, Enum):
    PLAY = "play"
    PAUSE = "pause"
    SEEK = "seek"
    NOTE = "note"
    QUIZ_COMPLETED = "quiz_completed"
    FULLSCREEN_TOGGLE = "fullscreen_toggle"
    OTHER = "other"


# Action names used by the web player, current and legacy.
ACTION_KINDS: dict[str, InteractionKind] = {
    "play": InteractionKind.PLAY,
    "video_play": InteractionKind.PLAY,
    "pause": InteractionKind.PAUSE,
    "video_pause": InteractionKind.PAUSE,
    "seek": InteractionKind.SEEK,
    "video_seek": InteractionKind.SEEK,
    "note": InteractionKind.NOTE,
    "note_created": InteractionKind.NOTE,
    "note_taken": InteractionKind.NOTE,
    "quiz_completed": InteractionKind.QUIZ_COMPLETED,
    "fullscreen_toggle": InteractionKind.FULLSCREEN_TOGGLE,
}

_POSITION = AliasChoices("position_seconds", "position", "currentTime", "timestamp")


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class PlayData(_Payload):
    kind: Literal["play"] = "play"
    position_seconds: float | None = Field(default=None, validation_alias=_POSITION)


class PauseData(_Payload):
    kind: Literal["pause"] = "pause"
    position_seconds: float | None = Field(default=None, validation_alias=_POSITION)


class SeekData(_Payload):
    kind: Literal["seek"] = "seek"
    from_seconds: float | None = Field(default=None, validation_alias=AliasChoices("from_seconds", "from"))
    to_seconds: float | None = Field(default=None, validation_alias=AliasChoices("to_seconds", "to"))


class NoteData(_Payload):
    kind: Literal["note"] = "note"
    note_id: str | None = Field(default=None, validation_alias=AliasChoices("note_id", "noteId"))
    position_seconds: float | None = Field(default=None, validation_alias=_POSITION)


class QuizCompletedData(_Payload):
    kind: Literal["quiz_completed"] = "quiz_completed"
    quiz_id: str | None = Field(default=None, validation_alias=AliasChoices("quiz_id", "quizId"))
    score: float | None = Field(default=None, ge=0, le=100)


class FullscreenToggleData(_Payload):
    kind: Literal["fullscreen_toggle"] = "fullscreen_toggle"
    enabled: bool | None = Field(default=None, validation_alias=AliasChoices("enabled", "isFullscreen"))


class OtherData(_Payload):
    kind: Literal["other"] = "other"
    raw: dict[str, Any] = Field(default_factory=dict)


InteractionData = Annotated[
    Union[
        PlayData,
        PauseData,
        SeekData,
        NoteData,
        QuizCompletedData,
        FullscreenToggleData,
        OtherData,
    ],
    Field(discriminator="kind"),
]

_adapter: TypeAdapter[InteractionData] = TypeAdapter(InteractionData)


def classify_action(action: str) -> InteractionKind:
    """Map a client action name to its interaction kind."""
    return ACTION_KINDS.get(action.strip().lower(), InteractionKind.OTHER)


def parse_interaction(action: str, data: dict[str, Any] | None = None) -> InteractionData:
    """Parse client data into the payload model for the action's kind.

    Data that does not fit the kind's model (wrong types, out-of-range
    score) is dropped and an empty payload of the same kind is returned, so
    the interaction still counts with its proper weight.
    """
    data = data or {}
    kind = classify_action(action)
    if kind is InteractionKind.OTHER:
        return OtherData(raw=data)
    try:
        return _adapter.validate_python({**data, "kind": kind.value})
    except ValidationError:
        logger.debug("Discarding malformed %s payload: %r", kind.value, data)
        return _adapter.validate_python({"kind": kind.value})


def load_payload(stored: dict[str, Any]) -> InteractionData:
    """Rebuild a payload from its stored JSON form."""
    return _adapter.validate_python(stored)


def video_position(payload: InteractionData) -> float | None:
    """Video timestamp the interaction happened at, where the payload carries one."""
    if isinstance(payload, (PlayData, PauseData, NoteData)):
        return payload.position_seconds
    if isinstance(payload, SeekData):
        return payload.to_seconds
    return None
