from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, StrictInt, TypeAdapter


class IdentifyPlayerMessage(BaseModel):
    type: Literal["identify_player"]
    nicknames: tuple[str, str] | None = None
    partialPublicIPs: tuple[str, str] | None = None


class WatchMessage(BaseModel):
    type: Literal["watch"]


class InputsMessage(BaseModel):
    type: Literal["inputs"]
    value: StrictInt


class OptionsMessage(BaseModel):
    type: Literal["options"]
    options: Any = None


class ChatMessage(BaseModel):
    type: Literal["chat"]
    whichPlayerSide: StrictInt
    chatMessage: str


RelayMessage = Annotated[
    Union[
        IdentifyPlayerMessage,
        WatchMessage,
        InputsMessage,
        OptionsMessage,
        ChatMessage,
    ],
    Field(discriminator="type"),
]

relay_message_adapter: TypeAdapter[RelayMessage] = TypeAdapter(RelayMessage)


def parse_relay_message(data: dict[str, Any]) -> RelayMessage:
    """Validate a decoded JSON object; raises ``pydantic.ValidationError``."""
    return relay_message_adapter.validate_python(data)
