"""Events delivered by the session to the bot."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class ChannelRef:
    id: int
    name: str


@dataclass(frozen=True)
class UserRef:
    session: int
    name: str
    channel: Optional[ChannelRef] = None


@dataclass(frozen=True)
class Connected:
    """Session established and synced with the server."""


@dataclass(frozen=True)
class TextMessage:
    sender: Optional[UserRef]
    body: str


@dataclass(frozen=True)
class UserChange:
    """A roster change. Flags are independent and may be combined."""

    user: UserRef
    connected: bool = False
    channel_changed: bool = False
    disconnected: bool = False


Event = Union[Connected, TextMessage, UserChange]
