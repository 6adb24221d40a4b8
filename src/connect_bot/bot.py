"""Connect string state machine."""
from __future__ import annotations

import enum
import threading
import time
from typing import Callable, Optional, Protocol, Sequence

from .config import SELF_NAME
from .events import ChannelRef, Connected, Event, TextMessage, UserChange, UserRef
from .logging import get_logger

log = get_logger(__name__)

TRIGGER = "connect"
RECEIVED_PREFIX = "Connect received: "
# Gives the server time to apply our own move before roster events are handled.
SETTLE_DELAY = 1.0


class Gateway(Protocol):
    def send_to_user(self, user: UserRef, text: str) -> None: ...

    def find_channel(self, path: Sequence[str]) -> Optional[ChannelRef]: ...

    def move_self(self, channel: ChannelRef) -> None: ...

    def self_channel(self) -> Optional[ChannelRef]: ...

    def self_channel_occupants(self) -> int: ...


class BotMode(enum.Enum):
    IDLE = "idle"
    ARMED = "armed"


class ConnectBot:
    """Holds the connect string and reacts to session events.

    Every event goes through :meth:`handle`, which serializes transitions on a
    single lock so the occupancy check and the reset that follows it are never
    split by another event.
    """

    def __init__(
        self,
        gateway: Gateway,
        default_connect_string: str = "",
        channel_path: Sequence[str] = (),
        self_name: str = SELF_NAME,
        settle_delay: float = SETTLE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._gateway = gateway
        self._default = default_connect_string
        self._channel_path = tuple(channel_path)
        self._self_name = self_name
        self._settle_delay = settle_delay
        self._sleep = sleep
        self._connect_string = ""
        self._lock = threading.Lock()
        self._handlers = {
            Connected: self.on_connected,
            TextMessage: self.on_text_message,
            UserChange: self.on_user_change,
        }

    @property
    def connect_string(self) -> str:
        return self._connect_string

    @property
    def default_connect_string(self) -> str:
        return self._default

    @property
    def channel_path(self) -> tuple[str, ...]:
        return self._channel_path

    @property
    def mode(self) -> BotMode:
        if self._connect_string in ("", self._default):
            return BotMode.IDLE
        return BotMode.ARMED

    def handle(self, event: Event) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            log.debug("Ignoring unknown event %r", event)
            return
        with self._lock:
            try:
                handler(event)
            except Exception:
                log.exception("Failed to handle %s", type(event).__name__)

    def on_connected(self, event: Connected) -> None:
        if self._channel_path:
            self._move_to_target()
        self._reset()
        self._sleep(self._settle_delay)

    def on_text_message(self, event: TextMessage) -> None:
        if TRIGGER not in event.body:
            return
        self._connect_string = event.body
        if event.sender is None:
            log.warning("Connect: %s received from unknown sender, no reply sent", event.body)
            return
        self._send(event.sender, RECEIVED_PREFIX + self._connect_string)
        log.info("Connect: %s received from %s", self._connect_string, event.sender.name)

    def on_user_change(self, event: UserChange) -> None:
        user = event.user
        if event.connected:
            if not self._is_self(user) and self._in_my_channel(user):
                log.info("%s connected.", user.name)

        if event.channel_changed:
            log.info("%s changed channel to %s.", user.name, user.channel.name if user.channel else "?")
            self._reset_if_alone()
            if not self._is_self(user) and self._in_my_channel(user):
                log.debug("Current connect string: %r", self._connect_string)
                if self._connect_string:
                    self._send(user, self._connect_string)
                    log.info("Sent connect to %s", user.name)

        if event.disconnected:
            log.info("%s disconnected.", user.name)
            log.info("Users: %d", self._occupants())
            self._reset_if_alone()

    def _move_to_target(self) -> None:
        try:
            channel = self._gateway.find_channel(self._channel_path)
            if channel is None:
                log.warning("Channel %s not found, staying put", "/".join(self._channel_path))
                return
            self._gateway.move_self(channel)
        except Exception:
            log.exception("Failed to move to %s", "/".join(self._channel_path))
            return
        log.info("Connected.")

    def _reset(self) -> None:
        self._connect_string = self._default

    def _reset_if_alone(self) -> None:
        if self._occupants() == 1:
            self._reset()

    def _occupants(self) -> int:
        if self._gateway.self_channel() is None:
            return 0
        return self._gateway.self_channel_occupants()

    def _is_self(self, user: UserRef) -> bool:
        return user.name == self._self_name

    def _in_my_channel(self, user: UserRef) -> bool:
        mine = self._gateway.self_channel()
        return mine is not None and user.channel == mine

    def _send(self, user: UserRef, text: str) -> None:
        try:
            self._gateway.send_to_user(user, text)
        except Exception:
            log.exception("Failed to send to %s", user.name)
