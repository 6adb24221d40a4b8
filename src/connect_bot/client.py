from __future__ import annotations

import queue
import ssl
import threading
from typing import Any, Callable, Optional, Sequence

from .bot import ConnectBot
from .config import BotConfig
from .events import ChannelRef, Connected, Event, TextMessage, UserChange, UserRef
from .logging import get_logger

log = get_logger(__name__)

_STOP = object()


class SessionError(Exception):
    pass


class CertificateError(SessionError):
    pass


class ConnectionFailed(SessionError):
    pass


def load_certificate(certfile: str, keyfile: str = "") -> None:
    """Fail early on a broken client identity instead of inside the transport thread."""
    if not certfile:
        return
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    try:
        context.load_cert_chain(certfile, keyfile or certfile)
    except (ssl.SSLError, OSError) as exc:
        raise CertificateError(f"{certfile}: {exc}") from exc


def _load_constants() -> Any:
    from pymumble_py3 import constants

    return constants


def _inline_callbacks() -> Any:
    """pymumble's callback table with text messages run on the receive thread.

    Stock pymumble starts a new thread per text message, so a roster change
    received later could reach the event queue first.
    """
    from pymumble_py3.callbacks import CallBacks

    class InlineCallBacks(CallBacks):
        def call_callback(self, callback, *pos_parameters):
            for func in self.get(callback) or ():
                func(*pos_parameters)

        __call__ = call_callback

    return InlineCallBacks()


def _channel_ref(channel: Any) -> ChannelRef:
    return ChannelRef(id=int(channel["channel_id"]), name=str(channel.get("name", "")))


class MumbleSession:
    """Adapts a pymumble connection to the bot's gateway interface.

    pymumble invokes callbacks on its own receive thread (text messages
    included, see :func:`_inline_callbacks`). They are turned into events and
    queued for a single worker thread, so the bot sees them one at a time in
    delivery order and never stalls the receive loop.
    """

    def __init__(
        self,
        config: BotConfig,
        mumble: Any = None,
        constants: Any = None,
        callbacks_factory: Callable[[], Any] = _inline_callbacks,
    ) -> None:
        self._config = config
        self._mumble = mumble
        self._constants = constants
        self._callbacks_factory = callbacks_factory
        self._events: "queue.Queue[object]" = queue.Queue()
        self._disconnected = threading.Event()

    @property
    def mumble(self) -> Any:
        return self._mumble

    def _create_mumble(self) -> Any:
        import pymumble_py3 as pymumble

        server = self._config.server
        keyfile = server.keyfile or server.certfile
        return pymumble.Mumble(
            server.host,
            self._config.identity.username,
            port=server.port,
            password=self._config.password or "",
            certfile=server.certfile or None,
            keyfile=keyfile or None,
            reconnect=False,
        )

    @property
    def constants(self) -> Any:
        if self._constants is None:
            self._constants = _load_constants()
        return self._constants

    def _register_callbacks(self) -> None:
        constants = self.constants
        callbacks = self._mumble.callbacks = self._callbacks_factory()
        callbacks.set_callback(constants.PYMUMBLE_CLBK_CONNECTED, self._on_connected)
        callbacks.set_callback(constants.PYMUMBLE_CLBK_DISCONNECTED, self._on_disconnected)
        callbacks.set_callback(constants.PYMUMBLE_CLBK_TEXTMESSAGERECEIVED, self._on_text_message)
        callbacks.set_callback(constants.PYMUMBLE_CLBK_USERCREATED, self._on_user_created)
        callbacks.set_callback(constants.PYMUMBLE_CLBK_USERUPDATED, self._on_user_updated)
        callbacks.set_callback(constants.PYMUMBLE_CLBK_USERREMOVED, self._on_user_removed)

    def connect(self) -> None:
        """Dial, authenticate and block until the server has synced us."""
        server = self._config.server
        load_certificate(server.certfile, server.keyfile)
        log.warning(
            "The Mumble transport never verifies the server certificate (insecure=%s)",
            server.insecure,
        )
        if self._mumble is None:
            self._mumble = self._create_mumble()
        self._register_callbacks()
        log.info(
            "Connecting to %s as %s",
            server.address,
            self._config.identity.username,
        )
        self._mumble.start()
        self._mumble.is_ready()
        if self._mumble.connected != self.constants.PYMUMBLE_CONN_STATE_CONNECTED:
            raise ConnectionFailed(f"could not connect to {server.address}")

    def close(self) -> None:
        if self._mumble is not None:
            self._mumble.stop()

    def serve(self, bot: ConnectBot) -> None:
        """Feed events to ``bot`` until the server disconnects us."""
        worker = threading.Thread(target=self.dispatch, args=(bot,), name="connect-bot-events", daemon=True)
        worker.start()
        try:
            self._disconnected.wait()
        except KeyboardInterrupt:
            log.info("Interrupted, disconnecting")
            self._on_disconnected()
            self.close()
        worker.join()

    def dispatch(self, bot: ConnectBot) -> None:
        while True:
            item = self._events.get()
            if item is _STOP:
                return
            try:
                bot.handle(item)
            except Exception:
                log.exception("Dropped %r", item)

    def post(self, event: Event) -> None:
        self._events.put(event)

    # Gateway

    def send_to_user(self, user: UserRef, text: str) -> None:
        target = self._mumble.users.get(user.session)
        if target is None:
            log.warning("%s left before the message could be sent", user.name)
            return
        target.send_text_message(text)

    def find_channel(self, path: Sequence[str]) -> Optional[ChannelRef]:
        from pymumble_py3.errors import UnknownChannelError

        try:
            return _channel_ref(self._mumble.channels.find_by_tree(list(path)))
        except UnknownChannelError:
            return None

    def move_self(self, channel: ChannelRef) -> None:
        self._mumble.channels[channel.id].move_in()

    def self_channel(self) -> Optional[ChannelRef]:
        channel = self._my_channel()
        return _channel_ref(channel) if channel is not None else None

    def self_channel_occupants(self) -> int:
        channel = self._my_channel()
        return len(channel.get_users()) if channel is not None else 0

    def _my_channel(self) -> Any:
        myself = self._mumble.users.myself
        if myself is None:
            return None
        return self._mumble.channels.get(myself.get("channel_id", 0))

    # pymumble callbacks

    def _user_ref(self, user: Any) -> UserRef:
        channel = self._mumble.channels.get(user.get("channel_id", 0))
        return UserRef(
            session=int(user["session"]),
            name=str(user.get("name", "")),
            channel=_channel_ref(channel) if channel is not None else None,
        )

    def _on_connected(self) -> None:
        log.debug("Session synced")
        self.post(Connected())

    def _on_disconnected(self) -> None:
        if self._disconnected.is_set():
            return
        log.info("Disconnected from %s", self._config.server.address)
        self._disconnected.set()
        self._events.put(_STOP)

    def _on_text_message(self, message: Any) -> None:
        sender = self._mumble.users.get(message.actor)
        self.post(TextMessage(sender=self._user_ref(sender) if sender is not None else None, body=message.message))

    def _on_user_created(self, user: Any) -> None:
        # A newly connected user also lands in a channel.
        self.post(UserChange(self._user_ref(user), connected=True, channel_changed=True))

    def _on_user_updated(self, user: Any, actions: dict) -> None:
        if "channel_id" in actions:
            self.post(UserChange(self._user_ref(user), channel_changed=True))

    def _on_user_removed(self, user: Any, message: Any = None) -> None:
        self.post(UserChange(self._user_ref(user), disconnected=True))


def run_bot(config: BotConfig, session: Optional[MumbleSession] = None) -> ConnectBot:
    """Connect and serve until disconnected. Raises :class:`SessionError` on startup failure."""
    session = session or MumbleSession(config)
    bot = ConnectBot(
        session,
        default_connect_string=config.channel.default_string,
        channel_path=config.channel.path,
        self_name=config.identity.self_name,
    )
    try:
        session.connect()
    except SessionError:
        session.close()
        raise
    session.serve(bot)
    return bot
