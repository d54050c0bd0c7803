from __future__ import annotations

import logging
import queue
import threading
import time
from enum import Enum
from typing import Callable, Optional

from . import config
from .errors import FormatError, ProtocolError, SessionError
from .game import Game, GameState, Player
from .net import state_codec
from .net.net import Link
from .net.protocol import Message, MessageType
from .reconcile import RejectReason, validate

logger = logging.getLogger(__name__)


class NetLinkState(Enum):
    ACTIVE = "active"
    WAITING = "waiting"


class NetworkPeer:
    """Runs the receive and send loops for a link on two worker threads.

    The threads only move whole messages through the queues; game state is
    never touched off the main loop.
    """

    def __init__(self, link: Link) -> None:
        self.link = link
        self.recv_queue: "queue.Queue[Message]" = queue.Queue()
        self.send_queue: "queue.Queue[Message]" = queue.Queue()
        self.stopped = threading.Event()
        self.error: Optional[BaseException] = None
        self.recv_thread = threading.Thread(target=self._recv_loop, daemon=True)
        self.send_thread = threading.Thread(target=self._send_loop, daemon=True)

    def start(self) -> None:
        self.recv_thread.start()
        self.send_thread.start()

    def _fail(self, exc: BaseException) -> None:
        if self.stopped.is_set():
            return
        logger.error("network loop stopped: %s", exc)
        self.error = exc

    def _recv_loop(self) -> None:
        try:
            while not self.stopped.is_set():
                msg = self.link.read()
                if msg is not None:
                    self.recv_queue.put(msg)
        except (ProtocolError, OSError) as exc:
            self._fail(exc)

    def _send_loop(self) -> None:
        try:
            while not self.stopped.is_set():
                try:
                    msg = self.send_queue.get(timeout=config.LINK_TIMEOUT)
                except queue.Empty:
                    continue
                self.link.write(msg)
        except (ProtocolError, OSError) as exc:
            self._fail(exc)

    def send(self, msg: Message) -> None:
        self.send_queue.put(msg)

    def try_get(self, timeout: float = 0.0) -> Optional[Message]:
        try:
            return self.recv_queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        self.stopped.set()
        self.link.close()


class Match:
    """Main-loop controller shared by the terminal and pygame front-ends.

    Without a peer both players share the keyboard. With a peer the local
    side plays ``local_player`` and every accepted move is proposed to the
    other side, which answers with ACCEPTED or REJECTED.
    """

    def __init__(
        self,
        peer: Optional[NetworkPeer] = None,
        local_player: Optional[Player] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if peer is not None and local_player is None:
            raise ValueError("a networked match needs the local player")
        self.game = Game()
        self.peer = peer
        self.local_player = local_player
        self.net_state = NetLinkState.ACTIVE
        self.notice = ""
        self._clock = clock
        self._snapshot: Optional[GameState] = None
        self._pending: Optional[Message] = None
        self._sent_at = 0.0

    @property
    def state(self) -> GameState:
        return self.game.state

    @property
    def networked(self) -> bool:
        return self.peer is not None

    @property
    def remote_player(self) -> Optional[Player]:
        return self.local_player.other() if self.local_player is not None else None

    def is_my_turn(self) -> bool:
        if not self.state.active:
            return False
        if not self.networked:
            return True
        return self.net_state is NetLinkState.ACTIVE and self.state.current_player is self.local_player

    # --------------------------- Local input ---------------------------
    def place(self, index: int, player: Optional[Player] = None) -> bool:
        if not self.networked:
            return self.game.attempt_placing(index, player or self.state.current_player)

        player = player or self.local_player
        if player is not self.local_player or self.net_state is NetLinkState.WAITING:
            return False
        snapshot = self.state.copy()
        if not self.game.attempt_placing(index, player):
            return False
        self._snapshot = snapshot
        self.notice = ""
        self._pending = Message.with_payload(state_codec.encode(self.state))
        self._transmit()
        self.net_state = NetLinkState.WAITING
        return True

    def restart(self) -> bool:
        # a restart cannot be agreed on over the link, so it is local only
        if self.networked:
            return False
        self.game.restart()
        self.notice = ""
        return True

    # --------------------------- Network ---------------------------
    def _transmit(self) -> None:
        self.peer.send(self._pending)
        self._sent_at = self._clock()

    def _settle(self) -> None:
        self.net_state = NetLinkState.ACTIVE
        self._snapshot = None
        self._pending = None

    def poll_network(self, timeout: float = config.TICK_WAIT) -> Optional[Message]:
        if self.peer is None:
            return None
        if self.peer.error is not None:
            raise SessionError(f"connection to peer lost: {self.peer.error}") from self.peer.error
        msg = self.peer.try_get(timeout)
        if msg is not None:
            self.handle_message(msg)
        return msg

    def handle_message(self, msg: Message) -> None:
        if msg.type == MessageType.PAYLOAD:
            self._handle_state(msg.payload)
        elif msg.type == MessageType.ACCEPTED:
            if self.net_state is not NetLinkState.WAITING:
                return
            if self.peer.link.reliable:
                self._settle()
            else:
                # may answer an older copy; only the peer's next state settles
                logger.debug("accepted while waiting on round %d, still resending", self.state.round)
        elif msg.type == MessageType.REJECTED:
            if self.net_state is NetLinkState.WAITING:
                logger.warning("peer rejected our move for round %d", self.state.round)
                self.game.state = self._snapshot
                self.notice = "Move rejected by opponent"
                self._settle()
        elif msg.type == MessageType.HANDSHAKE:
            # the peer never saw our acknowledgement
            self.peer.send(Message.handshake_ack())

    def _handle_state(self, payload: bytes) -> None:
        try:
            proposed = state_codec.decode(payload)
        except FormatError as exc:
            raise SessionError(f"peer sent a malformed state: {exc}") from exc

        local = self.state
        if proposed == local:
            self.peer.send(Message.accepted())
            return
        if proposed.round < local.round:
            logger.debug("dropping stale state for round %d", proposed.round)
            return

        if local.current_player is not self.remote_player:
            reason: Optional[RejectReason] = RejectReason.WRONG_MOVER
        else:
            reason = validate(local, proposed, self.remote_player)
        if reason is not None:
            logger.warning("rejected peer state for round %d: %s", proposed.round, reason.value)
            self.peer.send(Message.rejected())
            return

        self.game.adopt(proposed)
        self._settle()
        self.notice = ""
        self.peer.send(Message.accepted())

    def tick(self) -> None:
        """Retransmit an unanswered move on links that may drop datagrams."""
        if self.peer is None or self.net_state is not NetLinkState.WAITING:
            return
        if self.peer.link.reliable:
            return
        if self._clock() - self._sent_at >= config.RESEND_INTERVAL:
            logger.info("no answer for round %d, resending", self.state.round)
            self._transmit()

    # --------------------------- Presentation ---------------------------
    def status_text(self) -> str:
        state = self.state
        if state.winner is not None:
            if self.networked:
                return "You win!" if state.winner is self.local_player else "You lose"
            return f"{state.winner.mark} wins!"
        if not state.active:
            return "Draw"
        if self.notice:
            return self.notice
        if not self.networked:
            return f"{state.current_player.mark} to move"
        if self.net_state is NetLinkState.WAITING:
            return "Waiting for opponent to confirm..."
        if state.current_player is self.local_player:
            return f"Your turn ({self.local_player.mark})"
        return "Waiting for opponent..."

    def close(self) -> None:
        if self.peer is not None:
            self.peer.close()
