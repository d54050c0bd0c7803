from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Callable, Dict, Tuple

from .. import config
from .net import format_address

logger = logging.getLogger(__name__)


class Relay:
    """UDP matchmaker pairing the two players that ask for the same game id."""

    def __init__(
        self,
        bind: str = "0.0.0.0",
        port: int = config.DEFAULT_RELAY_PORT,
        wait_ttl: float = config.RELAY_WAIT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind((bind, port))
        self.address = self.sock.getsockname()
        self.waiting: Dict[str, Tuple[str, int]] = {}
        self.waiting_since: Dict[str, float] = {}
        self.wait_ttl = wait_ttl
        self._clock = clock
        self.stopped = threading.Event()

    def expire(self) -> None:
        now = self._clock()
        for game_id, since in list(self.waiting_since.items()):
            if now - since >= self.wait_ttl:
                logger.info("forgetting %s waiting for game %r", format_address(self.waiting[game_id]), game_id)
                del self.waiting[game_id]
                del self.waiting_since[game_id]

    def handle(self, data: bytes, addr: Tuple[str, int]) -> None:
        self.expire()
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("dropping undecodable datagram from %s", format_address(addr))
            return
        if not text.startswith(config.DISCOVERY_PREFIX):
            logger.warning("dropping unknown request from %s: %r", format_address(addr), text[:32])
            return
        game_id = text[len(config.DISCOVERY_PREFIX):].strip()
        if not game_id:
            logger.warning("dropping request without game id from %s", format_address(addr))
            return

        other = self.waiting.get(game_id)
        if other is None or other == addr:
            self.waiting[game_id] = addr
            self.waiting_since[game_id] = self._clock()
            logger.info("%s waiting for game %r", format_address(addr), game_id)
            return
        del self.waiting[game_id]
        del self.waiting_since[game_id]
        self.sock.sendto(format_address(addr).encode("ascii"), other)
        self.sock.sendto(format_address(other).encode("ascii"), addr)
        logger.info("paired %s and %s for game %r", format_address(other), format_address(addr), game_id)

    def serve_forever(self, poll_interval: float = 0.5) -> None:
        self.sock.settimeout(poll_interval)
        while not self.stopped.is_set():
            try:
                data, addr = self.sock.recvfrom(config.DATAGRAM_SIZE)
            except socket.timeout:
                self.expire()
                continue
            except ConnectionResetError:
                # ICMP unreachable from a client that already went away
                continue
            except OSError:
                if self.stopped.is_set():
                    break
                raise
            self.handle(data, addr)

    def close(self) -> None:
        self.stopped.set()
        try:
            self.sock.close()
        except OSError:
            pass
