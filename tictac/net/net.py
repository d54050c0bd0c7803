from __future__ import annotations

import logging
import socket
import time
from typing import Callable, List, Optional, Tuple, Union

from .. import config
from ..errors import HandshakeTimeout, ProtocolError
from .protocol import Message, MessageType, decode, encode, read_message

logger = logging.getLogger(__name__)

Address = Tuple[str, int]


# --------------------------- Links ---------------------------

class StreamLink:
    """TCP link. Messages are read field by field with exact-length reads."""

    reliable = True

    def __init__(self, sock: socket.socket, server: Optional[socket.socket] = None) -> None:
        self.sock = sock
        self.server = server
        self.peer_addr = sock.getpeername()
        self.set_timeout(config.LINK_TIMEOUT)

    def set_timeout(self, timeout: Optional[float]) -> None:
        self.sock.settimeout(timeout)

    def _recv_exact(self, num_bytes: int) -> bytes:
        chunks = []
        remaining = num_bytes
        while remaining > 0:
            try:
                chunk = self.sock.recv(remaining)
            except socket.timeout:
                # a message has started arriving, so keep waiting for the rest
                continue
            if not chunk:
                raise ConnectionError("socket closed")
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def read(self) -> Optional[Message]:
        try:
            head = self.sock.recv(1)
        except socket.timeout:
            return None
        if not head:
            raise ConnectionError("socket closed")
        pending: List[bytes] = [head]

        def read_exact(num_bytes: int) -> bytes:
            if pending:
                return pending.pop()
            return self._recv_exact(num_bytes)

        msg = read_message(read_exact)
        logger.debug("READ %s from %s", msg.type.name, self.peer_addr)
        return msg

    def write(self, msg: Message) -> None:
        logger.debug("WRITE %s to %s", msg.type.name, self.peer_addr)
        self.sock.sendall(encode(msg))

    def close(self) -> None:
        for sock in (self.sock, self.server):
            if sock is None:
                continue
            try:
                sock.close()
            except OSError:
                pass


class DatagramLink:
    """UDP link to a single peer; one message per datagram."""

    reliable = False

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock
        self.peer_addr = sock.getpeername()

    def set_timeout(self, timeout: Optional[float]) -> None:
        self.sock.settimeout(timeout)

    def read(self) -> Optional[Message]:
        try:
            data = self.sock.recv(config.DATAGRAM_SIZE)
        except socket.timeout:
            return None
        msg = decode(data)
        logger.debug("READ %s from %s", msg.type.name, self.peer_addr)
        return msg

    def write(self, msg: Message) -> None:
        logger.debug("WRITE %s to %s", msg.type.name, self.peer_addr)
        self.sock.send(encode(msg))

    def close(self) -> None:
        try:
            self.sock.close()
        except OSError:
            pass


Link = Union[StreamLink, DatagramLink]


# --------------------------- Direct stream ---------------------------

def open_server(bind: str, port: int) -> StreamLink:
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        srv.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        srv.bind((bind, port))
        srv.listen(1)
        conn, addr = srv.accept()
    except BaseException:
        srv.close()
        raise
    logger.info("accepted connection from %s", format_address(addr))
    return StreamLink(conn, server=srv)


def open_client(host: str, port: int) -> StreamLink:
    sock = socket.create_connection((host, port))
    logger.info("connected to %s:%d", host, port)
    return StreamLink(sock)


# --------------------------- Relayed datagram ---------------------------

def parse_address(text: str) -> Address:
    host, sep, port = text.strip().rpartition(":")
    host = host.strip("[]")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"invalid address: {text!r}")
    return host, int(port)


def format_address(addr: Tuple) -> str:
    return f"{addr[0]}:{addr[1]}"


def discover_peer(sock: socket.socket, game_id: str, relay: Address, timeout: Optional[float] = None) -> Address:
    """Ask the relay for the address of the other player of ``game_id``.

    Blocks until the relay pairs us (or ``timeout`` expires). Datagrams from
    anyone but the relay, e.g. an early handshake from the peer, are dropped.
    """
    relay_addr = (socket.gethostbyname(relay[0]), relay[1])
    sock.settimeout(timeout)
    sock.sendto(f"{config.DISCOVERY_PREFIX}{game_id}".encode("utf-8"), relay_addr)
    while True:
        data, addr = sock.recvfrom(config.DATAGRAM_SIZE)
        if addr[:2] != relay_addr:
            logger.debug("ignoring %d bytes from %s while waiting for relay", len(data), format_address(addr))
            continue
        return parse_address(data.decode("ascii"))


def perform_handshake(
    link: Link,
    is_host: bool,
    attempts: int = config.HANDSHAKE_ATTEMPTS,
    timeout: float = config.HANDSHAKE_TIMEOUT,
    retry_pause: float = config.HANDSHAKE_RETRY_PAUSE,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    link.set_timeout(timeout)
    for attempt in range(1, attempts + 1):
        try:
            if is_host:
                link.write(Message.handshake())
            msg = link.read()
        except (ProtocolError, OSError) as exc:
            logger.warning("handshake attempt %d failed: %s", attempt, exc)
            msg = None
        else:
            if msg is None:
                logger.warning("handshake attempt %d timed out", attempt)

        if msg is None:
            sleep(retry_pause)
            continue
        if msg.type == MessageType.HANDSHAKE:
            logger.info("handshake received from %s", format_address(link.peer_addr))
            link.write(Message.handshake_ack())
            return
        if msg.type == MessageType.HANDSHAKE_ACK:
            logger.info("handshake acknowledged by %s", format_address(link.peer_addr))
            return
        logger.warning("unexpected %s during handshake", msg.type.name)

    raise HandshakeTimeout(f"handshake timed out after {attempts} attempts")


def connect_relayed(game_id: str, relay: Address, is_host: bool) -> DatagramLink:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.bind(("0.0.0.0", 0))
        peer = discover_peer(sock, game_id, relay)
        logger.info("relay paired game %r with %s", game_id, format_address(peer))
        sock.connect(peer)
        link = DatagramLink(sock)
        perform_handshake(link, is_host)
    except BaseException:
        sock.close()
        raise
    link.set_timeout(config.LINK_TIMEOUT)
    return link


def connect(
    is_host: bool,
    address: Optional[str] = None,
    port: int = config.DEFAULT_PORT,
    bind: str = "0.0.0.0",
    game_id: Optional[str] = None,
    relay: Optional[str] = None,
) -> Link:
    """Establish the link to the other player.

    With ``game_id`` the relay at ``relay`` ("host:port") pairs both sides over
    UDP; otherwise the host listens on ``bind:port`` and the joiner dials
    ``address:port`` over TCP.
    """
    if game_id is not None:
        if relay is None:
            raise ValueError("a relay address is required to join by game id")
        return connect_relayed(game_id, parse_address(relay), is_host)
    if is_host:
        return open_server(bind, port)
    if address is None:
        raise ValueError("an address is required to join without a game id")
    return open_client(address, port)
