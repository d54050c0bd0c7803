from __future__ import annotations

import io
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable

from ..errors import FramingError

# Wire format, one message per frame:
#   [tag:1][len:2 big-endian][payload:len]   for PAYLOAD
#   [tag:1]                                  for every other tag
# HANDSHAKE / HANDSHAKE_ACK are only exchanged on the relayed datagram link.

MAX_PAYLOAD = 0xFFFF
_LENGTH = struct.Struct("!H")


class MessageType(IntEnum):
    ACCEPTED = 0
    REJECTED = 1
    PAYLOAD = 2
    HANDSHAKE = 3
    HANDSHAKE_ACK = 4


@dataclass(frozen=True)
class Message:
    type: MessageType
    payload: bytes = b""

    @classmethod
    def accepted(cls) -> Message:
        return cls(MessageType.ACCEPTED)

    @classmethod
    def rejected(cls) -> Message:
        return cls(MessageType.REJECTED)

    @classmethod
    def handshake(cls) -> Message:
        return cls(MessageType.HANDSHAKE)

    @classmethod
    def handshake_ack(cls) -> Message:
        return cls(MessageType.HANDSHAKE_ACK)

    @classmethod
    def with_payload(cls, payload: bytes) -> Message:
        return cls(MessageType.PAYLOAD, bytes(payload))


def encode(msg: Message) -> bytes:
    if msg.type != MessageType.PAYLOAD:
        return bytes([msg.type])
    if len(msg.payload) > MAX_PAYLOAD:
        raise FramingError(f"payload too large: {len(msg.payload)} bytes")
    return bytes([msg.type]) + _LENGTH.pack(len(msg.payload)) + msg.payload


def read_message(read_exact: Callable[[int], bytes]) -> Message:
    """Decode one message from a reader.

    ``read_exact(n)`` must return ``n`` bytes, or fewer only when the source
    is exhausted. Stream sockets and datagram buffers both plug in here.
    """
    head = read_exact(1)
    if not head:
        raise FramingError("empty message")
    try:
        mtype = MessageType(head[0])
    except ValueError:
        raise FramingError(f"unknown message type {head[0]}") from None
    if mtype != MessageType.PAYLOAD:
        return Message(mtype)

    header = read_exact(_LENGTH.size)
    if len(header) < _LENGTH.size:
        raise FramingError("truncated payload length")
    (length,) = _LENGTH.unpack(header)
    payload = read_exact(length)
    if len(payload) < length:
        raise FramingError(f"incomplete payload: expected {length} bytes, got {len(payload)}")
    return Message(mtype, payload)


def decode(data: bytes) -> Message:
    buf = io.BytesIO(data)
    msg = read_message(buf.read)
    trailing = len(data) - buf.tell()
    if trailing:
        raise FramingError(f"{trailing} unexpected bytes after message")
    return msg
