from __future__ import annotations


class ProtocolError(Exception):
    """Bytes received from the peer could not be understood."""


class FramingError(ProtocolError):
    pass


class FormatError(ProtocolError):
    pass


class HandshakeTimeout(ConnectionError):
    pass


class SessionError(RuntimeError):
    """The running match cannot continue (link desynchronized or closed)."""
