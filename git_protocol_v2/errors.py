"""Exceptions raised while encoding or decoding protocol v2 messages."""

from typing import Optional


class ProtocolError(Exception):
    """Base class for every error raised by this package."""


class MalformedLineError(ProtocolError):
    """A pkt-line failed a required literal, prefix or separator check."""

    def __init__(self, kind: str, line: bytes):
        self.kind = kind
        self.line = line
        super().__init__(f"invalid {kind}: {_quote(line)}")


class UnexpectedTerminatorError(ProtocolError):
    """A flush, delimiter or response-end arrived where none was allowed."""

    def __init__(self, packet_type, context: str):
        self.packet_type = packet_type
        self.context = context
        super().__init__(f"unexpected {packet_type.value} in {context}")


class UnknownSectionError(ProtocolError):
    """A fetch response contained a section header nobody understands."""

    def __init__(self, line: bytes):
        self.line = line
        super().__init__(f"unsupported pkt-line: {_quote(line)}")


class SectionOrderError(ProtocolError):
    """A fetch response section appeared out of the documented order."""

    def __init__(self, previous, section):
        self.previous = previous
        self.section = section
        super().__init__(f"section {section.value} cannot follow {previous.value}")


class MalformedSidebandError(ProtocolError):
    """A packfile unit started with a byte other than 1, 2 or 3."""

    def __init__(self, line: bytes):
        self.line = line
        super().__init__(f"invalid sideband: {_quote(line)}")


class RemoteFatalError(ProtocolError):
    """The server reported a fatal error on side-band channel 3."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"fatal: {message}")


class TransportError(ProtocolError):
    """The underlying byte stream failed or ended early."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


def _quote(line: bytes) -> str:
    """Render raw bytes the way they would be quoted in a log line."""
    return repr(line.decode('utf-8', errors='backslashreplace'))
