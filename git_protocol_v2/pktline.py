"""Git pkt-line framing (protocol v2 flavour).

Format: 4-byte hex length (including the 4 bytes) + data
Special values:
- "0000" = flush-pkt (end of message)
- "0001" = delim-pkt (end of a section within a message)
- "0002" = response-end-pkt (stateless connections only, unused here)

Reading returns a tagged ``Packet`` so that callers branch on flush and
delimiter explicitly instead of treating them as errors.
"""

import io
import string
from enum import Enum
from typing import BinaryIO, NamedTuple, Tuple

from .errors import MalformedLineError, MalformedSidebandError, TransportError

# Largest unit on the wire, header included
LARGE_PACKET_MAX = 65520
LARGE_PACKET_DATA_MAX = LARGE_PACKET_MAX - 4
# One byte of every side-band unit is the channel number
SIDEBAND_DATA_MAX = LARGE_PACKET_DATA_MAX - 1

SIDEBAND_PACK_DATA = 1
SIDEBAND_PROGRESS = 2
SIDEBAND_FATAL = 3


class PacketType(Enum):
    DATA = 'data'
    FLUSH = 'flush-pkt'
    DELIM = 'delim-pkt'
    RESPONSE_END = 'response-end-pkt'


class Packet(NamedTuple):
    """One unit read from the stream."""
    type: PacketType
    data: bytes = b''


FLUSH = Packet(PacketType.FLUSH)
DELIM = Packet(PacketType.DELIM)
RESPONSE_END = Packet(PacketType.RESPONSE_END)

_SPECIAL = {0: FLUSH, 1: DELIM, 2: RESPONSE_END}


def decode_text(data: bytes) -> str:
    """Decode a payload as UTF-8, keeping any other bytes as surrogates.

    Ref names and URIs are arbitrary bytes on the wire; encode_text()
    restores them unchanged.
    """
    return data.decode('utf-8', errors='surrogateescape')


def encode_text(text: str) -> bytes:
    return text.encode('utf-8', errors='surrogateescape')


class PktLine:
    """Git pkt-line encoder.

    The ``append*`` helpers write into a caller-owned ``bytearray`` so that a
    whole message can be composed into one growable buffer.
    """

    FLUSH = b"0000"
    DELIM = b"0001"
    RESPONSE_END = b"0002"

    @staticmethod
    def encode(data: bytes) -> bytes:
        """Encode data into pkt-line format.

        Args:
            data: Data to encode

        Returns:
            Pkt-line formatted data

        Raises:
            ValueError: If data does not fit in a single pkt-line
        """
        if len(data) > LARGE_PACKET_DATA_MAX:
            raise ValueError(f"pkt-line too long: {len(data)} bytes")
        length = len(data) + 4
        return f"{length:04x}".encode('ascii') + data

    @staticmethod
    def append(buf: bytearray, data: bytes) -> bytearray:
        buf += PktLine.encode(data)
        return buf

    @staticmethod
    def append_flush(buf: bytearray) -> bytearray:
        buf += PktLine.FLUSH
        return buf

    @staticmethod
    def append_delim(buf: bytearray) -> bytearray:
        buf += PktLine.DELIM
        return buf

    @staticmethod
    def append_sideband(buf: bytearray, channel: int, data: bytes) -> bytearray:
        """Append data on a side-band channel, split into maximum-size units.

        An empty ``data`` still produces one bare channel byte.
        """
        prefix = bytes([channel])
        if not data:
            return PktLine.append(buf, prefix)
        for offset in range(0, len(data), SIDEBAND_DATA_MAX):
            PktLine.append(buf, prefix + data[offset:offset + SIDEBAND_DATA_MAX])
        return buf

    @staticmethod
    def sideband(data: bytes) -> Tuple[int, bytes]:
        """Split a side-band unit into its channel number and payload."""
        if not data:
            raise MalformedSidebandError(data)
        return data[0], data[1:]


class Scanner:
    """Pulls pkt-lines one at a time from a binary stream."""

    def __init__(self, stream: BinaryIO):
        """Initialize the scanner.

        Args:
            stream: Anything with a ``read(n)`` method returning bytes
        """
        self.stream = stream

    @classmethod
    def from_bytes(cls, data: bytes) -> 'Scanner':
        return cls(io.BytesIO(data))

    def _read_exactly(self, n: int) -> bytes:
        buf = b""
        while len(buf) < n:
            try:
                chunk = self.stream.read(n - len(buf))
            except OSError as e:
                raise TransportError(f"read failed: {e}") from e
            if not chunk:
                if buf:
                    raise TransportError(
                        f"unexpected end of stream: need {n} bytes, have {len(buf)}"
                    )
                raise TransportError("unexpected end of stream")
            buf += chunk
        return buf

    def scan(self) -> Packet:
        """Read the next unit.

        Returns:
            A DATA packet with its payload, or one of FLUSH, DELIM,
            RESPONSE_END

        Raises:
            TransportError: If the stream fails or ends
            MalformedLineError: If the length header is not valid
        """
        header = self._read_exactly(4)
        if not all(chr(b) in string.hexdigits for b in header):
            raise MalformedLineError('pkt-line length', header)
        length = int(header, 16)

        if length in _SPECIAL:
            return _SPECIAL[length]
        if length < 4 or length > LARGE_PACKET_MAX:
            raise MalformedLineError('pkt-line length', header)

        return Packet(PacketType.DATA, self._read_exactly(length - 4))
