"""Shared codec for ``key[=value]`` capabilities and ``key[ value]`` arguments.

Both shapes are one pkt-line each and differ only in the separator and in
whether the line carries a trailing LF:

    capability = PKT-LINE(key[=value] LF)
    argument   = PKT-LINE(key[ SP value])
"""

from dataclasses import dataclass
from typing import ClassVar, Optional

from .errors import MalformedLineError, UnexpectedTerminatorError
from .pktline import PacketType, PktLine, Scanner, decode_text, encode_text


@dataclass
class Pair:
    """A key with an optional value. An empty ``value`` means no value."""

    key: str
    value: str = ''

    SEPARATOR: ClassVar[str] = '='
    LINE_FEED: ClassVar[bool] = True
    KIND: ClassVar[str] = 'pair'

    def __str__(self) -> str:
        if self.value:
            return self.key + self.SEPARATOR + self.value
        return self.key

    def encode_into(self, buf: bytearray) -> bytearray:
        line = str(self)
        if self.LINE_FEED:
            line += '\n'
        return PktLine.append(buf, encode_text(line))

    def encode(self) -> bytes:
        return bytes(self.encode_into(bytearray()))

    @classmethod
    def parse(cls, line: bytes):
        """Parse one pkt-line payload.

        Raises:
            MalformedLineError: If the LF is missing (when required), the key
                is empty, or a separator is followed by nothing
        """
        remaining = line
        if cls.LINE_FEED:
            if not remaining.endswith(b'\n'):
                raise MalformedLineError(cls.KIND, line)
            remaining = remaining[:-1]

        key, sep, value = decode_text(remaining).partition(cls.SEPARATOR)
        if not key or (sep and not value):
            raise MalformedLineError(cls.KIND, line)
        return cls(key, value)


class PairList(list):
    """Ordered pairs; wire order is preserved and lookups are first-match."""

    ITEM: ClassVar[type] = Pair

    def encode_into(self, buf: bytearray) -> bytearray:
        for pair in self:
            pair.encode_into(buf)
        return buf

    def encode(self) -> bytes:
        return bytes(self.encode_into(bytearray()))

    def lookup(self, key: str) -> Optional[Pair]:
        for pair in self:
            if pair.key == key:
                return pair
        return None

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Return the value of the first pair named ``key``.

        A pair without a value yields ``''``; a missing key yields ``default``.
        """
        pair = self.lookup(key)
        if pair is None:
            return default
        return pair.value

    def has(self, key: str) -> bool:
        return self.lookup(key) is not None

    def __contains__(self, item) -> bool:
        if isinstance(item, str):
            return self.has(item)
        return super().__contains__(item)

    def read(self, scanner: Scanner) -> PacketType:
        """Append pairs from the scanner until a section terminator.

        Returns:
            PacketType.FLUSH or PacketType.DELIM, whichever ended the list,
            so the caller can decide what comes next
        """
        while True:
            packet = scanner.scan()
            if packet.type is PacketType.DATA:
                self.append(self.ITEM.parse(packet.data))
            elif packet.type in (PacketType.FLUSH, PacketType.DELIM):
                return packet.type
            else:
                raise UnexpectedTerminatorError(packet.type, f"{self.ITEM.KIND}-list")
