"""Capability advertisement.

    capability-advertisement = protocol-version capability-list flush-pkt
    protocol-version = PKT-LINE("version 2" LF)
"""

import logging
from dataclasses import dataclass, field

from .capabilities import Capabilities
from .errors import MalformedLineError, UnexpectedTerminatorError
from .pktline import PacketType, PktLine, Scanner, encode_text

logger = logging.getLogger(__name__)

VERSION_LINE = b"version 2\n"
DEFAULT_SERVICE = "git-upload-pack"


@dataclass
class CapabilityAdvertisement:
    capabilities: Capabilities = field(default_factory=Capabilities)

    def encode_into(self, buf: bytearray) -> bytearray:
        PktLine.append(buf, VERSION_LINE)
        self.capabilities.encode_into(buf)
        return PktLine.append_flush(buf)

    def encode(self) -> bytes:
        return bytes(self.encode_into(bytearray()))

    @classmethod
    def parse(cls, scanner: Scanner) -> 'CapabilityAdvertisement':
        """Parse an advertisement, consuming everything up to its flush-pkt.

        Raises:
            MalformedLineError: If the first line is not exactly "version 2"
            UnexpectedTerminatorError: If the capability-list is not ended
                by a flush-pkt
        """
        packet = scanner.scan()
        if packet.type is not PacketType.DATA:
            raise UnexpectedTerminatorError(packet.type, 'protocol-version')
        if packet.data != VERSION_LINE:
            raise MalformedLineError('protocol-version', packet.data)

        advertisement = cls()
        terminator = advertisement.capabilities.read(scanner)
        if terminator is not PacketType.FLUSH:
            raise UnexpectedTerminatorError(terminator, 'capability-advertisement')

        logger.debug("server capabilities: %s", advertisement.capabilities)
        return advertisement

    @classmethod
    def parse_smart_http(cls, scanner: Scanner, service: str = DEFAULT_SERVICE) -> 'CapabilityAdvertisement':
        """Parse an info/refs body: "# service=<service>" line, flush, advertisement."""
        expected = encode_text(f"# service={service}\n")
        packet = scanner.scan()
        if packet.type is not PacketType.DATA:
            raise UnexpectedTerminatorError(packet.type, 'smart-http response')
        if packet.data != expected:
            raise MalformedLineError('smart-http response', packet.data)

        packet = scanner.scan()
        if packet.type is not PacketType.FLUSH:
            raise MalformedLineError('smart-http response', packet.data)

        return cls.parse(scanner)
