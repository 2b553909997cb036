"""Command request.

    request = empty-request | command-request
    command-request = command
                      capability-list
                      delim-pkt
                      command-args
                      flush-pkt
    command = PKT-LINE("command=" key LF)
"""

from dataclasses import dataclass, field

from .arguments import CommandArguments
from .capabilities import Capabilities
from .errors import MalformedLineError, UnexpectedTerminatorError
from .pktline import PacketType, PktLine, Scanner, decode_text, encode_text

COMMAND_PREFIX = b"command="


@dataclass
class CommandRequest:
    command: str
    capabilities: Capabilities = field(default_factory=Capabilities)
    arguments: CommandArguments = field(default_factory=CommandArguments)

    def encode_into(self, buf: bytearray) -> bytearray:
        PktLine.append(buf, COMMAND_PREFIX + encode_text(self.command) + b"\n")
        self.capabilities.encode_into(buf)
        PktLine.append_delim(buf)
        self.arguments.encode_into(buf)
        return PktLine.append_flush(buf)

    def encode(self) -> bytes:
        return bytes(self.encode_into(bytearray()))

    @classmethod
    def parse(cls, scanner: Scanner) -> 'CommandRequest':
        """Parse a command request up to and including its flush-pkt."""
        packet = scanner.scan()
        if packet.type is not PacketType.DATA:
            raise UnexpectedTerminatorError(packet.type, 'command-request')

        line = packet.data
        if not line.endswith(b"\n") or not line.startswith(COMMAND_PREFIX):
            raise MalformedLineError('command-request', line)
        command = decode_text(line[len(COMMAND_PREFIX):-1])
        if not command:
            raise MalformedLineError('command-request', line)

        request = cls(command)
        terminator = request.capabilities.read(scanner)
        if terminator is not PacketType.DELIM:
            raise UnexpectedTerminatorError(terminator, 'command-request capability-list')
        terminator = request.arguments.read(scanner)
        if terminator is not PacketType.FLUSH:
            raise UnexpectedTerminatorError(terminator, 'command-request arguments')
        return request
