"""ls-refs command: reference advertisement in protocol v2.

    output = *ref
             flush-pkt
    ref = PKT-LINE(obj-id-or-unborn SP refname *(SP ref-attribute) LF)
    ref-attribute = (symref | peeled)
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .arguments import CommandArgument, CommandArguments
from .capabilities import Capabilities
from .command import CommandRequest
from .errors import MalformedLineError, UnexpectedTerminatorError
from .pktline import PacketType, PktLine, Scanner, decode_text, encode_text

# Show the underlying ref of a symbolic ref as a symref-target attribute.
ARGUMENT_SYMREFS = "symrefs"
# Show peeled tags.
ARGUMENT_PEEL = "peel"
# Only show refs matching one of the given prefixes. Purely an
# optimization: the server MAY send others and clients should filter.
ARGUMENT_REF_PREFIX = "ref-prefix"
# Send HEAD even when it points to an unborn branch, as
# "unborn HEAD symref-target:<target>".
ARGUMENT_UNBORN = "unborn"

UNBORN = "unborn"


@dataclass
class Reference:
    """One advertised ref."""

    object_id: str
    name: str
    attributes: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return ' '.join([self.object_id, self.name] + self.attributes)

    def encode_into(self, buf: bytearray) -> bytearray:
        return PktLine.append(buf, encode_text(str(self) + '\n'))

    def encode(self) -> bytes:
        return bytes(self.encode_into(bytearray()))

    @property
    def unborn(self) -> bool:
        return self.object_id == UNBORN

    @classmethod
    def parse(cls, line: bytes, strict: bool = False) -> 'Reference':
        """Parse a ref line.

        Every space after the name starts a new attribute, so two adjacent
        spaces produce an empty attribute. An empty name is accepted unless
        ``strict`` is set.
        """
        if not line.endswith(b'\n'):
            raise MalformedLineError('ref', line)
        text = decode_text(line[:-1])
        object_id, sep, remaining = text.partition(' ')
        if not sep:
            raise MalformedLineError('ref', line)
        name, *attributes = remaining.split(' ')
        if strict and not name:
            raise MalformedLineError('ref', line)
        return cls(object_id, name, attributes)


@dataclass
class ListReferencesResponse:
    references: List[Reference] = field(default_factory=list)

    def encode_into(self, buf: bytearray) -> bytearray:
        for ref in self.references:
            ref.encode_into(buf)
        return PktLine.append_flush(buf)

    def encode(self) -> bytes:
        return bytes(self.encode_into(bytearray()))

    def map(self) -> Dict[str, str]:
        """Map ref names to object ids; later duplicates win."""
        return {ref.name: ref.object_id for ref in self.references}

    @classmethod
    def parse(cls, scanner: Scanner, strict: bool = False) -> 'ListReferencesResponse':
        response = cls()
        while True:
            packet = scanner.scan()
            if packet.type is PacketType.FLUSH:
                return response
            if packet.type is not PacketType.DATA:
                raise UnexpectedTerminatorError(packet.type, 'ls-refs response')
            response.references.append(Reference.parse(packet.data, strict=strict))


def build_ls_refs_request(
    symrefs: bool = False,
    peel: bool = False,
    unborn: bool = False,
    ref_prefixes: Iterable[str] = (),
    capabilities: Optional[Capabilities] = None,
) -> CommandRequest:
    """Build an ls-refs command request.

    Args:
        symrefs: Ask for symref-target attributes
        peel: Ask for peeled attributes on annotated tags
        unborn: Ask for an unborn HEAD to be reported
        ref_prefixes: Limit the output to refs with these prefixes
        capabilities: Client capabilities to send

    Returns:
        CommandRequest ready to encode
    """
    arguments = CommandArguments()
    if symrefs:
        arguments.append(CommandArgument(ARGUMENT_SYMREFS))
    if peel:
        arguments.append(CommandArgument(ARGUMENT_PEEL))
    if unborn:
        arguments.append(CommandArgument(ARGUMENT_UNBORN))
    for prefix in ref_prefixes:
        arguments.append(CommandArgument(ARGUMENT_REF_PREFIX, prefix))

    return CommandRequest(
        command="ls-refs",
        capabilities=capabilities if capabilities is not None else Capabilities(),
        arguments=arguments,
    )
