"""fetch command: response sections and side-band demultiplexing.

    output = acknowledgements flush-pkt |
             [acknowledgments delim-pkt] [shallow-info delim-pkt]
             [wanted-refs delim-pkt] [packfile-uris delim-pkt]
             packfile flush-pkt

Every section except ``packfile`` is optional. When the acknowledgements
contain NAK the server ends the response right after them with a flush-pkt.

Only the packfile section is read as side-band data, so the "sideband-all"
argument, which multiplexes every section, is not supported.

A section value of ``None`` on ``FetchResponse`` means the section is absent
from the wire; an empty value means the header is sent with no body.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional

from .arguments import CommandArgument, CommandArguments
from .capabilities import Capabilities
from .command import CommandRequest
from .errors import (
    MalformedLineError,
    MalformedSidebandError,
    RemoteFatalError,
    SectionOrderError,
    UnexpectedTerminatorError,
    UnknownSectionError,
)
from .pktline import (
    SIDEBAND_FATAL,
    SIDEBAND_PACK_DATA,
    SIDEBAND_PROGRESS,
    Packet,
    PacketType,
    PktLine,
    Scanner,
    decode_text,
    encode_text,
)

logger = logging.getLogger(__name__)

# Object the client wants; not limited to advertised objects.
ARGUMENT_WANT = "want"
# Object the client has locally, so the server can send less.
ARGUMENT_HAVE = "have"
# End negotiation (or skip it for a clone) and send the packfile.
ARGUMENT_DONE = "done"
# Deltas may reference base objects not contained in the pack.
ARGUMENT_THIN_PACK = "thin-pack"
# Suppress side-band channel 2; channel 3 is still used for errors.
ARGUMENT_NO_PROGRESS = "no-progress"
# Send annotated tags pointing at objects being sent.
ARGUMENT_INCLUDE_TAG = "include-tag"
# Client understands OBJ_OFS_DELTA.
ARGUMENT_OFS_DELTA = "ofs-delta"
# Commit the client only has a shallow copy of.
ARGUMENT_SHALLOW = "shallow"
# Shallow fetch with a commit depth of <depth>.
ARGUMENT_DEEPEN = "deepen"
# Depth is relative to the client's current shallow boundary.
ARGUMENT_DEEPEN_RELATIVE = "deepen-relative"
# Cut the shallow history at a timestamp.
ARGUMENT_DEEPEN_SINCE = "deepen-since"
# Cut the shallow history at a revision.
ARGUMENT_DEEPEN_NOT = "deepen-not"
# Omit objects using a rev-list filter-spec.
ARGUMENT_FILTER = "filter"
# Full name of a ref the client wants; answered in wanted-refs.
ARGUMENT_WANT_REF = "want-ref"
# Comma separated protocols the client accepts packfile URIs for.
ARGUMENT_PACKFILE_URIS = "packfile-uris"
# Do not send a packfile until the client sends "done".
ARGUMENT_WAIT_FOR_DONE = "wait-for-done"

Sink = Callable[[bytes], object]


class FetchSection(Enum):
    START = 'start'
    ACKNOWLEDGMENTS = 'acknowledgments'
    SHALLOW_INFO = 'shallow-info'
    WANTED_REFS = 'wanted-refs'
    PACKFILE_URIS = 'packfile-uris'
    PACKFILE = 'packfile'

    @property
    def header(self) -> bytes:
        return self.value.encode('ascii') + b"\n"


SECTION_HEADERS: Dict[bytes, FetchSection] = {
    section.header: section
    for section in FetchSection
    if section is not FetchSection.START
}

# Sections that may follow each state in a conforming response
SECTION_TRANSITIONS: Dict[FetchSection, FrozenSet[FetchSection]] = {
    FetchSection.START: frozenset({
        FetchSection.ACKNOWLEDGMENTS,
        FetchSection.SHALLOW_INFO,
        FetchSection.WANTED_REFS,
        FetchSection.PACKFILE_URIS,
        FetchSection.PACKFILE,
    }),
    FetchSection.ACKNOWLEDGMENTS: frozenset({
        FetchSection.SHALLOW_INFO,
        FetchSection.WANTED_REFS,
        FetchSection.PACKFILE_URIS,
        FetchSection.PACKFILE,
    }),
    FetchSection.SHALLOW_INFO: frozenset({
        FetchSection.WANTED_REFS,
        FetchSection.PACKFILE_URIS,
        FetchSection.PACKFILE,
    }),
    FetchSection.WANTED_REFS: frozenset({
        FetchSection.PACKFILE_URIS,
        FetchSection.PACKFILE,
    }),
    FetchSection.PACKFILE_URIS: frozenset({
        FetchSection.PACKFILE,
    }),
    FetchSection.PACKFILE: frozenset(),
}


def _text(kind: str, line: bytes, prefix: bytes = b"") -> str:
    """Strip ``prefix`` and the trailing LF from a body line."""
    if not line.endswith(b"\n") or not line.startswith(prefix):
        raise MalformedLineError(kind, line)
    return decode_text(line[len(prefix):-1])


def _read_section(scanner: Scanner, handle: Callable[[bytes], None]) -> Packet:
    """Feed body lines to ``handle`` until a terminator or the next header.

    Returns:
        The packet that ended the section
    """
    while True:
        packet = scanner.scan()
        if packet.type is not PacketType.DATA or packet.data in SECTION_HEADERS:
            return packet
        handle(packet.data)


@dataclass
class Acknowledgements:
    """acknowledgments section: ACK lines plus optional NAK and ready."""

    ready: bool = False
    nak: bool = False
    acks: List[str] = field(default_factory=list)

    def encode_into(self, buf: bytearray) -> bytearray:
        PktLine.append(buf, FetchSection.ACKNOWLEDGMENTS.header)
        if self.ready:
            PktLine.append(buf, b"ready\n")
        if self.nak:
            PktLine.append(buf, b"NAK\n")
        for object_id in self.acks:
            PktLine.append(buf, b"ACK " + encode_text(object_id) + b"\n")
        return buf

    def read(self, scanner: Scanner) -> Packet:
        return _read_section(scanner, self._parse_line)

    def _parse_line(self, line: bytes) -> None:
        if line.startswith(b"ACK "):
            self.acks.append(_text('ack', line, b"ACK "))
        elif line == b"NAK\n":
            self.nak = True
        elif line == b"ready\n":
            self.ready = True
        else:
            raise MalformedLineError('acknowledgments', line)


@dataclass
class Shallow:
    object_id: str

    def encode_into(self, buf: bytearray) -> bytearray:
        return PktLine.append(buf, b"shallow " + encode_text(self.object_id) + b"\n")

    @classmethod
    def parse(cls, line: bytes) -> 'Shallow':
        return cls(_text('shallow', line, b"shallow "))


@dataclass
class Unshallow:
    object_id: str

    def encode_into(self, buf: bytearray) -> bytearray:
        return PktLine.append(buf, b"unshallow " + encode_text(self.object_id) + b"\n")

    @classmethod
    def parse(cls, line: bytes) -> 'Unshallow':
        return cls(_text('unshallow', line, b"unshallow "))


@dataclass
class ShallowInfo:
    shallow: List[Shallow] = field(default_factory=list)
    unshallow: List[Unshallow] = field(default_factory=list)

    def encode_into(self, buf: bytearray) -> bytearray:
        PktLine.append(buf, FetchSection.SHALLOW_INFO.header)
        for s in self.shallow:
            s.encode_into(buf)
        for u in self.unshallow:
            u.encode_into(buf)
        return buf

    def read(self, scanner: Scanner) -> Packet:
        return _read_section(scanner, self._parse_line)

    def _parse_line(self, line: bytes) -> None:
        if line.startswith(b"shallow "):
            self.shallow.append(Shallow.parse(line))
        elif line.startswith(b"unshallow "):
            self.unshallow.append(Unshallow.parse(line))
        else:
            raise MalformedLineError('shallow-info', line)


@dataclass
class WantedRef:
    object_id: str
    name: str

    def encode_into(self, buf: bytearray) -> bytearray:
        return PktLine.append(buf, encode_text(f"{self.object_id} {self.name}\n"))

    @classmethod
    def parse(cls, line: bytes) -> 'WantedRef':
        object_id, sep, name = _text('wanted-ref', line).partition(' ')
        if not sep:
            raise MalformedLineError('wanted-ref', line)
        return cls(object_id, name)


@dataclass
class PackfileURI:
    checksum: str
    uri: str

    def __str__(self) -> str:
        return f"{self.checksum} {self.uri}"

    def encode_into(self, buf: bytearray) -> bytearray:
        return PktLine.append(buf, encode_text(str(self) + "\n"))

    @classmethod
    def parse(cls, line: bytes) -> 'PackfileURI':
        checksum, sep, uri = _text('packfile-uri', line).partition(' ')
        if not sep:
            raise MalformedLineError('packfile-uri', line)
        return cls(checksum, uri)


class _LineSection(list):
    """A section whose body is one parsed value per line."""

    SECTION: FetchSection
    ITEM: type

    def encode_into(self, buf: bytearray) -> bytearray:
        PktLine.append(buf, self.SECTION.header)
        for item in self:
            item.encode_into(buf)
        return buf

    def read(self, scanner: Scanner) -> Packet:
        return _read_section(scanner, lambda line: self.append(self.ITEM.parse(line)))


class WantedRefs(_LineSection):
    SECTION = FetchSection.WANTED_REFS
    ITEM = WantedRef


class PackfileURIs(_LineSection):
    SECTION = FetchSection.PACKFILE_URIS
    ITEM = PackfileURI


_SECTION_TYPES = {
    FetchSection.ACKNOWLEDGMENTS: ('acknowledgements', Acknowledgements),
    FetchSection.SHALLOW_INFO: ('shallow_info', ShallowInfo),
    FetchSection.WANTED_REFS: ('wanted_refs', WantedRefs),
    FetchSection.PACKFILE_URIS: ('packfile_uris', PackfileURIs),
}


@dataclass
class FetchResponse:
    acknowledgements: Optional[Acknowledgements] = None
    shallow_info: Optional[ShallowInfo] = None
    wanted_refs: Optional[WantedRefs] = None
    packfile_uris: Optional[PackfileURIs] = None

    def encode_into(
        self,
        buf: bytearray,
        packfile: bytes = b"",
        progress: Iterable[bytes] = (),
    ) -> bytearray:
        """Append the response, including the side-band packfile stream.

        Args:
            buf: Buffer to append to
            packfile: Raw packfile bytes sent on channel 1
            progress: Progress messages sent on channel 2 before the pack
        """
        if self.acknowledgements is not None:
            self.acknowledgements.encode_into(buf)
            if self.acknowledgements.nak:
                return PktLine.append_flush(buf)
            PktLine.append_delim(buf)

        for section in (self.shallow_info, self.wanted_refs, self.packfile_uris):
            if section is not None:
                section.encode_into(buf)
                PktLine.append_delim(buf)

        PktLine.append(buf, FetchSection.PACKFILE.header)
        for message in progress:
            PktLine.append_sideband(buf, SIDEBAND_PROGRESS, message)
        if packfile:
            PktLine.append_sideband(buf, SIDEBAND_PACK_DATA, packfile)
        return PktLine.append_flush(buf)

    def encode(self, packfile: bytes = b"", progress: Iterable[bytes] = ()) -> bytes:
        return bytes(self.encode_into(bytearray(), packfile, progress))

    @classmethod
    def parse(
        cls,
        scanner: Scanner,
        packfile: Optional[Sink] = None,
        progress: Optional[Sink] = None,
        strict: bool = False,
    ) -> 'FetchResponse':
        """Parse a fetch response, streaming the packfile to ``packfile``.

        Sections are recognized by their header line. Duplicate or
        out-of-order sections are logged and accepted, or rejected with
        SectionOrderError when ``strict`` is set.

        Args:
            scanner: Source of pkt-lines
            packfile: Called with each chunk of side-band channel 1
            progress: Called with each chunk of side-band channel 2
            strict: Enforce the documented section order

        Returns:
            The parsed response, once the final flush-pkt has been read

        Raises:
            RemoteFatalError: If the server sent a message on channel 3
        """
        response = cls()
        state = FetchSection.START
        packet = scanner.scan()

        while True:
            if packet.type is PacketType.DELIM:
                packet = scanner.scan()
                continue
            if packet.type is PacketType.FLUSH and state is FetchSection.ACKNOWLEDGMENTS:
                logger.debug("fetch response ended after acknowledgments")
                return response
            if packet.type is not PacketType.DATA:
                raise UnexpectedTerminatorError(packet.type, f"fetch response after {state.value}")

            section = SECTION_HEADERS.get(packet.data)
            if section is None:
                raise UnknownSectionError(packet.data)
            state = _transition(state, section, strict)
            logger.debug("fetch response section: %s", section.value)

            if section is FetchSection.PACKFILE:
                demultiplex(scanner, packfile, progress)
                return response

            attr, section_type = _SECTION_TYPES[section]
            value = getattr(response, attr)
            if value is None:
                value = section_type()
                setattr(response, attr, value)
            packet = value.read(scanner)


def _transition(state: FetchSection, section: FetchSection, strict: bool) -> FetchSection:
    if section in SECTION_TRANSITIONS[state]:
        return section
    if strict:
        raise SectionOrderError(state, section)
    logger.warning("fetch response section %s follows %s", section.value, state.value)
    return section


def demultiplex(scanner: Scanner, packfile: Optional[Sink] = None, progress: Optional[Sink] = None) -> None:
    """Route side-band units to their sinks until the flush-pkt.

    Channel 1 goes to ``packfile``, channel 2 to ``progress``; channel 3
    stops decoding with RemoteFatalError. Units with no payload are
    keep-alives and are not forwarded.
    """
    while True:
        packet = scanner.scan()
        if packet.type is PacketType.FLUSH:
            return
        if packet.type is not PacketType.DATA:
            raise UnexpectedTerminatorError(packet.type, 'packfile')

        channel, data = PktLine.sideband(packet.data)
        if channel == SIDEBAND_PACK_DATA:
            if packfile is not None and data:
                packfile(data)
        elif channel == SIDEBAND_PROGRESS:
            if progress is not None and data:
                progress(data)
        elif channel == SIDEBAND_FATAL:
            raise RemoteFatalError(data.decode('utf-8', errors='replace'))
        else:
            raise MalformedSidebandError(packet.data)


def build_fetch_request(
    wants: Iterable[str] = (),
    haves: Iterable[str] = (),
    want_refs: Iterable[str] = (),
    thin_pack: bool = False,
    no_progress: bool = False,
    include_tag: bool = False,
    ofs_delta: bool = False,
    shallows: Iterable[str] = (),
    deepen: Optional[str] = None,
    deepen_relative: bool = False,
    deepen_since: Optional[str] = None,
    deepen_not: Optional[str] = None,
    filter_spec: Optional[str] = None,
    packfile_uris: Iterable[str] = (),
    capabilities: Optional[Capabilities] = None,
) -> CommandRequest:
    """Build a single-round fetch command request.

    No negotiation happens: the request carries wait-for-done, every have
    and want, and a final done.

    Returns:
        CommandRequest ready to encode
    """
    arguments = CommandArguments([CommandArgument(ARGUMENT_WAIT_FOR_DONE)])

    if thin_pack:
        arguments.append(CommandArgument(ARGUMENT_THIN_PACK))
    if no_progress:
        arguments.append(CommandArgument(ARGUMENT_NO_PROGRESS))
    if include_tag:
        arguments.append(CommandArgument(ARGUMENT_INCLUDE_TAG))
    if ofs_delta:
        arguments.append(CommandArgument(ARGUMENT_OFS_DELTA))
    for object_id in shallows:
        arguments.append(CommandArgument(ARGUMENT_SHALLOW, object_id))
    if deepen:
        arguments.append(CommandArgument(ARGUMENT_DEEPEN, deepen))
    if deepen_relative:
        arguments.append(CommandArgument(ARGUMENT_DEEPEN_RELATIVE))
    if deepen_since:
        arguments.append(CommandArgument(ARGUMENT_DEEPEN_SINCE, deepen_since))
    if deepen_not:
        arguments.append(CommandArgument(ARGUMENT_DEEPEN_NOT, deepen_not))
    if filter_spec:
        arguments.append(CommandArgument(ARGUMENT_FILTER, filter_spec))
    for ref in want_refs:
        arguments.append(CommandArgument(ARGUMENT_WANT_REF, ref))
    packfile_uris = list(packfile_uris)
    if packfile_uris:
        arguments.append(CommandArgument(ARGUMENT_PACKFILE_URIS, ','.join(packfile_uris)))

    for object_id in haves:
        arguments.append(CommandArgument(ARGUMENT_HAVE, object_id))
    for object_id in wants:
        arguments.append(CommandArgument(ARGUMENT_WANT, object_id))
    arguments.append(CommandArgument(ARGUMENT_DONE))

    return CommandRequest(
        command="fetch",
        capabilities=capabilities if capabilities is not None else Capabilities(),
        arguments=arguments,
    )
