"""Git protocol v2 message encoding and decoding."""

from .advertisement import CapabilityAdvertisement
from .arguments import CommandArgument, CommandArguments
from .capabilities import Capabilities, Capability
from .command import CommandRequest
from .errors import (
    MalformedLineError,
    MalformedSidebandError,
    ProtocolError,
    RemoteFatalError,
    SectionOrderError,
    TransportError,
    UnexpectedTerminatorError,
    UnknownSectionError,
)
from .fetch import (
    Acknowledgements,
    FetchResponse,
    FetchSection,
    PackfileURI,
    PackfileURIs,
    Shallow,
    ShallowInfo,
    Unshallow,
    WantedRef,
    WantedRefs,
    build_fetch_request,
)
from .ls_refs import ListReferencesResponse, Reference, build_ls_refs_request
from .pktline import Packet, PacketType, PktLine, Scanner
