"""Capabilities: ``capability = PKT-LINE(key[=value] LF)``."""

from .pairs import Pair, PairList

# The server can advertise `agent=X` to report its version; the client may
# echo its own `agent=Y` only if the server advertised it. Purely
# informative, never used to infer features.
CAPABILITY_AGENT = "agent"
# Any number of server specific options can be sent as
# "server-option=<option>" lines in the capability-list of a request.
CAPABILITY_SERVER_OPTION = "server-option"
# Hash algorithm understood by the server; SHA-1 when absent.
CAPABILITY_OBJECT_FORMAT = "object-format"
# Identifies this process across multiple requests.
CAPABILITY_SESSION_ID = "session-id"
# Commands
CAPABILITY_LS_REFS = "ls-refs"
CAPABILITY_FETCH = "fetch"
CAPABILITY_OBJECT_INFO = "object-info"


class Capability(Pair):
    """A negotiated feature flag, optionally carrying a value."""

    SEPARATOR = '='
    LINE_FEED = True
    KIND = 'capability'


class Capabilities(PairList):
    """capability-list = *capability"""

    ITEM = Capability

    def __str__(self) -> str:
        return ' '.join(str(cap) for cap in self)

    @classmethod
    def from_strings(cls, values) -> 'Capabilities':
        """Build from ``key`` / ``key=value`` strings such as CLI flags."""
        caps = cls()
        for value in values:
            key, _, val = value.partition('=')
            caps.append(Capability(key, val))
        return caps
