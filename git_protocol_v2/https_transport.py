"""HTTPS transport for git protocol v2 (smart HTTP)."""

import logging
from typing import Iterable, Optional

import requests

from .advertisement import DEFAULT_SERVICE, CapabilityAdvertisement
from .capabilities import Capabilities
from .command import CommandRequest
from .errors import TransportError
from .fetch import FetchResponse, Sink
from .ls_refs import ListReferencesResponse, build_ls_refs_request
from .pktline import Scanner

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = 'git-protocol-v2-python/0.1.0'


class HttpsTransport:
    """HTTPS transport for git protocol v2."""

    def __init__(self, url: str, user_agent: str = DEFAULT_USER_AGENT,
                 session: Optional[requests.Session] = None):
        """Initialize HTTPS transport.

        Args:
            url: Git repository URL (https://...)
            user_agent: User-Agent header sent with every request
            session: Session to reuse, a new one by default
        """
        self.url = url.rstrip('/')
        self.session = session if session is not None else requests.Session()
        self.session.headers.update({
            'User-Agent': user_agent,
            'Git-Protocol': 'version=2',
        })

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if response.status_code != 200:
            raise TransportError(
                f"unexpected status code ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )
        return response

    def discover_capabilities(self, service: str = DEFAULT_SERVICE,
                              smart: bool = True) -> CapabilityAdvertisement:
        """Fetch the capability advertisement from info/refs.

        Args:
            service: Value of the service query parameter
            smart: Expect the "# service=..." preamble of smart HTTP

        Returns:
            CapabilityAdvertisement object
        """
        url = f"{self.url}/info/refs"
        response = self._request('GET', url, params={'service': service})

        scanner = Scanner.from_bytes(response.content)
        if smart:
            return CapabilityAdvertisement.parse_smart_http(scanner, service)
        return CapabilityAdvertisement.parse(scanner)

    def command(self, request: CommandRequest) -> requests.Response:
        """POST a command request; the body is left unread for streaming.

        Returns:
            The streaming response, whose ``raw`` stream holds pkt-lines
        """
        url = f"{self.url}/git-upload-pack"
        response = self._request(
            'POST',
            url,
            data=request.encode(),
            headers={'Content-Type': 'application/x-git-upload-pack-request'},
            stream=True,
        )
        response.raw.decode_content = True
        return response

    def ls_refs(self, symrefs: bool = False, peel: bool = False, unborn: bool = False,
                ref_prefixes: Iterable[str] = (),
                capabilities: Optional[Capabilities] = None) -> ListReferencesResponse:
        """Run the ls-refs command.

        Returns:
            ListReferencesResponse object
        """
        request = build_ls_refs_request(
            symrefs=symrefs,
            peel=peel,
            unborn=unborn,
            ref_prefixes=ref_prefixes,
            capabilities=capabilities,
        )
        with self.command(request) as response:
            return ListReferencesResponse.parse(Scanner(response.raw))

    def fetch(self, request: CommandRequest, packfile: Optional[Sink] = None,
              progress: Optional[Sink] = None) -> FetchResponse:
        """Run a fetch command, streaming the packfile to ``packfile``.

        Args:
            request: Fetch command request, see build_fetch_request
            packfile: Called with each chunk of packfile data
            progress: Called with each chunk of progress text

        Returns:
            FetchResponse object
        """
        with self.command(request) as response:
            return FetchResponse.parse(Scanner(response.raw), packfile, progress)
