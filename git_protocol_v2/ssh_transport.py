"""SSH transport for git protocol v2."""

import logging
import urllib.parse
from typing import Callable, Iterable, Optional, Tuple, TypeVar

import paramiko

from .advertisement import CapabilityAdvertisement
from .capabilities import Capabilities
from .command import CommandRequest
from .errors import TransportError
from .fetch import FetchResponse, Sink
from .ls_refs import ListReferencesResponse, build_ls_refs_request
from .pktline import Scanner

logger = logging.getLogger(__name__)

DEFAULT_SSH_PORT = 22

T = TypeVar('T')


class SshTransport:
    """SSH transport for git protocol v2.

    Each operation opens its own connection: the server sends its
    capability advertisement, the client sends one command request and
    reads the response, then the connection is closed.
    """

    def __init__(self, url: str):
        """Initialize SSH transport.

        Args:
            url: Git repository URL (git@host:path or ssh://user@host/path)

        Raises:
            ValueError: If URL format is invalid
        """
        self.url = url
        self.host, self.user, self.path, self.port = self._parse_ssh_url(url)

    @staticmethod
    def _parse_ssh_url(url: str) -> Tuple[str, str, str, int]:
        """Split an SSH URL into (host, user, path, port).

        Accepts ``user@host:path`` and ``ssh://user@host[:port]/path``. The
        returned path is always absolute.

        Raises:
            ValueError: If URL format is invalid
        """
        if url.startswith('ssh://'):
            parts = urllib.parse.urlsplit(url)
            try:
                port = parts.port or DEFAULT_SSH_PORT
            except ValueError:
                raise ValueError(f"Invalid SSH port in URL: {url}") from None
            user, host, path = parts.username, parts.hostname, parts.path
        elif '://' not in url and ':' in url:
            user_host, path = url.split(':', 1)
            user, _, host = user_host.rpartition('@')
            port = DEFAULT_SSH_PORT
        else:
            raise ValueError(f"Unsupported SSH URL format: {url}")

        if not user or not host or not path.strip('/'):
            raise ValueError(f"SSH URL must contain user@host and a path: {url}")
        return host, user, '/' + path.lstrip('/'), port

    def _connect(self) -> paramiko.SSHClient:
        """Connect to SSH server using the SSH agent or default keys."""
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        logger.debug("connecting to %s@%s:%d", self.user, self.host, self.port)
        try:
            client.connect(
                self.host,
                port=self.port,
                username=self.user,
                timeout=10
            )
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise TransportError(f"ssh connection to {self.host} failed: {e}") from e

        return client

    def _upload_pack(self, client: paramiko.SSHClient) -> Tuple[paramiko.ChannelFile, ...]:
        command = f"git-upload-pack '{self.path}'"
        try:
            return client.exec_command(command, environment={'GIT_PROTOCOL': 'version=2'})
        except paramiko.SSHException as e:
            raise TransportError(f"{command} failed: {e}") from e

    def discover_capabilities(self) -> CapabilityAdvertisement:
        """Read the capability advertisement the server sends on connect."""
        client = self._connect()

        try:
            stdin, stdout, stderr = self._upload_pack(client)
            return CapabilityAdvertisement.parse(Scanner(stdout))

        finally:
            client.close()

    def _run(self, request: CommandRequest, parse: Callable[[Scanner], T]) -> T:
        client = self._connect()

        try:
            stdin, stdout, stderr = self._upload_pack(client)
            scanner = Scanner(stdout)
            advertisement = CapabilityAdvertisement.parse(scanner)
            if not advertisement.capabilities.has(request.command):
                logger.warning("server does not advertise %s", request.command)

            stdin.write(request.encode())
            stdin.flush()

            return parse(scanner)

        finally:
            client.close()

    def ls_refs(self, symrefs: bool = False, peel: bool = False, unborn: bool = False,
                ref_prefixes: Iterable[str] = (),
                capabilities: Optional[Capabilities] = None) -> ListReferencesResponse:
        """Run the ls-refs command."""
        request = build_ls_refs_request(
            symrefs=symrefs,
            peel=peel,
            unborn=unborn,
            ref_prefixes=ref_prefixes,
            capabilities=capabilities,
        )
        return self._run(request, ListReferencesResponse.parse)

    def fetch(self, request: CommandRequest, packfile: Optional[Sink] = None,
              progress: Optional[Sink] = None) -> FetchResponse:
        """Run a fetch command, streaming the packfile to ``packfile``."""
        return self._run(
            request,
            lambda scanner: FetchResponse.parse(scanner, packfile, progress),
        )
