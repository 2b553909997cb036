"""Main entry point for the git-v2 command line tools."""

import argparse
import logging
import os
import sys
import tempfile
from typing import Callable, List, Optional, TextIO, Union

from .capabilities import Capabilities
from .errors import ProtocolError
from .fetch import FetchResponse, Sink, build_fetch_request
from .https_transport import DEFAULT_USER_AGENT, HttpsTransport
from .pktline import encode_text
from .ssh_transport import SshTransport

logger = logging.getLogger(__name__)


def is_ssh_url(url: str) -> bool:
    """Check if URL is SSH format."""
    return url.startswith('ssh://') or ('@' in url and ':' in url and '://' not in url)


def make_transport(args: argparse.Namespace) -> Union[HttpsTransport, SshTransport]:
    if is_ssh_url(args.url):
        return SshTransport(args.url)
    return HttpsTransport(args.url, user_agent=args.user_agent)


def read_stdin_wants(stream: TextIO) -> List[str]:
    """Collect unique object ids from ls-refs style "<oid> <name>" lines."""
    wants = []
    for line in stream:
        object_id = line.split(' ', 1)[0].strip()
        if object_id and object_id not in wants:
            wants.append(object_id)
    return wants


def cmd_capabilities(args: argparse.Namespace, transport: Union[HttpsTransport, SshTransport]) -> int:
    if isinstance(transport, HttpsTransport):
        advertisement = transport.discover_capabilities(args.service, smart=args.smart)
    else:
        advertisement = transport.discover_capabilities()

    for cap in advertisement.capabilities:
        print(cap)
    return 0


def cmd_ls_refs(args: argparse.Namespace, transport: Union[HttpsTransport, SshTransport]) -> int:
    response = transport.ls_refs(
        symrefs=args.symrefs,
        peel=args.peel,
        unborn=args.unborn,
        ref_prefixes=args.ref_prefix,
        capabilities=Capabilities.from_strings(args.capability),
    )

    # Ref names are bytes on the wire, write them back unchanged
    out = sys.stdout.buffer
    for ref in response.references:
        out.write(encode_text(str(ref)) + b'\n')
    out.flush()
    return 0


def write_packfile(path: str, fetch: Callable[[Sink], FetchResponse]) -> FetchResponse:
    """Run ``fetch`` with a sink writing to ``path``.

    The pack is written to a temporary file next to ``path`` and renamed into
    place only once the response is complete, so a failed fetch leaves no file.
    """
    fd, partial = tempfile.mkstemp(
        dir=os.path.dirname(os.path.abspath(path)), prefix='.git-v2-', suffix='.pack'
    )
    try:
        with os.fdopen(fd, 'wb') as f:
            response = fetch(f.write)
        os.replace(partial, path)
    except BaseException:
        os.unlink(partial)
        raise
    return response


def cmd_fetch(args: argparse.Namespace, transport: Union[HttpsTransport, SshTransport]) -> int:
    wants = list(args.want)
    if args.stdin:
        wants += [oid for oid in read_stdin_wants(sys.stdin) if oid not in wants]

    if not wants and not args.want_ref:
        print("At least one '--want' or '--want-ref' is required", file=sys.stderr)
        return 1

    request = build_fetch_request(
        wants=wants,
        haves=args.have,
        want_refs=args.want_ref,
        thin_pack=args.thin_pack,
        no_progress=args.no_progress,
        include_tag=args.include_tag,
        ofs_delta=args.ofs_delta,
        shallows=args.shallow,
        deepen=args.deepen,
        deepen_relative=args.deepen_relative,
        deepen_since=args.deepen_since,
        deepen_not=args.deepen_not,
        filter_spec=args.filter,
        packfile_uris=args.packfile_uris,
        capabilities=Capabilities.from_strings(args.capability),
    )

    progress = sys.stderr.buffer.write

    if args.output:
        response = write_packfile(
            args.output,
            lambda packfile: transport.fetch(request, packfile=packfile, progress=progress),
        )
    else:
        response = transport.fetch(request, packfile=sys.stdout.buffer.write, progress=progress)
        sys.stdout.flush()

    acks = response.acknowledgements
    if acks is not None:
        if acks.ready:
            print("Ready", file=sys.stderr)
        if acks.nak:
            print("NAK", file=sys.stderr)
        for ack in acks.acks:
            print(f"ACK {ack}", file=sys.stderr)
    if response.shallow_info is not None:
        for shallow in response.shallow_info.shallow:
            print(f"shallow {shallow.object_id}", file=sys.stderr)
        for unshallow in response.shallow_info.unshallow:
            print(f"unshallow {unshallow.object_id}", file=sys.stderr)
    for wanted_ref in response.wanted_refs or ():
        print(f"wanted-ref {wanted_ref.object_id} {wanted_ref.name}", file=sys.stderr)
    for packfile_uri in response.packfile_uris or ():
        print(f"packfile-uri {packfile_uri}", file=sys.stderr)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='git-v2',
        description='Talk git protocol v2 to a remote over HTTPS or SSH'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Verbose output'
    )
    parser.add_argument(
        '--user-agent',
        default=DEFAULT_USER_AGENT,
        help=f'User-Agent header for HTTPS requests (default: {DEFAULT_USER_AGENT})'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    caps = subparsers.add_parser('capabilities', help='Print the server capability advertisement')
    caps.add_argument('url', help='Git repository URL')
    caps.add_argument(
        '--service',
        default='git-upload-pack',
        help='service parameter in the query string (default: git-upload-pack)'
    )
    caps.add_argument(
        '--no-smart',
        dest='smart',
        action='store_false',
        help='Do not expect the smart HTTP "# service=" preamble'
    )
    caps.set_defaults(func=cmd_capabilities)

    ls_refs = subparsers.add_parser('ls-refs', help='List references')
    ls_refs.add_argument('url', help='Git repository URL')
    ls_refs.add_argument('--symrefs', action='store_true',
                         help='Also show the ref a symbolic ref points to')
    ls_refs.add_argument('--peel', action='store_true', help='Show peeled tags')
    ls_refs.add_argument('--unborn', action='store_true', help='Request unborn refs')
    ls_refs.add_argument('--ref-prefix', action='append', default=[], metavar='PREFIX',
                         help='Only show refs starting with PREFIX (repeatable)')
    ls_refs.add_argument('--capability', action='append', default=[], metavar='KEY[=VALUE]',
                         help='Send a client capability (repeatable)')
    ls_refs.set_defaults(func=cmd_ls_refs)

    fetch = subparsers.add_parser('fetch', help='Fetch a packfile')
    fetch.add_argument('url', help='Git repository URL')
    fetch.add_argument('--want', action='append', default=[], metavar='OID',
                       help='Object the client wants (repeatable)')
    fetch.add_argument('--have', action='append', default=[], metavar='OID',
                       help='Object the client already has (repeatable)')
    fetch.add_argument('--stdin', action='store_true',
                       help="Read wants from ls-refs output on stdin")
    fetch.add_argument('--thin-pack', action='store_true', help='Request a thin pack')
    fetch.add_argument('--no-progress', action='store_true',
                       help='Ask the server not to send progress on side-band 2')
    fetch.add_argument('--include-tag', action='store_true',
                       help='Send annotated tags pointing at sent objects')
    fetch.add_argument('--ofs-delta', action='store_true', help='Accept OBJ_OFS_DELTA')
    fetch.add_argument('--shallow', action='append', default=[], metavar='OID',
                       help='Commit the client only has a shallow copy of (repeatable)')
    fetch.add_argument('--deepen', metavar='DEPTH', help='Shallow fetch with this depth')
    fetch.add_argument('--deepen-relative', action='store_true',
                       help='Depth is relative to the current shallow boundary')
    fetch.add_argument('--deepen-since', metavar='TIMESTAMP',
                       help='Cut shallow history at this time')
    fetch.add_argument('--deepen-not', metavar='REV',
                       help='Cut shallow history at this revision')
    fetch.add_argument('--filter', metavar='SPEC', help='Object filter-spec')
    fetch.add_argument('--want-ref', action='append', default=[], metavar='REF',
                       help='Ref the client wants by name (repeatable)')
    fetch.add_argument('--packfile-uris', action='append', default=[], metavar='PROTOCOL',
                       help='Accept packfile URIs for this protocol (repeatable)')
    fetch.add_argument('--capability', action='append', default=[], metavar='KEY[=VALUE]',
                       help='Send a client capability (repeatable)')
    fetch.add_argument('-o', '--output', metavar='FILE',
                       help='Write the packfile to FILE instead of stdout')
    fetch.set_defaults(func=cmd_fetch)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(name)s: %(message)s',
    )

    try:
        transport = make_transport(args)
    except ValueError as e:
        parser.error(str(e))

    try:
        return args.func(args, transport)
    except ProtocolError as e:
        logger.debug("%s failed", args.command, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n\nInterrupted by user. Exiting...", file=sys.stderr)
        return 130


if __name__ == '__main__':
    sys.exit(main())
