"""Tests for capability advertisements, command requests and ls-refs."""

import pytest

from git_protocol_v2.advertisement import CapabilityAdvertisement
from git_protocol_v2.arguments import CommandArgument, CommandArguments
from git_protocol_v2.capabilities import Capabilities, Capability
from git_protocol_v2.command import CommandRequest
from git_protocol_v2.errors import MalformedLineError, UnexpectedTerminatorError
from git_protocol_v2.ls_refs import ListReferencesResponse, Reference, build_ls_refs_request
from git_protocol_v2.pktline import PacketType, Scanner

ADVERTISEMENT = (
    b'000eversion 2\n'
    b'0022agent=git/github-8e2ff7c5586f\n'
    b'0013ls-refs=unborn\n'
    b'0027fetch=shallow wait-for-done filter\n'
    b'0012server-option\n'
    b'0017object-format=sha1\n'
    b'0000'
)


class TestCapabilityAdvertisement:
    """Test the version 2 capability advertisement."""

    def test_parse(self):
        """Capabilities come back in wire order."""
        advertisement = CapabilityAdvertisement.parse(Scanner.from_bytes(ADVERTISEMENT))

        assert advertisement.capabilities == [
            Capability('agent', 'git/github-8e2ff7c5586f'),
            Capability('ls-refs', 'unborn'),
            Capability('fetch', 'shallow wait-for-done filter'),
            Capability('server-option'),
            Capability('object-format', 'sha1'),
        ]

    def test_encode_identical(self):
        """Re-encoding reproduces the original bytes."""
        advertisement = CapabilityAdvertisement.parse(Scanner.from_bytes(ADVERTISEMENT))
        assert advertisement.encode() == ADVERTISEMENT

    def test_empty(self):
        """An advertisement with no capabilities."""
        assert CapabilityAdvertisement().encode() == b'000eversion 2\n0000'
        parsed = CapabilityAdvertisement.parse(Scanner.from_bytes(b'000eversion 2\n0000'))
        assert parsed.capabilities == []

    @pytest.mark.parametrize('line', [b'000dversion 2', b'000eversion 1\n', b'000fversion  2\n'])
    def test_invalid_version(self, line):
        """The version line must match byte for byte."""
        with pytest.raises(MalformedLineError) as excinfo:
            CapabilityAdvertisement.parse(Scanner.from_bytes(line + b'0000'))
        assert excinfo.value.kind == 'protocol-version'

    def test_delimiter_instead_of_flush(self):
        """The capability-list must end with a flush."""
        with pytest.raises(UnexpectedTerminatorError):
            CapabilityAdvertisement.parse(Scanner.from_bytes(b'000eversion 2\n0008key\n0001'))

    def test_smart_http(self):
        """The smart HTTP preamble is consumed before the advertisement."""
        data = b'001e# service=git-upload-pack\n0000' + ADVERTISEMENT
        advertisement = CapabilityAdvertisement.parse_smart_http(Scanner.from_bytes(data))

        assert advertisement.capabilities.get('ls-refs') == 'unborn'

    def test_smart_http_wrong_service(self):
        """A different service line is rejected."""
        data = b'001f# service=git-receive-pack\n0000' + ADVERTISEMENT
        with pytest.raises(MalformedLineError):
            CapabilityAdvertisement.parse_smart_http(Scanner.from_bytes(data))


class TestCommandRequest:
    """Test command requests."""

    def test_encode(self):
        """Command, capabilities, delimiter, arguments, flush."""
        request = CommandRequest(
            'ls-refs',
            Capabilities([Capability('agent', 'x/1')]),
            CommandArguments([CommandArgument('peel'), CommandArgument('ref-prefix', 'refs/heads/')]),
        )

        assert request.encode() == (
            b'0014command=ls-refs\n'
            b'000eagent=x/1\n'
            b'0001'
            b'0008peel'
            b'001aref-prefix refs/heads/'
            b'0000'
        )

    def test_round_trip(self):
        """Test decode(encode(v)) == v."""
        request = CommandRequest(
            'fetch',
            Capabilities([Capability('agent', 'x/1'), Capability('object-format', 'sha1')]),
            CommandArguments([CommandArgument('want', 'a' * 40), CommandArgument('done')]),
        )
        assert CommandRequest.parse(Scanner.from_bytes(request.encode())) == request

    def test_round_trip_empty_lists(self):
        """Capabilities and arguments may both be empty."""
        request = CommandRequest('ls-refs')
        assert request.encode() == b'0014command=ls-refs\n00010000'
        assert CommandRequest.parse(Scanner.from_bytes(request.encode())) == request

    @pytest.mark.parametrize('line', [b'0013command=ls-refs', b'0010cmd=ls-refs\n', b'000dcommand=\n'])
    def test_invalid_command(self, line):
        """The first line must be a non-empty command=<name>."""
        with pytest.raises(MalformedLineError) as excinfo:
            CommandRequest.parse(Scanner.from_bytes(line + b'00010000'))
        assert excinfo.value.kind == 'command-request'

    def test_missing_delimiter(self):
        """Capabilities must be ended by a delimiter."""
        with pytest.raises(UnexpectedTerminatorError) as excinfo:
            CommandRequest.parse(Scanner.from_bytes(b'0014command=ls-refs\n0000'))
        assert excinfo.value.packet_type is PacketType.FLUSH

    def test_second_delimiter(self):
        """Arguments must be ended by a flush."""
        with pytest.raises(UnexpectedTerminatorError) as excinfo:
            CommandRequest.parse(Scanner.from_bytes(b'0014command=ls-refs\n00010008peel0001'))
        assert excinfo.value.packet_type is PacketType.DELIM


class TestReference:
    """Test ref lines."""

    def test_parse(self):
        """Test a plain ref."""
        ref = Reference.parse(b'abc refs/heads/main\n')
        assert ref == Reference('abc', 'refs/heads/main')

    def test_parse_attributes(self):
        """Each space after the name starts an attribute."""
        ref = Reference.parse(b'unborn HEAD symref-target:refs/heads/main\n')

        assert ref.unborn
        assert ref.name == 'HEAD'
        assert ref.attributes == ['symref-target:refs/heads/main']

    def test_parse_empty_attribute(self):
        """Adjacent spaces give an empty attribute."""
        ref = Reference.parse(b'abc refs/tags/v1  peeled:def\n')
        assert ref.attributes == ['', 'peeled:def']

    def test_parse_empty_name_lenient(self):
        """An object id followed by an empty name is accepted by default."""
        assert Reference.parse(b'abc \n') == Reference('abc', '')

    def test_parse_empty_name_strict(self):
        """Strict parsing rejects an empty name."""
        with pytest.raises(MalformedLineError):
            Reference.parse(b'abc \n', strict=True)

    @pytest.mark.parametrize('line', [b'abc refs/heads/main', b'abc\n'])
    def test_parse_malformed(self, line):
        """A missing LF or a missing space is malformed."""
        with pytest.raises(MalformedLineError):
            Reference.parse(line)

    def test_encode(self):
        """Test encoding with attributes."""
        ref = Reference('abc', 'refs/tags/v1', ['peeled:def'])
        assert ref.encode() == b'0020abc refs/tags/v1 peeled:def\n'
        assert str(ref) == 'abc refs/tags/v1 peeled:def'

    def test_round_trip(self):
        """Test decode(encode(v)) == v, including an empty attribute."""
        ref = Reference('a' * 40, 'refs/heads/main', ['', 'symref-target:x'])
        line = Scanner.from_bytes(ref.encode()).scan().data
        assert Reference.parse(line) == ref

    def test_parse_not_utf8(self):
        """Ref names are arbitrary bytes and re-encode unchanged."""
        line = b'a' * 40 + b' refs/heads/caf\xe9\n'

        ref = Reference.parse(line)

        assert ref.name == 'refs/heads/caf\udce9'
        assert ref.encode()[4:] == line


class TestListReferencesResponse:
    """Test ls-refs responses."""

    def setup_method(self):
        self.response = ListReferencesResponse([
            Reference('1' * 40, 'HEAD', ['symref-target:refs/heads/main']),
            Reference('1' * 40, 'refs/heads/main'),
            Reference('2' * 40, 'refs/heads/main'),
        ])

    def test_round_trip(self):
        """Test decode(encode(v)) == v."""
        parsed = ListReferencesResponse.parse(Scanner.from_bytes(self.response.encode()))
        assert parsed == self.response

    def test_empty(self):
        """An empty response is a bare flush."""
        assert ListReferencesResponse().encode() == b'0000'
        assert ListReferencesResponse.parse(Scanner.from_bytes(b'0000')).references == []

    def test_map_last_write_wins(self):
        """Duplicate names keep the last object id."""
        assert self.response.map() == {'HEAD': '1' * 40, 'refs/heads/main': '2' * 40}

    def test_delimiter_rejected(self):
        """Only a flush ends the response."""
        with pytest.raises(UnexpectedTerminatorError):
            ListReferencesResponse.parse(Scanner.from_bytes(b'0001'))

    def test_strict_propagates(self):
        """strict applies to every ref in the response."""
        data = b'0009abc \n0000'
        assert ListReferencesResponse.parse(Scanner.from_bytes(data)).references[0].name == ''
        with pytest.raises(MalformedLineError):
            ListReferencesResponse.parse(Scanner.from_bytes(data), strict=True)


class TestBuildLsRefsRequest:
    """Test ls-refs request construction."""

    def test_arguments(self):
        """Flags and prefixes become arguments in order."""
        request = build_ls_refs_request(
            symrefs=True,
            unborn=True,
            ref_prefixes=['HEAD', 'refs/heads/'],
            capabilities=Capabilities([Capability('agent', 'x/1')]),
        )

        assert request.command == 'ls-refs'
        assert request.capabilities.get('agent') == 'x/1'
        assert [str(arg) for arg in request.arguments] == [
            'symrefs', 'unborn', 'ref-prefix HEAD', 'ref-prefix refs/heads/',
        ]
