"""Tests for pkt-line framing."""

import io

import pytest

from git_protocol_v2.errors import MalformedLineError, MalformedSidebandError, TransportError
from git_protocol_v2.pktline import (
    LARGE_PACKET_DATA_MAX,
    SIDEBAND_DATA_MAX,
    Packet,
    PacketType,
    PktLine,
    Scanner,
)


class TrickleStream:
    """Binary stream returning at most one byte per read."""

    def __init__(self, data: bytes):
        self.data = data

    def read(self, n: int) -> bytes:
        chunk, self.data = self.data[:1], self.data[1:]
        return chunk


class BrokenStream:
    def read(self, n: int) -> bytes:
        raise ConnectionResetError("connection reset by peer")


class TestPktLineEncode:
    """Test pkt-line encoding."""

    def test_encode_line(self):
        """Length is 4 (prefix) + 6 (data) = 10 = 0x000a."""
        assert PktLine.encode(b'hello\n') == b'000ahello\n'

    def test_encode_short_line(self):
        """Test encoding a one byte line."""
        assert PktLine.encode(b'x') == b'0005x'

    def test_special_packets(self):
        """Test flush and delimiter packets."""
        assert PktLine.append_flush(bytearray()) == b'0000'
        assert PktLine.append_delim(bytearray()) == b'0001'

    def test_append_into_buffer(self):
        """Test composing several units into one buffer."""
        buf = bytearray()
        PktLine.append(buf, b'a')
        PktLine.append_delim(buf)
        PktLine.append(buf, b'b')
        PktLine.append_flush(buf)

        assert bytes(buf) == b'0005a' b'0001' b'0005b' b'0000'

    def test_encode_max_length(self):
        """The largest payload gives a length of 0xfff0."""
        encoded = PktLine.encode(b'x' * LARGE_PACKET_DATA_MAX)
        assert encoded[:4] == b'fff0'

    def test_encode_too_long(self):
        """Test encoding data that does not fit."""
        with pytest.raises(ValueError):
            PktLine.encode(b'x' * (LARGE_PACKET_DATA_MAX + 1))


class TestSideband:
    """Test side-band helpers."""

    def test_sideband_split(self):
        """The first byte is the channel."""
        assert PktLine.sideband(b'\x02counting objects') == (2, b'counting objects')

    def test_sideband_bare_channel(self):
        """A unit with only a channel byte has an empty payload."""
        assert PktLine.sideband(b'\x01') == (1, b'')

    def test_sideband_empty(self):
        """A unit without a channel byte is malformed."""
        with pytest.raises(MalformedSidebandError):
            PktLine.sideband(b'')

    def test_append_sideband_chunks(self):
        """Large data is split into maximum size units."""
        data = b'p' * (SIDEBAND_DATA_MAX * 2 + 1)
        scanner = Scanner.from_bytes(bytes(PktLine.append_sideband(bytearray(), 1, data)) + b'0000')

        units = [scanner.scan().data for _ in range(3)]

        assert scanner.scan().type is PacketType.FLUSH
        assert all(unit[:1] == b'\x01' for unit in units)
        assert [len(unit) - 1 for unit in units] == [SIDEBAND_DATA_MAX, SIDEBAND_DATA_MAX, 1]
        assert b''.join(unit[1:] for unit in units) == data

    def test_append_sideband_empty(self):
        """Empty data still emits a keep-alive unit."""
        assert bytes(PktLine.append_sideband(bytearray(), 2, b'')) == b'0005\x02'


class TestScanner:
    """Test pkt-line decoding."""

    def test_scan_data(self):
        """Test decoding a single line."""
        scanner = Scanner.from_bytes(b'000ahello\n')
        assert scanner.scan() == Packet(PacketType.DATA, b'hello\n')

    def test_scan_special_packets(self):
        """Flush, delimiter and response-end come back tagged."""
        scanner = Scanner.from_bytes(b'0000' b'0001' b'0002')

        assert scanner.scan().type is PacketType.FLUSH
        assert scanner.scan().type is PacketType.DELIM
        assert scanner.scan().type is PacketType.RESPONSE_END

    def test_scan_empty_data_packet(self):
        """0004 is a data packet with no payload."""
        assert Scanner.from_bytes(b'0004').scan() == Packet(PacketType.DATA, b'')

    def test_scan_short_reads(self):
        """Short reads are retried until the unit is complete."""
        scanner = Scanner(TrickleStream(b'000ahello\n' b'0000'))

        assert scanner.scan().data == b'hello\n'
        assert scanner.scan().type is PacketType.FLUSH

    def test_iterate_until_flush(self):
        """Iteration stops at the first flush."""
        scanner = Scanner.from_bytes(b'0005a' b'0001' b'0005b' b'0000' b'0005c')

        packets = list(scanner)

        assert [p.type for p in packets] == [PacketType.DATA, PacketType.DELIM, PacketType.DATA]
        assert scanner.scan().data == b'c'

    def test_scan_end_of_stream(self):
        """Test reading past the end."""
        with pytest.raises(TransportError):
            Scanner.from_bytes(b'').scan()

    def test_scan_incomplete_header(self):
        """Test decoding with incomplete header."""
        with pytest.raises(TransportError):
            Scanner.from_bytes(b'00').scan()

    def test_scan_incomplete_body(self):
        """Test decoding with incomplete body."""
        with pytest.raises(TransportError, match='need 12 bytes'):
            Scanner.from_bytes(b'0010short').scan()

    def test_scan_io_error(self):
        """I/O failures surface as TransportError."""
        with pytest.raises(TransportError) as excinfo:
            Scanner(BrokenStream()).scan()
        assert isinstance(excinfo.value.__cause__, ConnectionResetError)

    def test_scan_invalid_length(self):
        """Test decoding with invalid hex length."""
        for header in (b"ZZZZ", b"0x1a", b" +1a"):
            with pytest.raises(MalformedLineError):
                Scanner.from_bytes(header + b"x" * 32).scan()

    def test_scan_reserved_length(self):
        """Length 3 cannot hold its own header."""
        with pytest.raises(MalformedLineError):
            Scanner.from_bytes(b'0003').scan()

    def test_scan_oversized_length(self):
        """Lengths above 65520 are rejected."""
        with pytest.raises(MalformedLineError):
            Scanner(io.BytesIO(b'fff1' + b'x' * 65533)).scan()
