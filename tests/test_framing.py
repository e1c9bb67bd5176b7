"""Tests for USB request/response envelopes."""

import struct

import pytest

from sunxi_fel_mcp.errors import BadMagicError, DecodeError, TruncatedError
from sunxi_fel_mcp.protocol.framing import (
    REQUEST_MAGIC,
    RESPONSE_MAGIC,
    CSWStatus,
    Direction,
    RequestEnvelope,
    ResponseEnvelope,
)


def test_direction_values():
    """USB request commands are fixed by the boot ROM."""
    assert Direction.READ == 0x11
    assert Direction.WRITE == 0x12


def test_request_size():
    """Every request envelope is exactly 32 bytes."""
    assert len(RequestEnvelope(length=16).to_bytes()) == RequestEnvelope.SIZE == 32


def test_request_read_32_layout():
    """A READ of 32 bytes has magic at 0 and length at its fixed offsets.

    Structure: AWUC [tag] [len] [flags] [rsv] [cmd_len] [cmd] [rsv] [len] [rsv x10]
    """
    raw = RequestEnvelope(length=32, command=Direction.READ).to_bytes()
    assert raw[0:4] == b"AWUC"
    assert raw[4:8] == b"\x00\x00\x00\x00"      # tag
    assert struct.unpack_from("<I", raw, 8)[0] == 32
    assert raw[15] == 0x0C                      # command block length
    assert raw[16] == 0x11                      # READ
    assert struct.unpack_from("<I", raw, 18)[0] == 32
    assert raw[22:32] == bytes(10)


def test_request_defaults_to_write():
    """Default envelope announces a host-to-device write."""
    raw = RequestEnvelope(length=16).to_bytes()
    assert raw[16] == Direction.WRITE


def test_request_roundtrip():
    """Decode(encode(x)) returns the same envelope."""
    original = RequestEnvelope(
        length=0xDEADBEEF, command=Direction.READ, tag=7, flags=0x1234
    )
    assert RequestEnvelope.from_bytes(original.to_bytes()) == original


def test_request_direction_property():
    """Unknown commands map to no direction."""
    assert RequestEnvelope(command=Direction.READ).direction is Direction.READ
    assert RequestEnvelope(command=0x42).direction is None


def test_request_truncated():
    """Short buffers fail with TruncatedError."""
    raw = RequestEnvelope(length=8).to_bytes()
    for size in (0, 4, 31):
        with pytest.raises(TruncatedError) as exc:
            RequestEnvelope.from_bytes(raw[:size])
        assert exc.value.expected == 32
        assert exc.value.actual == size


def test_request_bad_magic():
    """Correctly sized buffers with the wrong magic fail with BadMagicError."""
    raw = b"XXXX" + RequestEnvelope(length=8).to_bytes()[4:]
    with pytest.raises(BadMagicError):
        RequestEnvelope.from_bytes(raw)


def test_decode_errors_share_base():
    """Both decode failures are DecodeErrors."""
    assert issubclass(TruncatedError, DecodeError)
    assert issubclass(BadMagicError, DecodeError)


def test_response_layout():
    """Response envelope: AWUS, tag, residue, status in 13 bytes."""
    raw = ResponseEnvelope(tag=0x01020304, residue=5, status=CSWStatus.FAIL).to_bytes()
    assert len(raw) == ResponseEnvelope.SIZE == 13
    assert raw[0:4] == RESPONSE_MAGIC
    assert raw[4:8] == b"\x04\x03\x02\x01"
    assert raw[8:12] == b"\x05\x00\x00\x00"
    assert raw[12] == 1


def test_response_roundtrip():
    """Decode(encode(x)) returns the same envelope."""
    original = ResponseEnvelope(tag=0xFFFFFFFF, residue=0x10, status=0)
    assert ResponseEnvelope.from_bytes(original.to_bytes()) == original


def test_response_truncated_and_bad_magic():
    """Short or mislabelled responses are rejected."""
    raw = ResponseEnvelope().to_bytes()
    with pytest.raises(TruncatedError):
        ResponseEnvelope.from_bytes(raw[:12])
    with pytest.raises(BadMagicError):
        ResponseEnvelope.from_bytes(REQUEST_MAGIC + raw[4:])


def test_response_decodes_prefix_of_longer_input():
    """Trailing bytes beyond the fixed size are ignored."""
    raw = ResponseEnvelope(tag=9).to_bytes() + b"\xAA\xBB"
    assert ResponseEnvelope.from_bytes(raw).tag == 9


def test_response_status_name():
    """Status codes render as names, unknown ones as hex."""
    assert ResponseEnvelope(status=0).status_name == "ok"
    assert ResponseEnvelope(status=1).status_name == "fail"
    assert ResponseEnvelope(status=7).status_name == "unknown(0x07)"
