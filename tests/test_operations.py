"""Tests for the FEL/FES command sequences over a fake channel."""

import pytest

from sunxi_fel_mcp import operations
from sunxi_fel_mcp.errors import (
    CommandError,
    DeviceReportedFailureError,
    ShortReadError,
    TransportError,
)
from sunxi_fel_mcp.protocol.commands import Command, FELMessage, Tag
from sunxi_fel_mcp.protocol.framing import Direction, RequestEnvelope
from sunxi_fel_mcp.protocol.parser import (
    DeviceVerifyResponse,
    FESVerifyStatusResponse,
    StatusResponse,
)

A20 = DeviceVerifyResponse(board=0x00165100, firmware=1, mode=1)


def _status(state: int = 0) -> bytes:
    return StatusResponse(state=state).to_bytes()


def _sent_commands(channel) -> list[FELMessage]:
    """Decode the command frames written in payload phases."""
    frames = []
    for i, raw in enumerate(channel.written):
        if len(raw) == RequestEnvelope.SIZE and raw.startswith(b"AWUC"):
            request = RequestEnvelope.from_bytes(raw)
            if request.direction is Direction.WRITE:
                frames.append(FELMessage.from_bytes(channel.written[i + 1]))
    return frames


# ─── verify_device ───────────────────────────────────────────────────

def test_verify_device(channel_factory, replies):
    """Returns the decoded identity after a clean status."""
    channel = channel_factory(
        replies.write() + replies.read(A20.to_bytes()) + replies.read(_status())
    )
    info = operations.verify_device(channel)
    assert info == A20
    assert info.board_name == "Allwinner A20"
    assert channel.read_sizes == [13, 32, 13, 8, 13]
    assert _sent_commands(channel)[0].command == Command.VERIFY_DEVICE


def test_verify_device_failure_state(channel_factory, replies):
    """Non-zero status fails even though the info arrived."""
    channel = channel_factory(
        replies.write() + replies.read(A20.to_bytes()) + replies.read(_status(2))
    )
    with pytest.raises(DeviceReportedFailureError) as exc:
        operations.verify_device(channel)
    assert exc.value.state == 2
    assert isinstance(exc.value, CommandError)


def test_verify_device_short_info(channel_factory, replies):
    """A truncated identity record is a short read."""
    channel = channel_factory(replies.write() + replies.read(A20.to_bytes()[:20]))
    with pytest.raises(ShortReadError) as exc:
        operations.verify_device(channel)
    assert (exc.value.expected, exc.value.actual) == (32, 20)


# ─── verify_status ───────────────────────────────────────────────────

def test_verify_status_erase(channel_factory, replies):
    """VerifyStatus(ERASE) returns the decoded 12-byte response."""
    reply = FESVerifyStatusResponse(flags=Tag.ERASE, fes_crc=0x1234, last_error=0)
    channel = channel_factory(replies.write() + replies.read(reply.to_bytes()))

    result = operations.verify_status(channel, Tag.ERASE)

    assert result == reply
    assert result.matches(Tag.ERASE)
    sent = _sent_commands(channel)[0]
    assert sent.command == Command.FES_VERIFY_STATUS
    assert sent.address == 0
    assert sent.length == 0
    assert sent.flags == Tag.ERASE
    assert channel.read_sizes == [13, 12, 13]


def test_verify_status_mismatch_not_rejected(channel_factory, replies):
    """A mismatched echo is returned for the caller to judge."""
    reply = FESVerifyStatusResponse(flags=Tag.MBR)
    channel = channel_factory(replies.write() + replies.read(reply.to_bytes()))
    result = operations.verify_status(channel, "erase")
    assert not result.matches(Tag.ERASE)


def test_verify_status_single_tag_only(channel_factory):
    """A mask of several tags is refused before touching the channel."""
    channel = channel_factory()
    with pytest.raises(ValueError):
        operations.verify_status(channel, Tag.ERASE | Tag.FINISH)
    assert channel.written == []


# ─── format_device ───────────────────────────────────────────────────

def test_format_device(channel_factory, replies):
    """Format sends ERASE|FINISH download, checks status, then verifies ERASE."""
    reply = FESVerifyStatusResponse(flags=Tag.ERASE)
    channel = channel_factory(
        replies.write()
        + replies.read(_status())
        + replies.write()
        + replies.read(reply.to_bytes())
    )

    result = operations.format_device(channel)

    assert result == reply
    download, verify = _sent_commands(channel)
    assert download.command == Command.FES_DOWNLOAD
    assert download.address == 0
    assert download.length == 16
    assert download.flags == Tag.ERASE | Tag.FINISH
    assert verify.command == Command.FES_VERIFY_STATUS
    assert verify.flags == Tag.ERASE


def test_format_device_failure_state(channel_factory, replies):
    """Non-zero status aborts before verification."""
    channel = channel_factory(replies.write() + replies.read(_status(1)))
    with pytest.raises(DeviceReportedFailureError):
        operations.format_device(channel)
    assert len(_sent_commands(channel)) == 1


# ─── read_memory ─────────────────────────────────────────────────────

def test_read_memory(channel_factory, replies):
    """Returns exactly the requested bytes."""
    data = bytes(range(64))
    channel = channel_factory(
        replies.write() + replies.read(data) + replies.read(_status())
    )

    assert operations.read_memory(channel, 0x7E00, 64) == data

    sent = _sent_commands(channel)[0]
    assert sent.command == Command.FEL_UPLOAD
    assert sent.address == 0x7E00
    assert sent.length == 64
    assert sent.flags == 0


def test_read_memory_with_tags(channel_factory, replies):
    """Tags are OR-ed into the request flags."""
    channel = channel_factory(
        replies.write() + replies.read(b"\x00" * 4) + replies.read(_status())
    )
    operations.read_memory(channel, 0, 4, ["erase", Tag.FINISH])
    assert _sent_commands(channel)[0].flags == Tag.ERASE | Tag.FINISH


@pytest.mark.parametrize("actual", [0, 1, 63])
def test_read_memory_short_read(channel_factory, replies, actual):
    """Fewer bytes than requested always fails, never truncates."""
    channel = channel_factory(replies.write() + replies.read(bytes(actual)))
    with pytest.raises(ShortReadError) as exc:
        operations.read_memory(channel, 0, 64)
    assert exc.value.expected == 64
    assert exc.value.actual == actual


def test_read_memory_failure_state(channel_factory, replies):
    """Non-zero status fails even after a full payload."""
    channel = channel_factory(
        replies.write() + replies.read(bytes(16)) + replies.read(_status(5))
    )
    with pytest.raises(DeviceReportedFailureError) as exc:
        operations.read_memory(channel, 0, 16)
    assert exc.value.state == 5


def test_read_memory_transport_error_propagates(channel_factory, replies):
    """Channel failures surface unchanged as TransportError."""
    channel = channel_factory(replies.write(), fail_read_at=1)
    with pytest.raises(TransportError):
        operations.read_memory(channel, 0, 16)
