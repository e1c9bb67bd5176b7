"""Shared fixtures: an in-memory bulk channel standing in for pyusb."""

import pytest

from sunxi_fel_mcp.protocol.framing import ResponseEnvelope


class FakeChannel:
    """Replays queued IN packets and records OUT packets.

    Each ``read`` returns the next queued packet as-is, so a short packet
    simulates a device that sent less than was asked for.
    """

    def __init__(self, responses=None, fail_write_at=None, fail_read_at=None):
        self.responses = list(responses or [])
        self.written: list[bytes] = []
        self.read_sizes: list[int] = []
        self.fail_write_at = fail_write_at
        self.fail_read_at = fail_read_at

    def write(self, data: bytes) -> int:
        if self.fail_write_at == len(self.written):
            raise OSError("write timed out")
        self.written.append(bytes(data))
        return len(data)

    def read(self, length: int) -> bytes:
        if self.fail_read_at == len(self.read_sizes):
            raise OSError("read timed out")
        self.read_sizes.append(length)
        if not self.responses:
            raise OSError("no data")
        return self.responses.pop(0)


def ok_envelope() -> bytes:
    """A successful 13-byte response envelope."""
    return ResponseEnvelope().to_bytes()


def write_reply() -> list[bytes]:
    """IN packets for a completed write exchange."""
    return [ok_envelope()]


def read_reply(data: bytes) -> list[bytes]:
    """IN packets for a read exchange returning ``data``."""
    return [data, ok_envelope()]


@pytest.fixture
def channel_factory():
    """Build a FakeChannel from queued IN packets."""
    return FakeChannel


@pytest.fixture
def replies():
    """Helpers for composing device replies."""
    class Replies:
        ok = staticmethod(ok_envelope)
        write = staticmethod(write_reply)
        read = staticmethod(read_reply)

    return Replies
