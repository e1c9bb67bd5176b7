"""Three-phase bulk exchange used by every FEL command.

Each exchange is::

    --> RequestEnvelope(direction, length)      32 bytes
    --> payload            (WRITE)   or
    <-- length bytes       (READ)
    <-- ResponseEnvelope                        13 bytes

The engine knows nothing about command semantics and never looks at the
envelope status; it performs exactly one attempt per call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from ..errors import DecodeError, MalformedResponseError, TransportError
from ..protocol.framing import Direction, RequestEnvelope, ResponseEnvelope


class Channel(Protocol):
    """Blocking bidirectional byte channel (bulk OUT / bulk IN).

    ``write`` returns the number of bytes sent. Implementations signal
    I/O failure by raising ``OSError``.
    """

    def write(self, data: bytes) -> int: ...

    def read(self, length: int) -> bytes: ...


@dataclass
class Exchange:
    """Outcome of one exchange: the closing envelope and any read data."""

    response: ResponseEnvelope
    data: bytes = b""


def _send(channel: Channel, data: bytes, phase: str) -> None:
    try:
        written = channel.write(data)
    except OSError as e:
        raise TransportError(phase, e) from e
    if written < len(data):
        raise TransportError(
            phase, OSError(f"short write: {written} of {len(data)} bytes")
        )


def _receive(channel: Channel, length: int, phase: str) -> bytes:
    try:
        return bytes(channel.read(length))
    except OSError as e:
        raise TransportError(phase, e) from e


def exchange(
    channel: Channel,
    direction: Direction,
    payload: bytes = b"",
    length: int | None = None,
) -> Exchange:
    """Run one request/payload/response exchange.

    Args:
        channel: Open session to the device.
        direction: ``Direction.WRITE`` to send ``payload``,
            ``Direction.READ`` to receive ``length`` bytes.
        payload: Bytes to send for a write.
        length: Bytes to request for a read.

    Returns:
        The decoded response envelope and, for reads, the bytes received.
        A read may return fewer bytes than requested; callers check.

    Raises:
        TransportError: The channel failed in any phase.
        MalformedResponseError: The trailing envelope did not decode.
    """
    if direction == Direction.WRITE:
        size = len(payload)
    else:
        if length is None or length < 0:
            raise ValueError("A read exchange needs a non-negative length")
        size = length

    request = RequestEnvelope(length=size, command=direction)
    _send(channel, request.to_bytes(), "request")

    data = b""
    if direction == Direction.WRITE:
        _send(channel, payload, "payload")
    else:
        data = _receive(channel, size, "payload")

    raw = _receive(channel, ResponseEnvelope.SIZE, "response")
    try:
        response = ResponseEnvelope.from_bytes(raw)
    except DecodeError as e:
        raise MalformedResponseError(f"Bad response envelope: {e}") from e

    return Exchange(response=response, data=data)


def send_request(channel: Channel, data: bytes) -> ResponseEnvelope:
    """Write ``data`` to the device in a single exchange."""
    return exchange(channel, Direction.WRITE, payload=data).response


def recv_request(channel: Channel, length: int) -> bytes:
    """Read ``length`` bytes from the device in a single exchange."""
    return exchange(channel, Direction.READ, length=length).data
