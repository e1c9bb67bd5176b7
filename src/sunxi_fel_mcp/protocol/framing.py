"""USB envelope records wrapping every FEL bulk exchange.

Request envelope layout (32 bytes, little-endian)::

    +-------+-----+--------+-------+-----+---------+-----+-----+--------+----------+
    | Magic | Tag | Length | Flags | Rsv | Cmd len | Cmd | Rsv | Length | Reserved |
    | 4 B   | 4 B | 4 B    | 2 B   | 1 B | 1 B     | 1 B | 1 B | 4 B    | 10 B     |
    +-------+-----+--------+-------+-----+---------+-----+-----+--------+----------+

- Magic: ``AWUC``
- Length: byte count of the payload phase that follows (repeated at 0x12)
- Cmd: ``0x11`` (device-to-host read) or ``0x12`` (host-to-device write)

Response envelope layout (13 bytes)::

    +-------+-----+---------+--------+
    | Magic | Tag | Residue | Status |
    | 4 B   | 4 B | 4 B     | 1 B    |
    +-------+-----+---------+--------+
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar

from ..errors import BadMagicError, TruncatedError

REQUEST_MAGIC = b"AWUC"
RESPONSE_MAGIC = b"AWUS"
COMMAND_BLOCK_LENGTH = 0x0C


class Direction(IntEnum):
    """USB request command: which way the next payload phase flows."""

    READ = 0x11
    WRITE = 0x12


class CSWStatus(IntEnum):
    """Status byte carried in the response envelope."""

    OK = 0
    FAIL = 1


def require_size(structure: str, data: bytes, size: int) -> bytes:
    """Return the first ``size`` bytes of ``data`` or raise TruncatedError."""
    if len(data) < size:
        raise TruncatedError(structure, size, len(data))
    return bytes(data[:size])


def require_magic(structure: str, data: bytes, magic: bytes) -> None:
    """Raise BadMagicError unless ``data`` starts with ``magic``."""
    if data[: len(magic)] != magic:
        raise BadMagicError(structure, magic, bytes(data[: len(magic)]))


@dataclass
class RequestEnvelope:
    """Announces the direction and size of the next bulk payload."""

    SIZE: ClassVar[int] = 32
    FORMAT: ClassVar[str] = "<4sIIHBBBBI10s"

    length: int = 0
    command: int = Direction.WRITE
    tag: int = 0
    flags: int = 0
    command_length: int = COMMAND_BLOCK_LENGTH

    def to_bytes(self) -> bytes:
        return struct.pack(
            self.FORMAT,
            REQUEST_MAGIC,
            self.tag,
            self.length,
            self.flags,
            0,
            self.command_length,
            self.command,
            0,
            self.length,
            bytes(10),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> RequestEnvelope:
        data = require_size("RequestEnvelope", data, cls.SIZE)
        require_magic("RequestEnvelope", data, REQUEST_MAGIC)
        _, tag, length, flags, _, cmd_len, command, _, _, _ = struct.unpack(
            cls.FORMAT, data
        )
        return cls(
            length=length,
            command=command,
            tag=tag,
            flags=flags,
            command_length=cmd_len,
        )

    @property
    def direction(self) -> Direction | None:
        """The announced direction, or None for an unrecognized command."""
        try:
            return Direction(self.command)
        except ValueError:
            return None


@dataclass
class ResponseEnvelope:
    """Terminates every bulk exchange."""

    SIZE: ClassVar[int] = 13
    FORMAT: ClassVar[str] = "<4sIIB"

    tag: int = 0
    residue: int = 0
    status: int = CSWStatus.OK

    def to_bytes(self) -> bytes:
        return struct.pack(
            self.FORMAT, RESPONSE_MAGIC, self.tag, self.residue, self.status
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> ResponseEnvelope:
        data = require_size("ResponseEnvelope", data, cls.SIZE)
        require_magic("ResponseEnvelope", data, RESPONSE_MAGIC)
        _, tag, residue, status = struct.unpack(cls.FORMAT, data)
        return cls(tag=tag, residue=residue, status=status)

    @property
    def status_name(self) -> str:
        try:
            return CSWStatus(self.status).name.lower()
        except ValueError:
            return f"unknown(0x{self.status:02x})"
