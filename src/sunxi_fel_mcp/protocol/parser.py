"""Response records read back in the payload phase of read exchanges."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar

from .commands import Tag, format_tags
from .framing import require_magic, require_size

VERIFY_DEVICE_MAGIC = b"AWUSBFEX"
STATUS_MARK = 0xFFFF

# SoC id (board >> 8) to marketing name
BOARD_NAMES: dict[int, str] = {
    0x1610: "Allwinner A31s",
    0x1623: "Allwinner A10",
    0x1625: "Allwinner A13",
    0x1633: "Allwinner A31",
    0x1639: "Allwinner A80",
    0x1650: "Allwinner A23",
    0x1651: "Allwinner A20",
}


class DeviceMode(IntEnum):
    """Mode reported by VERIFY_DEVICE."""

    NULL = 0x0
    FEL = 0x1
    SRV = 0x2
    UPDATE_COOL = 0x3
    UPDATE_HOT = 0x4


def board_id_to_str(board: int) -> str:
    """Convert a board id to a chip name, or ``?`` if unknown."""
    return BOARD_NAMES.get((board >> 8) & 0xFFFF, "?")


@dataclass
class DeviceVerifyResponse:
    """Parsed VERIFY_DEVICE response (32 bytes)."""

    SIZE: ClassVar[int] = 32
    FORMAT: ClassVar[str] = "<8sIIHBBI8s"

    board: int = 0
    firmware: int = 0
    mode: int = DeviceMode.FEL
    data_flag: int = 0
    data_length: int = 0
    data_start_address: int = 0

    def to_bytes(self) -> bytes:
        return struct.pack(
            self.FORMAT,
            VERIFY_DEVICE_MAGIC,
            self.board,
            self.firmware,
            self.mode,
            self.data_flag,
            self.data_length,
            self.data_start_address,
            bytes(8),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> DeviceVerifyResponse:
        data = require_size("DeviceVerifyResponse", data, cls.SIZE)
        require_magic("DeviceVerifyResponse", data, VERIFY_DEVICE_MAGIC)
        _, board, firmware, mode, data_flag, data_length, start, _ = (
            struct.unpack(cls.FORMAT, data)
        )
        return cls(
            board=board,
            firmware=firmware,
            mode=mode,
            data_flag=data_flag,
            data_length=data_length,
            data_start_address=start,
        )

    @property
    def chip_id(self) -> int:
        return (self.board >> 8) & 0xFFFF

    @property
    def board_name(self) -> str:
        return board_id_to_str(self.board)

    @property
    def mode_name(self) -> str:
        try:
            return DeviceMode(self.mode).name.lower()
        except ValueError:
            return f"unknown(0x{self.mode:x})"

    def to_dict(self) -> dict:
        return {
            "board": self.board_name,
            "board_id": f"0x{self.board:08x}",
            "firmware": self.firmware,
            "mode": self.mode_name,
            "data_flag": f"0x{self.data_flag:08x}",
            "data_length": f"0x{self.data_length:08x}",
            "data_start_address": f"0x{self.data_start_address:08x}",
        }


@dataclass
class StatusResponse:
    """Trailing 8-byte status of a command; ``state != 0`` means failure."""

    SIZE: ClassVar[int] = 8
    FORMAT: ClassVar[str] = "<HHB3x"

    mark: int = STATUS_MARK
    tag: int = 0
    state: int = 0

    def to_bytes(self) -> bytes:
        return struct.pack(self.FORMAT, self.mark, self.tag, self.state)

    @classmethod
    def from_bytes(cls, data: bytes) -> StatusResponse:
        data = require_size("StatusResponse", data, cls.SIZE)
        mark, tag, state = struct.unpack(cls.FORMAT, data)
        return cls(mark=mark, tag=tag, state=state)

    @property
    def ok(self) -> bool:
        return self.state == 0


@dataclass
class FESVerifyStatusResponse:
    """Result of FES_VERIFY_STATUS (12 bytes).

    ``flags`` echoes the tag that was asked about; ``last_error`` is 0
    when the operation completed.
    """

    SIZE: ClassVar[int] = 12
    FORMAT: ClassVar[str] = "<IIi"

    flags: int = Tag.NONE
    fes_crc: int = 0
    last_error: int = 0

    def to_bytes(self) -> bytes:
        return struct.pack(self.FORMAT, self.flags, self.fes_crc, self.last_error)

    @classmethod
    def from_bytes(cls, data: bytes) -> FESVerifyStatusResponse:
        data = require_size("FESVerifyStatusResponse", data, cls.SIZE)
        flags, fes_crc, last_error = struct.unpack(cls.FORMAT, data)
        return cls(flags=flags, fes_crc=fes_crc, last_error=last_error)

    def matches(self, tag: int) -> bool:
        """True if the echoed flags are exactly ``tag``."""
        return self.flags == tag

    def to_dict(self) -> dict:
        return {
            "flags": format_tags(self.flags),
            "fes_crc": f"0x{self.fes_crc:08x}",
            "last_error": self.last_error,
        }
