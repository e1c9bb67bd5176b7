"""FEL/FES command codes, operation tags and command frame builders.

Every logical command is a 16-byte frame sent in the payload phase of a
write exchange. Command codes are shared by FEL (boot ROM) and FES
(flashing stub) modes.
"""

from __future__ import annotations

import struct
from collections.abc import Iterable
from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar

from .framing import require_size


class Command(IntEnum):
    """FEL and FES command codes."""

    VERIFY_DEVICE = 0x001
    SWITCH_ROLE = 0x002
    IS_READY = 0x003
    GET_CMD_SET_VER = 0x004
    DISCONNECT = 0x010
    FEL_DOWNLOAD = 0x101
    FEL_RUN = 0x102
    FEL_UPLOAD = 0x103
    FES_TRANSMIT = 0x201
    FES_RUN = 0x202
    FES_INFO = 0x203
    FES_GET_MSG = 0x204
    FES_UNREG_FED = 0x205
    FES_DOWNLOAD = 0x206
    FES_UPLOAD = 0x207
    FES_VERIFY = 0x208
    FES_QUERY_STORAGE = 0x209
    FES_FLASH_SET_ON = 0x20A
    FES_FLASH_SET_OFF = 0x20B
    FES_VERIFY_VALUE = 0x20C
    FES_VERIFY_STATUS = 0x20D
    FES_FLASH_SIZE_PROBE = 0x20E
    FES_TOOL_MODE = 0x20F
    FES_MEMSET = 0x210
    FES_PMU = 0x211
    FES_UNSEAL = 0x212
    FES_SET_USB_PARAMS = 0x213

    @classmethod
    def describe(cls, code: int) -> str:
        """Name for ``code``, or ``UNKNOWN(0x...)`` outside the table."""
        try:
            return cls(code).name
        except ValueError:
            return f"UNKNOWN(0x{code:03X})"


class Tag(IntEnum):
    """Operation tags carried in the ``flags`` word of a command frame.

    Values are not single bits: a tag is present in a mask when all of
    its bits are set. Declaration order is the rendering order.
    """

    NONE = 0x0
    MBR = 0x7F01
    UBOOT = 0x7F02
    BOOT0 = 0x7F03
    ERASE = 0x7F04
    PMU_SET = 0x7F05
    UNSEQ_MEM_FOR_READ = 0x7F06
    FULL_SIZE = 0x7F07
    FINISH = 0x10000
    START = 0x20000


class MediaIndex(IntEnum):
    """Target media of an FES transmit request."""

    DRAM = 0
    PHYSICAL = 1
    LOG = 2


class TransmitFlag(IntEnum):
    """Direction flag of an FES transmit request."""

    WRITE = 0x10
    READ = 0x20
    START = 0x40
    FINISH = 0x80


TAG_TABLE: tuple[tuple[str, int], ...] = tuple(
    (tag.name.lower(), tag.value) for tag in Tag
)


def format_tags(mask: int, table: Iterable[tuple[str, int]] = TAG_TABLE) -> str:
    """Render a tag mask as ``|``-joined names in table order.

    The zero-valued sentinel is only shown for an empty mask. Bits not
    covered by any matching entry are appended as ``unknown(0x...)``.
    """
    names: list[str] = []
    covered = 0
    for name, value in table:
        if value == 0:
            if mask == 0:
                names.append(name)
            continue
        if mask & value == value:
            names.append(name)
            covered |= value
    leftover = mask & ~covered
    if leftover:
        names.append(f"unknown(0x{leftover:x})")
    return "|".join(names)


def combine_tags(tags: Iterable[Tag | str | int]) -> int:
    """OR together tags given as members, names or raw values."""
    mask = 0
    for tag in tags:
        mask |= parse_tag(tag)
    return mask


def parse_tag(tag: Tag | str | int) -> Tag:
    """Resolve a tag member, case-insensitive name or value."""
    if isinstance(tag, str):
        try:
            return Tag[tag.upper()]
        except KeyError:
            raise ValueError(
                f"Unknown tag '{tag}'. Valid: {[name for name, _ in TAG_TABLE]}"
            ) from None
    try:
        return Tag(tag)
    except ValueError:
        raise ValueError(f"Unknown tag value 0x{int(tag):x}") from None


@dataclass
class FELMessage:
    """Generic 16-byte command frame."""

    SIZE: ClassVar[int] = 16
    FORMAT: ClassVar[str] = "<HHIII"

    command: int = Command.FES_DOWNLOAD
    tag: int = 0
    address: int = 0
    length: int = 0
    flags: int = Tag.NONE

    def to_bytes(self) -> bytes:
        return struct.pack(
            self.FORMAT,
            self.command,
            self.tag,
            self.address,
            self.length,
            self.flags,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> FELMessage:
        data = require_size("FELMessage", data, cls.SIZE)
        command, tag, address, length, flags = struct.unpack(cls.FORMAT, data)
        return cls(
            command=command, tag=tag, address=address, length=length, flags=flags
        )

    def __repr__(self) -> str:
        return (
            f"FELMessage(command={Command.describe(self.command)}, "
            f"tag={self.tag}, address=0x{self.address:08x}, "
            f"length={self.length}, flags={format_tags(self.flags)})"
        )


@dataclass
class FESTransmitRequest:
    """FES media transfer descriptor (command FES_TRANSMIT)."""

    SIZE: ClassVar[int] = 16
    FORMAT: ClassVar[str] = "<HHIIBB2x"

    address: int = 0
    length: int = 0
    media_index: int = MediaIndex.DRAM
    direction: int = TransmitFlag.WRITE
    tag: int = 0
    command: int = Command.FES_TRANSMIT

    def to_bytes(self) -> bytes:
        return struct.pack(
            self.FORMAT,
            self.command,
            self.tag,
            self.address,
            self.length,
            self.media_index,
            self.direction,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> FESTransmitRequest:
        data = require_size("FESTransmitRequest", data, cls.SIZE)
        command, tag, address, length, media_index, direction = struct.unpack(
            cls.FORMAT, data
        )
        return cls(
            address=address,
            length=length,
            media_index=media_index,
            direction=direction,
            tag=tag,
            command=command,
        )

    @property
    def direction_name(self) -> str:
        try:
            return TransmitFlag(self.direction).name.lower()
        except ValueError:
            return f"unknown(0x{self.direction:02x})"

    @property
    def media_name(self) -> str:
        try:
            return MediaIndex(self.media_index).name.lower()
        except ValueError:
            return str(self.media_index)


def build_verify_device() -> bytes:
    """Build a VERIFY_DEVICE request frame."""
    return FELMessage(command=Command.VERIFY_DEVICE).to_bytes()


def build_format() -> bytes:
    """Build the FES_DOWNLOAD frame that erases storage.

    No data follows: the 16-byte length with ERASE|FINISH asks the FES
    stub to wipe the media and close the transfer in one go.
    """
    return FELMessage(
        command=Command.FES_DOWNLOAD,
        address=0,
        length=16,
        flags=Tag.ERASE | Tag.FINISH,
    ).to_bytes()


def build_verify_status(tag: Tag) -> bytes:
    """Build an FES_VERIFY_STATUS frame for a single operation tag."""
    return FELMessage(
        command=Command.FES_VERIFY_STATUS, address=0, length=0, flags=tag
    ).to_bytes()


def build_upload(address: int, length: int, flags: int = Tag.NONE) -> bytes:
    """Build a FEL_UPLOAD frame reading ``length`` bytes at ``address``.

    Args:
        address: 32-bit device address.
        length: Number of bytes to read back.
        flags: OR of operation tags.
    """
    if not 0 <= address <= 0xFFFFFFFF:
        raise ValueError(f"Address must fit in 32 bits, got {address:#x}")
    if not 0 < length <= 0xFFFFFFFF:
        raise ValueError(f"Length must be 1-0xFFFFFFFF, got {length}")
    return FELMessage(
        command=Command.FEL_UPLOAD, address=address, length=length, flags=flags
    ).to_bytes()
