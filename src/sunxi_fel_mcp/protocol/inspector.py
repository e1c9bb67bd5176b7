"""Offline decoder for captured FEL traffic.

Captures are USBPcap packets exported from Wireshark as C arrays::

    char packet_bytes[] = {
    0x1c, 0x00, 0x10, 0x60, 0xa9, 0x95, 0x00, 0xe0, /* ...`.... */
    ...
    };

Every array starts with a 27-byte USBPcap header, which is stripped.
Envelopes identify themselves by magic; bare payloads (16-byte command
frames, 8-byte statuses) can only be told apart by remembering the
direction announced by the preceding request envelope.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .commands import Command, FELMessage, FESTransmitRequest, format_tags
from .framing import (
    REQUEST_MAGIC,
    RESPONSE_MAGIC,
    Direction,
    RequestEnvelope,
    ResponseEnvelope,
)
from .parser import VERIFY_DEVICE_MAGIC, DeviceVerifyResponse, StatusResponse
from ..utils.hexdump import hex_preview, hexdump

CAPTURE_HEADER_SIZE = 27
MIN_PACKET_SIZE = 4
RAW_DUMP_LIMIT = 64

_ARRAY_RE = re.compile(r"^.*?\{(.*?)\};", re.MULTILINE | re.DOTALL)
_BYTE_RE = re.compile(r"0x([0-9A-Fa-f]{2})")
_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)


@dataclass
class PacketInfo:
    """Human-readable classification of one packet."""

    kind: str
    summary: str
    length: int
    direction: Direction | None = None
    record: Any = None

    @property
    def arrow(self) -> str:
        if self.direction == Direction.WRITE:
            return "-->"
        if self.direction == Direction.READ:
            return "<--"
        return "???"

    def __str__(self) -> str:
        head = f"{self.arrow} ({self.length:5d}) {self.kind}"
        if not self.summary:
            return head
        sep = "\n" if "\n" in self.summary else "\t"
        return f"{head}{sep}{self.summary}"


def _describe_command(packet: bytes) -> tuple[str, str, Any]:
    message = FELMessage.from_bytes(packet)
    name = Command.describe(message.command)

    if message.command == Command.VERIFY_DEVICE:
        return name, f"({message.command})", message

    if message.command == Command.FES_TRANSMIT:
        transmit = FESTransmitRequest.from_bytes(packet)
        return (
            name,
            f"{transmit.direction_name}, index {transmit.media_index}, "
            f"addr 0x{transmit.address:08x}, len {transmit.length}",
            transmit,
        )

    if message.command in (Command.FES_DOWNLOAD, Command.FES_VERIFY_STATUS):
        return (
            name,
            f"(0x{message.command:02X}) tag: {message.tag}, "
            f"{message.length} bytes @ 0x{message.address:08x}, "
            f"flags {format_tags(message.flags)} (0x{message.flags:04x})",
            message,
        )

    return name, f"(0x{message.command:02X}): {hex_preview(packet)}", message


def classify(
    packet: bytes, last_direction: Direction | None
) -> tuple[PacketInfo, Direction | None]:
    """Classify a single packet.

    Args:
        packet: Protocol bytes with any capture header already removed.
        last_direction: Direction announced by the most recent request
            envelope, or None if none has been seen.

    Returns:
        The description and the direction to carry to the next packet.
    """
    packet = bytes(packet)
    length = len(packet)

    if length == RequestEnvelope.SIZE and packet.startswith(REQUEST_MAGIC):
        request = RequestEnvelope.from_bytes(packet)
        direction = request.direction
        if direction is None:
            info = PacketInfo(
                "AWUnknown",
                f"(0x{request.command:x})",
                length,
                Direction.WRITE,
                request,
            )
            return info, last_direction
        info = PacketInfo(
            "AWUSBRequest",
            f"{direction.name}: prepare for {direction.name.lower()} "
            f"of {request.length} bytes",
            length,
            Direction.WRITE,
            request,
        )
        return info, direction

    if (
        packet.startswith(VERIFY_DEVICE_MAGIC)
        and length >= DeviceVerifyResponse.SIZE
    ):
        response = DeviceVerifyResponse.from_bytes(packet)
        info = PacketInfo(
            "AWFELVerifyDeviceResponse",
            f"{response.board_name}, FW: {response.firmware}, "
            f"mode: {response.mode_name}",
            length,
            Direction.READ,
            response,
        )
        return info, last_direction

    if length == ResponseEnvelope.SIZE and packet.startswith(RESPONSE_MAGIC):
        response = ResponseEnvelope.from_bytes(packet)
        info = PacketInfo(
            "AWUSBResponse",
            f"0x{response.tag:x}, status {response.status_name}",
            length,
            Direction.READ,
            response,
        )
        return info, last_direction

    if last_direction is None:
        return PacketInfo("Unclassifiable", "", length), last_direction

    if length == FELMessage.SIZE:
        kind, summary, record = _describe_command(packet)
        info = PacketInfo(kind, summary, length, last_direction, record)
    elif length == StatusResponse.SIZE:
        status = StatusResponse.from_bytes(packet)
        info = PacketInfo(
            "AWFELStatusResponse",
            f"mark {status.mark}, tag {status.tag}, state {status.state}",
            length,
            last_direction,
            status,
        )
    else:
        info = PacketInfo(
            "Raw", hexdump(packet[:RAW_DUMP_LIMIT]), length, last_direction
        )
    return info, last_direction


def parse_capture(text: str) -> list[bytes]:
    """Extract packet payloads from C-array capture text.

    Byte-view comments are ignored and arrays shorter than the capture
    header are skipped.
    """
    packets = []
    text = _COMMENT_RE.sub("", text)
    for match in _ARRAY_RE.finditer(text):
        raw = bytes.fromhex("".join(_BYTE_RE.findall(match.group(1))))
        if len(raw) < CAPTURE_HEADER_SIZE:
            continue
        packets.append(raw[CAPTURE_HEADER_SIZE:])
    return packets


def inspect_capture(text: str) -> list[PacketInfo]:
    """Classify every packet of a capture, threading the direction."""
    results = []
    direction: Direction | None = None
    for packet in parse_capture(text):
        if len(packet) < MIN_PACKET_SIZE:
            continue
        info, direction = classify(packet, direction)
        results.append(info)
    return results


def inspect_capture_file(path: str | Path) -> list[PacketInfo]:
    """Read a capture export from disk and classify its packets."""
    return inspect_capture(Path(path).read_text())
