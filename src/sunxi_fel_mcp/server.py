"""MCP server entry point for Allwinner FEL/FES devices.

Exposes device discovery, identification, erase, status verification,
memory read-back and offline capture decoding as MCP tools over stdio.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from . import operations
from .errors import FELError
from .protocol.commands import TAG_TABLE, Tag, parse_tag
from .protocol.inspector import inspect_capture_file
from .transport.usb_connection import (
    USBConnection,
    list_devices as find_devices,
    open_session,
)

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "sunxi-fel",
    instructions="MCP server for Allwinner SoCs in FEL/FES USB mode",
)

# Session owned by this process; passed explicitly to every operation
_connection: USBConnection | None = None


def _get_connection() -> USBConnection:
    """Get the active USB session, raising if not connected."""
    if _connection is None or not _connection.connected:
        raise RuntimeError(
            "Not connected to device. Use the 'connect' tool first."
        )
    return _connection


def _parse_int(value: int | str, what: str) -> int:
    """Accept ints, decimal strings and 0x-prefixed hex strings."""
    if isinstance(value, int):
        return value
    text = value.strip().replace("_", "")
    try:
        return int(text, 16) if text.lower().startswith("0x") else int(text)
    except ValueError:
        raise ValueError(f"Invalid {what}: {value!r}") from None


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def list_devices() -> dict[str, Any]:
    """List attached devices in FEL mode (USB 1f3a:efe8).

    The position in the returned list is the ``device_index`` accepted
    by ``connect``.
    """
    devices = find_devices()
    return {
        "devices": [
            {"index": i, **d.to_dict()} for i, d in enumerate(devices)
        ]
    }


@mcp.tool()
def connect(device_index: int | None = None, trace: bool = False) -> dict[str, Any]:
    """Open a USB session to a FEL device.

    Args:
        device_index: Index from ``list_devices``. Required when more
            than one device is attached.
        trace: Log every packet through the protocol decoder at DEBUG.
    """
    global _connection
    if _connection is not None and _connection.connected:
        return {
            "connected": True,
            "message": "Already connected",
            "device": _connection.descriptor.to_dict(),
        }

    devices = find_devices()
    if not devices:
        return {"error": "No device found in FEL mode"}
    if device_index is None:
        if len(devices) > 1:
            return {
                "error": "Found more than 1 device, pass device_index",
                "devices": [d.to_dict() for d in devices],
            }
        device_index = 0
    if not 0 <= device_index < len(devices):
        return {"error": f"device_index must be 0-{len(devices) - 1}"}

    try:
        _connection = open_session(devices[device_index], trace=trace)
    except ConnectionError as e:
        logger.error("Connect failed: %s", e)
        return {"error": str(e)}

    return {"connected": True, "device": _connection.descriptor.to_dict()}


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the USB session."""
    global _connection
    if _connection is None:
        return {"disconnected": True}
    _connection.close()
    _connection = None
    return {"disconnected": True}


# ─── DEVICE TOOLS ─────────────────────────────────────────────────────

@mcp.tool()
def get_device_info() -> dict[str, Any]:
    """Identify the device (board, firmware, mode) with VERIFY_DEVICE."""
    conn = _get_connection()
    try:
        info = operations.verify_device(conn)
    except FELError as e:
        logger.error("Failed to receive device info: %s", e)
        return {"error": f"Failed to receive device info ({e})"}
    return info.to_dict()


@mcp.tool()
def format_device() -> dict[str, Any]:
    """Erase the device's storage. The device must be in FES mode."""
    conn = _get_connection()
    try:
        result = operations.format_device(conn)
    except FELError as e:
        logger.error("Failed to format device: %s", e)
        return {"error": f"Failed to format device ({e})"}

    response = result.to_dict()
    response["confirmed"] = result.matches(Tag.ERASE) and result.last_error == 0
    return response


@mcp.tool()
def verify_status(tag: str) -> dict[str, Any]:
    """Ask whether a previous operation completed.

    Args:
        tag: A single operation tag, e.g. "erase", "mbr" or "finish".
    """
    conn = _get_connection()
    try:
        requested = parse_tag(tag)
        result = operations.verify_status(conn, requested)
    except ValueError as e:
        return {"error": str(e), "tags": [name for name, _ in TAG_TABLE]}
    except FELError as e:
        logger.error("Failed to verify status: %s", e)
        return {"error": f"Failed to verify status ({e})"}

    response = result.to_dict()
    response["matches"] = result.matches(requested)
    return response


@mcp.tool()
def read_memory(
    address: int | str,
    length: int | str,
    path: str | None = None,
    tags: list[str] | None = None,
) -> dict[str, Any]:
    """Read device memory, optionally saving it to a file.

    Args:
        address: Start address, decimal or 0x-prefixed hex.
        length: Byte count, decimal or 0x-prefixed hex.
        path: File to write the data to. When omitted the data is
              returned as hex.
        tags: Optional operation tags to set on the request.
    """
    conn = _get_connection()
    try:
        start = _parse_int(address, "address")
        size = _parse_int(length, "length")
        data = operations.read_memory(conn, start, size, tags or ())
    except ValueError as e:
        return {"error": str(e)}
    except FELError as e:
        logger.error("Failed to read data: %s", e)
        return {"error": f"Failed to read data ({e})"}

    result: dict[str, Any] = {"address": f"0x{start:08x}", "length": len(data)}
    if path:
        Path(path).write_bytes(data)
        result["path"] = str(path)
    else:
        result["data"] = data.hex()
    return result


# ─── OFFLINE TOOLS ────────────────────────────────────────────────────

@mcp.tool()
def decode_capture(path: str) -> dict[str, Any]:
    """Decode a Wireshark USBPcap export saved as C arrays.

    Args:
        path: Path to the exported text file.
    """
    try:
        packets = inspect_capture_file(path)
    except OSError as e:
        return {"error": f"Could not read capture: {e}"}
    return {
        "count": len(packets),
        "packets": [str(p) for p in packets],
    }


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
