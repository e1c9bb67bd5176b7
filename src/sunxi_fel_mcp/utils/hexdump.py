"""Hex rendering for packet previews and raw dumps."""

from __future__ import annotations


def hex_preview(data: bytes, limit: int = 16) -> str:
    """Space-separated hex of at most ``limit`` bytes."""
    return data[:limit].hex(" ")


def hexdump(data: bytes, width: int = 16) -> str:
    """Canonical hexdump: offset, hex columns and printable ASCII.

    Example::

        00000000  41 57 55 43 00 00 00 00  |AWUC....|
    """
    lines = []
    for offset in range(0, len(data), width):
        chunk = data[offset : offset + width]
        hex_part = chunk.hex(" ").ljust(width * 3 - 1)
        text = "".join(chr(b) if 0x20 <= b < 0x7F else "." for b in chunk)
        lines.append(f"{offset:08x}  {hex_part}  |{text}|")
    return "\n".join(lines)
