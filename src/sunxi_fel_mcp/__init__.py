"""Allwinner FEL/FES USB client exposed as an MCP server."""

__version__ = "0.1.0"
