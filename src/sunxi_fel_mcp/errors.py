"""Exception hierarchy shared by the codec, transfer engine and commands.

Every failure is fatal to the operation that raised it. Nothing in the
protocol layers retries or recovers; callers decide what to do.
"""

from __future__ import annotations


class FELError(Exception):
    """Base class for all FEL protocol errors."""


# ─── CODEC ────────────────────────────────────────────────────────────

class DecodeError(FELError):
    """Bytes do not form a valid instance of the requested structure."""


class TruncatedError(DecodeError):
    """Input is shorter than the structure's fixed size."""

    def __init__(self, structure: str, expected: int, actual: int) -> None:
        super().__init__(
            f"{structure} needs {expected} bytes, got {actual}"
        )
        self.structure = structure
        self.expected = expected
        self.actual = actual


class BadMagicError(DecodeError):
    """Magic prefix does not match the structure's signature."""

    def __init__(self, structure: str, expected: bytes, actual: bytes) -> None:
        super().__init__(
            f"{structure} magic mismatch: expected {expected!r}, got {actual!r}"
        )
        self.structure = structure
        self.expected = expected
        self.actual = actual


# ─── TRANSFER ─────────────────────────────────────────────────────────

class TransferError(FELError):
    """A three-phase bulk exchange could not be completed."""


class TransportError(TransferError):
    """The underlying channel failed while moving bytes."""

    def __init__(self, phase: str, cause: BaseException) -> None:
        super().__init__(f"Transport failure during {phase}: {cause}")
        self.phase = phase
        self.cause = cause


class MalformedResponseError(TransferError):
    """The trailing 13-byte response envelope did not decode."""


# ─── COMMAND ──────────────────────────────────────────────────────────

class CommandError(FELError):
    """A logical FEL/FES command failed."""


class DeviceReportedFailureError(CommandError):
    """The device answered with a non-zero status state."""

    def __init__(self, state: int) -> None:
        super().__init__(f"Command failed (status {state})")
        self.state = state


class ShortReadError(CommandError):
    """The device returned fewer bytes than were requested."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Short read: expected {expected} bytes, got {actual}")
        self.expected = expected
        self.actual = actual
