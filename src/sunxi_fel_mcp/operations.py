"""High-level FEL/FES operations.

Each operation writes one command frame and then reads back typed
results, checking the trailing status where the protocol sends one::

    verify_device:  --> VERIFY_DEVICE     <-- 32 B info     <-- 8 B status
    format_device:  --> FES_DOWNLOAD      <-- 8 B status    + verify_status(ERASE)
    verify_status:  --> FES_VERIFY_STATUS <-- 12 B result
    read_memory:    --> FEL_UPLOAD        <-- N B data      <-- 8 B status

The session is passed to every call and is never closed here.
"""

from __future__ import annotations

from collections.abc import Iterable

from .errors import DeviceReportedFailureError, ShortReadError
from .protocol.commands import (
    Tag,
    build_format,
    build_upload,
    build_verify_device,
    build_verify_status,
    combine_tags,
    parse_tag,
)
from .protocol.parser import (
    DeviceVerifyResponse,
    FESVerifyStatusResponse,
    StatusResponse,
)
from .transport.exchange import Channel, recv_request, send_request


def _read_exact(session: Channel, length: int) -> bytes:
    data = recv_request(session, length)
    if len(data) < length:
        raise ShortReadError(length, len(data))
    return data


def _check_status(session: Channel) -> StatusResponse:
    status = StatusResponse.from_bytes(_read_exact(session, StatusResponse.SIZE))
    if status.state != 0:
        raise DeviceReportedFailureError(status.state)
    return status


def verify_device(session: Channel) -> DeviceVerifyResponse:
    """Ask the device who it is.

    Returns:
        Board id, firmware version and current mode.

    Raises:
        DeviceReportedFailureError: Trailing status was non-zero.
        ShortReadError: The device sent less than a full record.
    """
    send_request(session, build_verify_device())
    info = DeviceVerifyResponse.from_bytes(
        _read_exact(session, DeviceVerifyResponse.SIZE)
    )
    _check_status(session)
    return info


def verify_status(session: Channel, tag: Tag | str | int) -> FESVerifyStatusResponse:
    """Query completion of a previous erase/mbr/finish operation.

    Only a single tag may be asked about. The returned ``flags`` should
    echo it; use :meth:`FESVerifyStatusResponse.matches` to confirm, as
    the device does not reject a mismatch itself.

    Raises:
        ValueError: ``tag`` is not a single named tag.
    """
    tag = parse_tag(tag)
    send_request(session, build_verify_status(tag))
    return FESVerifyStatusResponse.from_bytes(
        _read_exact(session, FESVerifyStatusResponse.SIZE)
    )


def format_device(session: Channel) -> FESVerifyStatusResponse:
    """Erase the storage media. The device must be in FES mode."""
    send_request(session, build_format())
    _check_status(session)
    return verify_status(session, Tag.ERASE)


def read_memory(
    session: Channel,
    address: int,
    length: int,
    tags: Iterable[Tag | str | int] = (),
) -> bytes:
    """Read ``length`` bytes of device memory starting at ``address``.

    Intended for FEL mode.

    Raises:
        ShortReadError: Fewer than ``length`` bytes came back.
        DeviceReportedFailureError: Trailing status was non-zero.
    """
    send_request(session, build_upload(address, length, combine_tags(tags)))
    data = _read_exact(session, length)
    _check_status(session)
    return data
