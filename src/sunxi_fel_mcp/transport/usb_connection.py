"""pyusb session to an Allwinner SoC in FEL mode.

The boot ROM enumerates as 1f3a:efe8 with a single vendor interface
(0) carrying one bulk OUT and one bulk IN endpoint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import usb.core
import usb.util

from ..protocol.framing import Direction
from ..protocol.inspector import classify

logger = logging.getLogger(__name__)

VENDOR_ID = 0x1F3A
PRODUCT_ID = 0xEFE8
FEL_INTERFACE = 0
TIMEOUT_MS = 5000


@dataclass
class DeviceDescriptor:
    """A FEL device found on the bus."""

    vendor_id: int = VENDOR_ID
    product_id: int = PRODUCT_ID
    bus: int = 0
    address: int = 0
    port_number: int = 0
    device: Any = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict:
        return {
            "vendor_id": f"0x{self.vendor_id:04x}",
            "product_id": f"0x{self.product_id:04x}",
            "bus": self.bus,
            "address": self.address,
            "port": self.port_number,
        }


def list_devices(
    vendor_id: int = VENDOR_ID,
    product_id: int = PRODUCT_ID,
) -> list[DeviceDescriptor]:
    """Enumerate attached devices in FEL mode."""
    found = usb.core.find(find_all=True, idVendor=vendor_id, idProduct=product_id)
    return [
        DeviceDescriptor(
            vendor_id=dev.idVendor,
            product_id=dev.idProduct,
            bus=dev.bus or 0,
            address=dev.address or 0,
            port_number=dev.port_number or 0,
            device=dev,
        )
        for dev in found or []
    ]


def open_session(
    descriptor: DeviceDescriptor,
    timeout_ms: int = TIMEOUT_MS,
    trace: bool = False,
) -> USBConnection:
    """Open and claim a device returned by :func:`list_devices`.

    Raises:
        ConnectionError: If the device cannot be configured or claimed.
    """
    conn = USBConnection(descriptor, timeout_ms=timeout_ms, trace=trace)
    conn.open()
    return conn


class USBConnection:
    """Bulk channel to one FEL device.

    Usage::

        with open_session(list_devices()[0]) as conn:
            info = verify_device(conn)
    """

    def __init__(
        self,
        descriptor: DeviceDescriptor,
        interface: int = FEL_INTERFACE,
        timeout_ms: int = TIMEOUT_MS,
        trace: bool = False,
    ) -> None:
        self._descriptor = descriptor
        self._interface = interface
        self._timeout_ms = timeout_ms
        self._trace = trace
        self._device = None
        self._ep_out = None
        self._ep_in = None
        self._connected = False

    def __enter__(self) -> USBConnection:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def descriptor(self) -> DeviceDescriptor:
        return self._descriptor

    @property
    def endpoints(self) -> tuple[int, int]:
        """(OUT, IN) endpoint addresses."""
        if not self._connected:
            raise ConnectionError("Not connected to device")
        return self._ep_out.bEndpointAddress, self._ep_in.bEndpointAddress

    def open(self) -> DeviceDescriptor:
        """Configure the device, claim the FEL interface and find endpoints.

        Raises:
            ConnectionError: If the device is missing or cannot be claimed.
        """
        dev = self._descriptor.device
        if dev is None:
            raise ConnectionError("Descriptor has no USB device attached")

        try:
            dev.set_configuration()
        except usb.core.USBError as e:
            logger.warning("Could not set configuration: %s", e)

        try:
            if dev.is_kernel_driver_active(self._interface):
                dev.detach_kernel_driver(self._interface)
        except NotImplementedError:
            pass
        except usb.core.USBError as e:
            logger.debug("Kernel driver check failed: %s", e)

        try:
            usb.util.claim_interface(dev, self._interface)
        except usb.core.USBError as e:
            raise ConnectionError(
                f"Could not claim interface {self._interface} on FEL device "
                f"{self._descriptor.bus}@{self._descriptor.address}: {e}"
            ) from e

        try:
            intf = dev.get_active_configuration()[(self._interface, 0)]
        except (usb.core.USBError, KeyError) as e:
            usb.util.release_interface(dev, self._interface)
            raise ConnectionError(
                f"Could not find interface {self._interface} on FEL device "
                f"{self._descriptor.bus}@{self._descriptor.address}: {e}"
            ) from e

        self._ep_out = usb.util.find_descriptor(
            intf,
            custom_match=lambda e: usb.util.endpoint_direction(e.bEndpointAddress)
            == usb.util.ENDPOINT_OUT,
        )
        self._ep_in = usb.util.find_descriptor(
            intf,
            custom_match=lambda e: usb.util.endpoint_direction(e.bEndpointAddress)
            == usb.util.ENDPOINT_IN,
        )
        if self._ep_out is None or self._ep_in is None:
            usb.util.release_interface(dev, self._interface)
            raise ConnectionError("Could not find bulk endpoints on FEL interface")

        self._device = dev
        self._connected = True
        logger.info(
            "Connected to FEL device %d@%d %04x:%04x (port %d)",
            self._descriptor.bus,
            self._descriptor.address,
            self._descriptor.vendor_id,
            self._descriptor.product_id,
            self._descriptor.port_number,
        )
        return self._descriptor

    def close(self) -> None:
        """Release the interface and free pyusb resources."""
        if not self._connected:
            return

        try:
            usb.util.release_interface(self._device, self._interface)
            usb.util.dispose_resources(self._device)
        except usb.core.USBError as e:
            logger.warning("Error closing device: %s", e)
        finally:
            self._device = None
            self._connected = False
            logger.info("Disconnected")

    def write(self, data: bytes) -> int:
        """Send bytes on the bulk OUT endpoint.

        Raises:
            ConnectionError: If not connected.
            usb.core.USBError: If the transfer fails.
        """
        if not self._connected:
            raise ConnectionError("Not connected to device")
        self._log_packet(data, Direction.WRITE)
        written = self._ep_out.write(data, timeout=self._timeout_ms)
        logger.debug("Sent %d bytes", written)
        return written

    def read(self, length: int) -> bytes:
        """Receive up to ``length`` bytes from the bulk IN endpoint.

        Raises:
            ConnectionError: If not connected.
            usb.core.USBError: If the transfer fails or times out.
        """
        if not self._connected:
            raise ConnectionError("Not connected to device")
        data = bytes(self._ep_in.read(length, timeout=self._timeout_ms))
        logger.debug("Received %d bytes", len(data))
        self._log_packet(data, Direction.READ)
        return data

    def _log_packet(self, data: bytes, direction: Direction) -> None:
        if self._trace and logger.isEnabledFor(logging.DEBUG):
            info, _ = classify(data, direction)
            logger.debug("%s", info)
