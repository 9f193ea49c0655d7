"""
Raw USB bulk session for the Croco Cartridge.

The cartridge exposes one vendor-specific interface (bInterfaceClass=0xFF)
with a bulk OUT and a bulk IN endpoint.  Opening it follows the sequence
the firmware expects:

  1. Find device by VID/PID
  2. Locate the vendor interface and its bulk endpoints
  3. Detach any kernel driver, claim the interface, select alt setting 0
  4. Class request 0x22 (SET_CONTROL_LINE_STATE, DTR) so the firmware
     starts answering on the bulk pipe

Requires: ``pip install pyusb`` + ``apt install libusb-1.0-0``
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import usb.core
import usb.util

from .constants import (
    CROCO_PID,
    CROCO_VID,
    DEFAULT_TIMEOUT_MS,
    LINE_STATE_REQUEST,
    LINE_STATE_VALUE,
    VENDOR_INTERFACE_CLASS,
)
from .core.errors import (
    DeviceConfigError,
    DeviceNotFoundError,
    TransportError,
    TransportTimeoutError,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsbDeviceRef:
    """An attached cartridge as seen on the bus (before opening)."""
    vid: int
    pid: int
    bus: Optional[int] = None
    address: Optional[int] = None

    def __str__(self) -> str:
        return f"[{self.vid:04x}:{self.pid:04x}] bus {self.bus} address {self.address}"


class DeviceSession:
    """Exclusive owner of an opened cartridge and its two bulk endpoints.

    ``send`` and ``receive`` are the only raw I/O used by the protocol
    layers.  A read timeout is reported as zero bytes, not as an error;
    the transaction layer decides what an empty read means.
    """

    def __init__(
        self,
        device: Any,
        ep_out: int,
        ep_in: int,
        interface: int,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ):
        if not ep_out or not ep_in:
            raise ValueError(
                f"Both bulk endpoints must be set (OUT=0x{ep_out or 0:02x}, "
                f"IN=0x{ep_in or 0:02x})"
            )
        self._device = device
        self.ep_out = ep_out
        self.ep_in = ep_in
        self.interface = interface
        self.timeout_ms = timeout_ms

    @property
    def is_open(self) -> bool:
        return self._device is not None

    def _require_open(self) -> Any:
        if self._device is None:
            raise TransportError("Session is closed")
        return self._device

    def send(self, data: bytes) -> int:
        """Bulk write *data* to the OUT endpoint.  Returns bytes written."""
        device = self._require_open()
        try:
            written = device.write(self.ep_out, data, timeout=self.timeout_ms)
        except usb.core.USBTimeoutError as e:
            raise TransportTimeoutError(
                f"Bulk write timed out after {self.timeout_ms} ms"
            ) from e
        except usb.core.USBError as e:
            raise TransportError(f"Bulk write failed: {e}") from e

        if written != len(data):
            raise TransportError(
                f"Incomplete bulk write: {written} of {len(data)} bytes"
            )
        return written

    def receive(self, max_len: int) -> bytes:
        """Bulk read up to *max_len* bytes.  Timeout yields ``b""``."""
        device = self._require_open()
        try:
            data = device.read(self.ep_in, max_len, timeout=self.timeout_ms)
        except usb.core.USBTimeoutError:
            log.debug("Bulk read timed out after %d ms", self.timeout_ms)
            return b""
        except usb.core.USBError as e:
            raise TransportError(f"Bulk read failed: {e}") from e
        return bytes(data)

    def close(self) -> None:
        """Release the interface and free libusb resources."""
        if self._device is None:
            return
        try:
            usb.util.release_interface(self._device, self.interface)
        except usb.core.USBError as e:
            log.debug("Release interface %d: %s", self.interface, e)
        usb.util.dispose_resources(self._device)
        self._device = None
        log.info("Cartridge session closed")

    def __enter__(self) -> DeviceSession:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# =========================================================================
# Discovery (host USB stack side)
# =========================================================================

def find_devices(vid: int = CROCO_VID, pid: int = CROCO_PID) -> List[UsbDeviceRef]:
    """List attached cartridges without opening them."""
    found = usb.core.find(find_all=True, idVendor=vid, idProduct=pid)
    return [
        UsbDeviceRef(
            vid=dev.idVendor,
            pid=dev.idProduct,
            bus=getattr(dev, 'bus', None),
            address=getattr(dev, 'address', None),
        )
        for dev in (found or [])
    ]


def _find_vendor_interface(device: Any) -> Any:
    try:
        cfg = device.get_active_configuration()
    except usb.core.USBError:
        device.set_configuration()
        cfg = device.get_active_configuration()

    intf = usb.util.find_descriptor(cfg, bInterfaceClass=VENDOR_INTERFACE_CLASS)
    if intf is None:
        raise DeviceConfigError("No vendor-specific interface on device")
    return intf


def _find_bulk_endpoints(intf: Any) -> Tuple[int, int]:
    ep_out = ep_in = 0
    for ep in intf:
        if usb.util.endpoint_type(ep.bmAttributes) != usb.util.ENDPOINT_TYPE_BULK:
            continue
        if usb.util.endpoint_direction(ep.bEndpointAddress) == usb.util.ENDPOINT_IN:
            ep_in = ep.bEndpointAddress
        else:
            ep_out = ep.bEndpointAddress

    if not ep_out or not ep_in:
        raise DeviceConfigError("Could not find bulk IN/OUT endpoints")
    return ep_out, ep_in


def _configure(device: Any, if_num: int, timeout_ms: int) -> None:
    try:
        if device.is_kernel_driver_active(if_num):
            device.detach_kernel_driver(if_num)
            log.debug("Detached kernel driver from interface %d", if_num)
    except (NotImplementedError, usb.core.USBError) as e:
        # Not supported on every platform; claiming below reports real conflicts
        log.debug("Kernel driver detach: %s", e)

    try:
        usb.util.claim_interface(device, if_num)
    except usb.core.USBError as e:
        raise DeviceConfigError(f"Failed to claim interface {if_num}: {e}") from e

    try:
        device.set_interface_altsetting(interface=if_num, alternate_setting=0)
        request_type = usb.util.build_request_type(
            usb.util.CTRL_OUT,
            usb.util.CTRL_TYPE_CLASS,
            usb.util.CTRL_RECIPIENT_INTERFACE,
        )
        device.ctrl_transfer(
            request_type, LINE_STATE_REQUEST, LINE_STATE_VALUE, if_num,
            None, timeout_ms,
        )
    except usb.core.USBError as e:
        usb.util.release_interface(device, if_num)
        raise DeviceConfigError(f"Failed to set up interface {if_num}: {e}") from e


def open_session(
    vid: int = CROCO_VID,
    pid: int = CROCO_PID,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
) -> DeviceSession:
    """Find, claim and configure the cartridge.  Returns an open session."""
    device = usb.core.find(idVendor=vid, idProduct=pid)
    if device is None:
        raise DeviceNotFoundError(f"Croco Cartridge not found ({vid:04x}:{pid:04x})")

    try:
        intf = _find_vendor_interface(device)
        if_num = intf.bInterfaceNumber
        ep_out, ep_in = _find_bulk_endpoints(intf)
        _configure(device, if_num, timeout_ms)
    except DeviceConfigError:
        usb.util.dispose_resources(device)
        raise
    except usb.core.USBError as e:
        usb.util.dispose_resources(device)
        raise DeviceConfigError(f"USB configuration failed: {e}") from e

    log.info("Opened cartridge %04x:%04x (interface %d, EP OUT=0x%02x, EP IN=0x%02x)",
             vid, pid, if_num, ep_out, ep_in)
    return DeviceSession(device, ep_out, ep_in, if_num, timeout_ms=timeout_ms)
