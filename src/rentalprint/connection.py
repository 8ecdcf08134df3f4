"""
BLE Connection Handler for thermal receipt printers.

Defines the SerialAdapter interface the printer state machine drives and
BLEConnection, its implementation on top of the Bleak library.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.exc import BleakError

from .errors import DeviceNotFoundError, NotConnectedError, PermissionDeniedError


@dataclass
class PrinterInfo:
    """Information about a discovered printer.

    Attributes:
        name: Device advertised name
        address: MAC address on Linux/Windows, CoreBluetooth UUID on macOS
        rssi: Signal strength in dB
        service_uuids: Service UUIDs found in the advertisement
    """
    name: str
    address: str
    rssi: int
    service_uuids: list[str] = field(default_factory=list)
    device: Optional[BLEDevice] = field(default=None, repr=False, compare=False)

    def __str__(self) -> str:
        return f"{self.name} [{self.address}] RSSI: {self.rssi} dB"


@dataclass
class ServiceInfo:
    """Information about a GATT service and its characteristics."""
    service_uuid: str
    characteristics: list[dict]


Chooser = Callable[[list[PrinterInfo]], Optional[PrinterInfo]]

WRITE_PROPERTIES = ("write", "write-without-response")


def is_writable(characteristic: Any) -> bool:
    """Check whether a GATT characteristic accepts writes."""
    return any(prop in characteristic.properties for prop in WRITE_PROPERTIES)


class SerialAdapter(ABC):
    """
    Platform Bluetooth API as seen by the printer state machine.

    Implementations raise the errors from ``rentalprint.errors`` for
    discovery failures. Failures from ``write`` may be raw; the state
    machine classifies them.
    """

    @abstractmethod
    async def is_available(self) -> bool:
        """Return False when the platform has no usable Bluetooth at all."""

    @abstractmethod
    async def request_device(
        self,
        services: Optional[list[str]] = None,
        address: Optional[str] = None,
    ) -> Any:
        """
        Select a device.

        Args:
            services: Only accept devices advertising one of these service
                UUIDs; None accepts any device.
            address: Select this exact device instead of choosing.

        Raises:
            DeviceNotFoundError: Nothing matched or the choice was cancelled
            PermissionDeniedError: Scanning was refused
        """

    @abstractmethod
    async def connect(self, device: Any) -> None:
        """Open a GATT session to a device returned by request_device."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the GATT session if one is open."""

    @abstractmethod
    async def get_services(self) -> list:
        """Return the services of the open session (each with .characteristics)."""

    @abstractmethod
    async def write(self, characteristic: Any, data: bytes, response: bool) -> None:
        """Write one chunk to a characteristic."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Live link state."""

    @property
    def max_write_size(self) -> int:
        """Largest payload one write can carry."""
        return 20


class BLEConnection(SerialAdapter):
    """Manages the BLE link to a receipt printer through Bleak."""

    # Name fragments used by common 58mm BLE receipt printers
    DEVICE_PATTERNS = ["PRINTER", "MPT", "PT-", "RPP", "MTP", "POS", "BT", "GOOJPRT", "XP-"]

    DEFAULT_SCAN_TIMEOUT = 10.0
    DEFAULT_WRITE_SIZE = 20

    # ATT header bytes subtracted from the negotiated MTU
    ATT_OVERHEAD = 3

    def __init__(
        self,
        scan_timeout: float = DEFAULT_SCAN_TIMEOUT,
        chooser: Optional[Chooser] = None,
    ):
        self.scan_timeout = scan_timeout
        self.chooser = chooser
        self.client: Optional[BleakClient] = None
        self._debug = False

    def set_debug(self, enabled: bool):
        """Enable/disable debug output."""
        self._debug = enabled

    def _log(self, message: str):
        """Print debug message if enabled."""
        if self._debug:
            print(f"[BLE] {message}")

    @staticmethod
    def _is_permission_error(error: Exception) -> bool:
        """Recognize backend errors that mean Bluetooth access was refused."""
        if isinstance(error, PermissionError):
            return True
        message = str(error).lower()
        return "not authorized" in message or "notpermitted" in message or "permission" in message

    @classmethod
    def _looks_like_printer(cls, name: str) -> bool:
        return any(pattern in name.upper() for pattern in cls.DEVICE_PATTERNS)

    @classmethod
    async def scan(
        cls,
        timeout: float = DEFAULT_SCAN_TIMEOUT,
        services: Optional[list[str]] = None,
    ) -> list[PrinterInfo]:
        """Scan for named BLE devices, strongest signal first.

        Args:
            timeout: Scan duration in seconds
            services: If given, keep only devices advertising one of these
                service UUIDs
        """
        wanted = {uuid.lower() for uuid in services or []}
        printers = []
        devices = await BleakScanner.discover(timeout=timeout, return_adv=True)

        for device, adv_data in devices.values():
            name = device.name or adv_data.local_name or ""
            if not name:
                continue

            advertised = [uuid.lower() for uuid in adv_data.service_uuids or []]
            if wanted and not wanted.intersection(advertised):
                continue

            printers.append(PrinterInfo(
                name=name,
                address=device.address,
                rssi=adv_data.rssi if adv_data.rssi is not None else -100,
                service_uuids=advertised,
                device=device,
            ))

        return sorted(printers, key=lambda p: p.rssi, reverse=True)

    @classmethod
    def choose_default(cls, printers: list[PrinterInfo]) -> Optional[PrinterInfo]:
        """Pick the strongest device that looks like a printer.

        Falls back to the only candidate when exactly one device was found.
        """
        for printer in printers:
            if cls._looks_like_printer(printer.name):
                return printer
        if len(printers) == 1:
            return printers[0]
        return None

    async def is_available(self) -> bool:
        """Check the Bluetooth stack by briefly starting a scanner."""
        try:
            async with BleakScanner():
                pass
        except (BleakError, OSError) as e:
            if self._is_permission_error(e):
                # Present but refused: request_device reports it precisely
                return True
            self._log(f"Bluetooth unavailable: {e}")
            return False
        return True

    async def request_device(
        self,
        services: Optional[list[str]] = None,
        address: Optional[str] = None,
    ) -> BLEDevice:
        """Scan and select a printer."""
        self._log(
            f"Scanning for {address or 'printers'}"
            f"{' with services ' + ', '.join(services) if services else ''}..."
        )
        try:
            printers = await self.scan(timeout=self.scan_timeout, services=services)
        except (BleakError, OSError) as e:
            if self._is_permission_error(e):
                raise PermissionDeniedError(
                    "Bluetooth permission denied. Allow Bluetooth access for this application."
                ) from e
            raise DeviceNotFoundError(f"Bluetooth scan failed: {e}") from e

        if address:
            selected = next(
                (p for p in printers if p.address.upper() == address.upper()), None
            )
        else:
            chooser = self.chooser or self.choose_default
            selected = chooser(printers) if printers else None

        if selected is None or selected.device is None:
            raise DeviceNotFoundError(
                "No Bluetooth printer selected or found. "
                "Make sure the printer is powered on and in pairing mode."
            )

        self._log(f"Selected {selected}")
        return selected.device

    async def connect(self, device: BLEDevice) -> None:
        """Open a GATT session to the device, closing any previous one."""
        if self.client is not None:
            await self.disconnect()

        self.client = BleakClient(device)
        try:
            await self.client.connect()
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            self.client = None
            raise DeviceNotFoundError(
                "Failed to connect to printer. Make sure it is powered on, in range, "
                f"and not connected to another device: {e}"
            ) from e
        self._log(f"Connected to {device.address}")

    async def disconnect(self) -> None:
        """Disconnect from the printer."""
        if self.client and self.client.is_connected:
            await self.client.disconnect()
        self.client = None

    async def get_services(self) -> list:
        """GATT services of the connected printer."""
        if not self.client:
            return []
        return list(self.client.services)

    async def write(self, characteristic: Any, data: bytes, response: bool) -> None:
        """Write one chunk to the printer."""
        if not self.client:
            raise NotConnectedError("No BLE session open")
        await self.client.write_gatt_char(characteristic, data, response=response)

    @property
    def max_write_size(self) -> int:
        """Payload size allowed by the negotiated MTU."""
        if not self.client:
            return self.DEFAULT_WRITE_SIZE
        mtu = getattr(self.client, "mtu_size", None)
        if mtu:
            return max(mtu - self.ATT_OVERHEAD, self.DEFAULT_WRITE_SIZE)
        return self.DEFAULT_WRITE_SIZE

    @property
    def is_connected(self) -> bool:
        """Check if currently connected."""
        return self.client is not None and self.client.is_connected


def describe_services(services: list) -> list[ServiceInfo]:
    """Summarize GATT services for display."""
    result = []
    for service in services:
        chars = []
        for char in service.characteristics:
            chars.append({
                "uuid": char.uuid,
                "properties": list(char.properties),
                "handle": getattr(char, "handle", None),
            })
        result.append(ServiceInfo(
            service_uuid=service.uuid,
            characteristics=chars,
        ))
    return result
