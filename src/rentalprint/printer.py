"""
High-Level Thermal Printer Interface.

ThermalPrinter owns the connection lifecycle to one printer and streams
ESC/POS buffers to it in small chunks:

    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED
                                     |
                                     +-> RECONNECTING (inside print())

The state machine is independent of the Bluetooth backend; it only talks
to a SerialAdapter.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Optional

from .connection import BLEConnection, SerialAdapter, ServiceInfo, describe_services, is_writable
from .errors import (
    ConnectionLostError,
    DeviceNotFoundError,
    NotAvailableError,
    NotConnectedError,
    PermissionDeniedError,
    PrinterError,
    UnsupportedError,
    WriteFailedError,
)
from .escpos import ESCPOSCommand


class ConnectionState(Enum):
    """Observable connection states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass
class PrinterStatus:
    """Snapshot of the connection handles, for diagnostics.

    Attributes:
        state: Observable connection state
        connected: Live link state as reported by the adapter
        device_name: Name of the selected printer, None if none selected
        has_device: A printer is selected
        has_session: The adapter holds an open session
        has_characteristic: A write channel is resolved
    """
    state: ConnectionState
    connected: bool
    device_name: Optional[str]
    has_device: bool
    has_session: bool
    has_characteristic: bool


def iter_chunks(data: bytes, chunk_size: int) -> Iterator[bytes]:
    """Yield consecutive slices of at most chunk_size bytes."""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    for i in range(0, len(data), chunk_size):
        yield data[i:i + chunk_size]


def build_test_page() -> bytes:
    """ESC/POS bytes for a short self-test receipt."""
    return (
        ESCPOSCommand()
        .initialize()
        .set_align("center")
        .set_font_size(2, 2)
        .set_bold(True)
        .text("TEST PRINT")
        .line_feed(2)
        .set_font_size(1, 1)
        .set_bold(False)
        .text("If you can see this,")
        .line_feed()
        .text("your printer is working!")
        .line_feed(3)
        .cut()
        .get_bytes()
    )


class ThermalPrinter:
    """
    Connection state machine for a BLE receipt printer.

    One instance drives one printer. Calls to print() must not overlap.
    """

    # Serial Port Profile, tried first during discovery
    SERIAL_SERVICE_UUID = "00001101-0000-1000-8000-00805f9b34fb"

    # Default ATT write payload for an un-negotiated BLE link
    CHUNK_SIZE = 20

    # Seconds between chunks, so the printer's input buffer keeps up
    CHUNK_DELAY = 0.01

    # Seconds to wait after the last chunk before reporting success
    SETTLE_DELAY = 0.1

    CONNECT_TIMEOUT = 30.0
    WRITE_TIMEOUT = 5.0

    def __init__(
        self,
        adapter: Optional[SerialAdapter] = None,
        *,
        chunk_size: int = CHUNK_SIZE,
        chunk_delay: float = CHUNK_DELAY,
        settle_delay: float = SETTLE_DELAY,
        connect_timeout: Optional[float] = CONNECT_TIMEOUT,
        write_timeout: Optional[float] = WRITE_TIMEOUT,
        use_mtu: bool = False,
    ):
        """
        Initialize printer interface.

        Args:
            adapter: Bluetooth backend (default: BLEConnection)
            chunk_size: Maximum bytes per write
            chunk_delay: Delay between chunks in seconds
            settle_delay: Delay after the final chunk in seconds
            connect_timeout: Limit for the whole of connect(), None for no limit
            write_timeout: Limit for a single chunk write, None for no limit
            use_mtu: Use the adapter's negotiated write size when it is larger
        """
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")

        self.adapter = adapter if adapter is not None else BLEConnection()
        self.chunk_size = chunk_size
        self.chunk_delay = chunk_delay
        self.settle_delay = settle_delay
        self.connect_timeout = connect_timeout
        self.write_timeout = write_timeout
        self.use_mtu = use_mtu

        self.device: Optional[Any] = None
        self.characteristic: Optional[Any] = None
        self._state = ConnectionState.DISCONNECTED
        self._debug = False

    def set_debug(self, enabled: bool):
        """Enable/disable debug output."""
        self._debug = enabled
        if hasattr(self.adapter, "set_debug"):
            self.adapter.set_debug(enabled)

    def _log(self, message: str):
        """Print debug message if enabled."""
        if self._debug:
            print(f"[PRINTER] {message}")

    # ---- State ----

    @property
    def state(self) -> ConnectionState:
        """Current state, downgraded to DISCONNECTED if the link dropped."""
        if self._state == ConnectionState.CONNECTED and not self.adapter.is_connected:
            return ConnectionState.DISCONNECTED
        return self._state

    @property
    def is_connected(self) -> bool:
        """Live link state as reported by the adapter right now."""
        if self.device is None:
            return False
        try:
            return bool(self.adapter.is_connected)
        except Exception:
            return False

    def get_device_name(self) -> str:
        """Name of the selected printer."""
        name = getattr(self.device, "name", None)
        return name or "Unknown Device"

    def status(self) -> PrinterStatus:
        """Which connection handles are currently held."""
        try:
            has_session = bool(self.adapter.is_connected)
        except Exception:
            has_session = False
        return PrinterStatus(
            state=self.state,
            connected=self.is_connected,
            device_name=getattr(self.device, "name", None) or None,
            has_device=self.device is not None,
            has_session=has_session,
            has_characteristic=self.characteristic is not None,
        )

    # ---- Connect / Disconnect ----

    async def connect(self, address: Optional[str] = None):
        """
        Select, connect to, and resolve a writable channel on a printer.

        Args:
            address: Connect to this printer instead of choosing one

        Raises:
            NotAvailableError: No Bluetooth on this machine
            PermissionDeniedError: Bluetooth access refused
            DeviceNotFoundError: No printer selected, found or reachable
            UnsupportedError: The printer has no writable characteristic
        """
        if self.device is not None:
            await self.disconnect()

        self._state = ConnectionState.CONNECTING
        try:
            if self.connect_timeout is None:
                await self._connect(address)
            else:
                await asyncio.wait_for(self._connect(address), timeout=self.connect_timeout)
        except asyncio.TimeoutError as e:
            await self._abort_connect()
            raise DeviceNotFoundError(
                f"Timed out connecting to printer after {self.connect_timeout}s"
            ) from e
        except PrinterError:
            await self._abort_connect()
            raise
        except Exception as e:
            await self._abort_connect()
            raise DeviceNotFoundError(f"Connection failed: {e}") from e

        self._state = ConnectionState.CONNECTED
        self._log(f"Connected to {self.get_device_name()}")

    async def _connect(self, address: Optional[str]):
        if not await self.adapter.is_available():
            raise NotAvailableError(
                "Bluetooth is not available on this system."
            )

        try:
            device = await self.adapter.request_device(
                services=[self.SERIAL_SERVICE_UUID], address=address
            )
        except (DeviceNotFoundError, PermissionDeniedError) as e:
            self._log(f"No Serial Port Profile device ({e}), accepting any device...")
            device = await self.adapter.request_device(services=None, address=address)

        self.device = device
        await self.adapter.connect(device)
        self.characteristic = await self._resolve_characteristic()

    async def _resolve_characteristic(self) -> Any:
        """Find the channel to write to, SPP service first, then any service."""
        services = await self.adapter.get_services()

        spp = self.SERIAL_SERVICE_UUID.lower()
        preferred = [svc for svc in services if str(svc.uuid).lower() == spp]
        others = [svc for svc in services if str(svc.uuid).lower() != spp]

        for service in preferred + others:
            for char in service.characteristics:
                if is_writable(char):
                    self._log(f"Found write characteristic: {char.uuid} (service {service.uuid})")
                    return char

        raise UnsupportedError(
            "No writable characteristic found. "
            "Make sure your printer supports Bluetooth serial printing."
        )

    async def _abort_connect(self):
        """Drop any half-open session and clear all handles."""
        try:
            await self.adapter.disconnect()
        except Exception as e:
            self._log(f"Ignoring disconnect error during cleanup: {e}")
        self.device = None
        self.characteristic = None
        self._state = ConnectionState.DISCONNECTED

    async def disconnect(self):
        """Disconnect from the printer."""
        if self.device is not None and self.adapter.is_connected:
            await self.adapter.disconnect()
        self.device = None
        self.characteristic = None
        self._state = ConnectionState.DISCONNECTED
        self._log("Disconnected")

    async def _reconnect(self):
        """Re-open the session to the selected device, exactly once."""
        self._state = ConnectionState.RECONNECTING
        self._log("Device disconnected, attempting to reconnect...")
        try:
            await self.adapter.connect(self.device)
            self.characteristic = await self._resolve_characteristic()
        except Exception as e:
            self.characteristic = None
            self._state = ConnectionState.DISCONNECTED
            raise ConnectionLostError(f"Connection lost. Please reconnect: {e}") from e
        self._state = ConnectionState.CONNECTED

    # ---- Printing ----

    def _effective_chunk_size(self) -> int:
        if self.use_mtu:
            return max(self.chunk_size, self.adapter.max_write_size)
        return self.chunk_size

    async def _write_chunk(self, chunk: bytes, response: bool):
        write = self.adapter.write(self.characteristic, chunk, response)
        if self.write_timeout is None:
            await write
        else:
            await asyncio.wait_for(write, timeout=self.write_timeout)

    async def print(self, data: bytes):
        """
        Send an ESC/POS buffer to the printer.

        Args:
            data: Complete command buffer

        Raises:
            NotConnectedError: connect() was never called
            ConnectionLostError: Link dead and reconnect failed, or the link
                dropped during a write
            WriteFailedError: A chunk could not be written
        """
        if self.device is None:
            raise NotConnectedError(
                "No printer device selected. Please connect to a printer first."
            )

        if not self.adapter.is_connected:
            await self._reconnect()

        if self.characteristic is None:
            raise NotConnectedError(
                "No characteristic available for writing. Please reconnect."
            )

        response = "write-without-response" not in self.characteristic.properties
        chunk_size = self._effective_chunk_size()
        total_chunks = (len(data) + chunk_size - 1) // chunk_size
        self._log(f"Sending {len(data)} bytes in {total_chunks} chunk(s) of {chunk_size}...")

        for index, chunk in enumerate(iter_chunks(data, chunk_size), start=1):
            try:
                await self._write_chunk(chunk, response)
            except asyncio.TimeoutError as e:
                raise WriteFailedError(
                    f"Write timed out at chunk {index}/{total_chunks}"
                ) from e
            except Exception as e:
                if not self.adapter.is_connected:
                    self._state = ConnectionState.DISCONNECTED
                    raise ConnectionLostError(
                        "Connection lost during printing. Please reconnect and try again."
                    ) from e
                raise WriteFailedError(
                    f"Failed to write data at chunk {index}/{total_chunks}: {e}"
                ) from e

            if index < total_chunks and self.chunk_delay > 0:
                await asyncio.sleep(self.chunk_delay)

        if total_chunks and self.settle_delay > 0:
            await asyncio.sleep(self.settle_delay)

        self._log(f"Successfully sent {len(data)} bytes to printer")

    async def print_test_page(self):
        """Print a short test receipt."""
        await self.print(build_test_page())

    async def discover_services(self) -> list[ServiceInfo]:
        """
        Discover and return all GATT services.

        Useful for finding the write characteristic of a new printer model.
        """
        if self.device is None:
            raise NotConnectedError("Not connected to printer")
        return describe_services(await self.adapter.get_services())
