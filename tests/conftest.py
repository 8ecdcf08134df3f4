"""
Pytest configuration for receipt printer tests.

Provides a scriptable in-memory Bluetooth adapter, plus fixtures and
command-line options for hardware tests.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

import pytest
import pytest_asyncio

from rentalprint import ThermalPrinter
from rentalprint.connection import SerialAdapter

SPP_UUID = ThermalPrinter.SERIAL_SERVICE_UUID


@dataclass
class FakeDevice:
    name: Optional[str] = "RPP02N"
    address: str = "AA:BB:CC:DD:EE:FF"


@dataclass
class FakeCharacteristic:
    uuid: str
    properties: list[str]
    handle: int = 0


@dataclass
class FakeService:
    uuid: str
    characteristics: list[FakeCharacteristic] = field(default_factory=list)


def spp_service(properties=("write-without-response", "write")) -> FakeService:
    """Serial Port Profile service with one writable characteristic."""
    return FakeService(SPP_UUID, [
        FakeCharacteristic("00002af1-0000-1000-8000-00805f9b34fb", list(properties), 42),
    ])


class FakeAdapter(SerialAdapter):
    """
    SerialAdapter double that records every call.

    Attributes to script behaviour:
        available: Result of is_available()
        request_results: One entry per request_device() call, either a
            device or an exception to raise. When exhausted, `device` is
            returned.
        connect_errors: Exceptions raised by successive connect() calls
        fail_on_write: 1-based write number that raises `write_error`
        drop_on_fail: Mark the link dead when the failing write happens
    """

    def __init__(self, services=None, device=None):
        self.available = True
        self.device = device or FakeDevice()
        self.services = services if services is not None else [spp_service()]
        self.request_results: list[Any] = []
        self.connect_errors: list[Exception] = []
        self.fail_on_write: Optional[int] = None
        self.write_error: Exception = OSError("write refused")
        self.drop_on_fail = False
        self.write_size = 20

        self.connected = False
        self.request_calls: list[dict] = []
        self.connect_calls: list[Any] = []
        self.disconnect_calls = 0
        self.writes: list[tuple[bytes, bool]] = []
        self.write_attempts = 0

    async def is_available(self) -> bool:
        return self.available

    async def request_device(self, services=None, address=None):
        self.request_calls.append({"services": services, "address": address})
        if self.request_results:
            result = self.request_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return self.device

    async def connect(self, device) -> None:
        self.connect_calls.append(device)
        if self.connect_errors:
            raise self.connect_errors.pop(0)
        self.connected = True

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False

    async def get_services(self) -> list:
        return self.services

    async def write(self, characteristic, data: bytes, response: bool) -> None:
        self.write_attempts += 1
        if self.fail_on_write == self.write_attempts:
            if self.drop_on_fail:
                self.connected = False
            raise self.write_error
        self.writes.append((bytes(data), response))

    @property
    def is_connected(self) -> bool:
        return self.connected

    @property
    def max_write_size(self) -> int:
        return self.write_size

    @property
    def written(self) -> bytes:
        """All successfully written bytes, in order."""
        return b"".join(data for data, _ in self.writes)


@pytest.fixture
def adapter():
    """Fresh fake adapter exposing one SPP service."""
    return FakeAdapter()


@pytest.fixture
def printer(adapter):
    """ThermalPrinter on the fake adapter with delays switched off."""
    return ThermalPrinter(adapter, chunk_delay=0, settle_delay=0)


@pytest_asyncio.fixture
async def connected(printer):
    """Printer that has already completed connect()."""
    await printer.connect()
    return printer


def pytest_addoption(parser):
    """Add command-line options for hardware tests."""
    parser.addoption(
        "--address",
        action="store",
        default=None,
        help="Bluetooth address of the printer for hardware tests",
    )


@pytest.fixture
def printer_address(request):
    """Get the printer address from command line."""
    address = request.config.getoption("--address")
    if address is None:
        pytest.skip("No printer address provided (use --address=XX:XX:XX:XX:XX:XX)")
    return address


@pytest_asyncio.fixture
async def hardware_printer(printer_address):
    """Provide a printer connected over real Bluetooth."""
    printer = ThermalPrinter()
    printer.set_debug(True)

    try:
        await printer.connect(printer_address)
    except Exception as e:
        pytest.skip(f"Could not connect to printer at {printer_address}: {e}")

    yield printer

    await printer.disconnect()
