"""Tests for the printer connection state machine."""

import asyncio
from unittest.mock import AsyncMock, call

import pytest

from conftest import FakeAdapter, FakeCharacteristic, FakeDevice, FakeService, spp_service
from rentalprint.errors import (
    ConnectionLostError,
    DeviceNotFoundError,
    NotAvailableError,
    NotConnectedError,
    PermissionDeniedError,
    PrinterError,
    UnsupportedError,
    WriteFailedError,
)
from rentalprint.printer import (
    ConnectionState,
    PrinterStatus,
    ThermalPrinter,
    build_test_page,
    iter_chunks,
)

OTHER_SERVICE = "0000ff00-0000-1000-8000-00805f9b34fb"


class TestIterChunks:
    """Test buffer chunking."""

    def test_splits_with_short_tail(self):
        chunks = list(iter_chunks(bytes(range(45)), 20))
        assert [len(c) for c in chunks] == [20, 20, 5]
        assert b"".join(chunks) == bytes(range(45))

    def test_exact_multiple(self):
        assert [len(c) for c in iter_chunks(b"x" * 40, 20)] == [20, 20]

    def test_empty(self):
        assert list(iter_chunks(b"", 20)) == []

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            list(iter_chunks(b"abc", 0))

    def test_printer_rejects_non_positive_size(self, adapter):
        with pytest.raises(ValueError):
            ThermalPrinter(adapter, chunk_size=0)


class TestErrorHierarchy:
    """Every transport error is a PrinterError."""

    @pytest.mark.parametrize("error_class", [
        NotAvailableError, PermissionDeniedError, DeviceNotFoundError,
        UnsupportedError, NotConnectedError, ConnectionLostError, WriteFailedError,
    ])
    def test_is_printer_error(self, error_class):
        assert isinstance(error_class("x"), PrinterError)


class TestConnect:
    """Test device selection and channel resolution."""

    @pytest.mark.asyncio
    async def test_connect_requests_spp_first(self, printer, adapter):
        await printer.connect()

        assert adapter.request_calls == [{"services": [ThermalPrinter.SERIAL_SERVICE_UUID], "address": None}]
        assert printer.state == ConnectionState.CONNECTED
        assert printer.is_connected
        assert printer.characteristic is adapter.services[0].characteristics[0]
        assert printer.get_device_name() == "RPP02N"

    @pytest.mark.asyncio
    async def test_connect_passes_address(self, printer, adapter):
        await printer.connect("11:22:33:44:55:66")
        assert adapter.request_calls[0]["address"] == "11:22:33:44:55:66"

    @pytest.mark.asyncio
    async def test_not_available_skips_selection(self, printer, adapter):
        adapter.available = False

        with pytest.raises(NotAvailableError):
            await printer.connect()

        assert adapter.request_calls == []
        assert printer.state == ConnectionState.DISCONNECTED
        assert printer.device is None

    @pytest.mark.asyncio
    async def test_falls_back_to_any_device(self, printer, adapter):
        adapter.request_results = [DeviceNotFoundError("no SPP device")]

        await printer.connect()

        assert [c["services"] for c in adapter.request_calls] == [
            [ThermalPrinter.SERIAL_SERVICE_UUID], None,
        ]
        assert printer.state == ConnectionState.CONNECTED

    @pytest.mark.asyncio
    async def test_connect_twice_closes_first_session(self, printer, adapter):
        await printer.connect()
        await printer.connect()

        assert len(adapter.connect_calls) == 2
        assert adapter.disconnect_calls == 1
        assert printer.state == ConnectionState.CONNECTED

    @pytest.mark.asyncio
    async def test_fallback_failure_propagates(self, printer, adapter):
        adapter.request_results = [
            DeviceNotFoundError("no SPP device"),
            PermissionDeniedError("refused"),
        ]

        with pytest.raises(PermissionDeniedError):
            await printer.connect()
        assert printer.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_prefers_spp_characteristic(self):
        other = FakeService(OTHER_SERVICE, [FakeCharacteristic("ff02", ["write"])])
        spp = spp_service()
        adapter = FakeAdapter(services=[other, spp])
        printer = ThermalPrinter(adapter, chunk_delay=0, settle_delay=0)

        await printer.connect()

        assert printer.characteristic is spp.characteristics[0]

    @pytest.mark.asyncio
    async def test_uses_any_writable_characteristic(self):
        writable = FakeCharacteristic("ff02", ["read", "write"])
        adapter = FakeAdapter(services=[
            FakeService(OTHER_SERVICE, [FakeCharacteristic("ff01", ["notify"]), writable]),
        ])
        printer = ThermalPrinter(adapter, chunk_delay=0, settle_delay=0)

        await printer.connect()

        assert printer.characteristic is writable

    @pytest.mark.asyncio
    async def test_no_writable_characteristic_is_unsupported(self):
        adapter = FakeAdapter(services=[
            FakeService(OTHER_SERVICE, [FakeCharacteristic("ff01", ["read", "notify"])]),
        ])
        printer = ThermalPrinter(adapter, chunk_delay=0, settle_delay=0)

        with pytest.raises(UnsupportedError):
            await printer.connect()

        assert printer.device is None
        assert printer.characteristic is None
        assert adapter.disconnect_calls == 1
        assert printer.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_unknown_error_becomes_device_not_found(self, printer, adapter):
        adapter.connect_errors = [RuntimeError("gatt boom")]

        with pytest.raises(DeviceNotFoundError) as exc_info:
            await printer.connect()

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert printer.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_connect_timeout(self, adapter):
        async def hang():
            await asyncio.sleep(1)
            return True

        adapter.is_available = hang
        printer = ThermalPrinter(adapter, connect_timeout=0.01)

        with pytest.raises(DeviceNotFoundError, match="Timed out"):
            await printer.connect()
        assert printer.state == ConnectionState.DISCONNECTED

    def test_unknown_device_name(self, printer):
        printer.device = FakeDevice(name=None)
        assert printer.get_device_name() == "Unknown Device"


class TestPrint:
    """Test chunked writes and failure classification."""

    @pytest.mark.asyncio
    async def test_print_without_connect(self, printer, adapter):
        with pytest.raises(NotConnectedError):
            await printer.print(b"hello")
        assert adapter.write_attempts == 0

    @pytest.mark.asyncio
    async def test_writes_chunks_in_order(self, connected, adapter):
        data = bytes(range(45))

        await connected.print(data)

        assert [len(d) for d, _ in adapter.writes] == [20, 20, 5]
        assert adapter.written == data

    @pytest.mark.asyncio
    async def test_write_without_response_preferred(self, connected, adapter):
        await connected.print(b"abc")
        assert adapter.writes == [(b"abc", False)]

    @pytest.mark.asyncio
    async def test_write_with_response_when_required(self):
        adapter = FakeAdapter(services=[spp_service(properties=("write",))])
        printer = ThermalPrinter(adapter, chunk_delay=0, settle_delay=0)
        await printer.connect()

        await printer.print(b"abc")

        assert adapter.writes == [(b"abc", True)]

    @pytest.mark.asyncio
    async def test_empty_buffer_writes_nothing(self, connected, adapter, mocker):
        sleep = mocker.patch("rentalprint.printer.asyncio.sleep", new_callable=AsyncMock)

        await connected.print(b"")

        assert adapter.write_attempts == 0
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_delays_between_chunks_and_after_last(self, adapter, mocker):
        printer = ThermalPrinter(adapter, chunk_delay=0.01, settle_delay=0.1)
        await printer.connect()
        sleep = mocker.patch("rentalprint.printer.asyncio.sleep", new_callable=AsyncMock)

        await printer.print(bytes(45))

        assert sleep.call_args_list == [call(0.01), call(0.01), call(0.1)]

    @pytest.mark.asyncio
    async def test_custom_chunk_size(self, adapter):
        printer = ThermalPrinter(adapter, chunk_size=16, chunk_delay=0, settle_delay=0)
        await printer.connect()

        await printer.print(bytes(40))

        assert [len(d) for d, _ in adapter.writes] == [16, 16, 8]

    @pytest.mark.asyncio
    async def test_use_mtu_enlarges_chunks(self, adapter):
        adapter.write_size = 100
        printer = ThermalPrinter(adapter, use_mtu=True, chunk_delay=0, settle_delay=0)
        await printer.connect()

        await printer.print(bytes(45))

        assert [len(d) for d, _ in adapter.writes] == [45]

    @pytest.mark.asyncio
    async def test_failed_chunk_stops_print(self, connected, adapter):
        adapter.fail_on_write = 2

        with pytest.raises(WriteFailedError) as exc_info:
            await connected.print(bytes(range(45)))

        assert adapter.write_attempts == 2
        assert adapter.written == bytes(range(20))
        assert isinstance(exc_info.value.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_link_drop_during_write_is_connection_lost(self, connected, adapter):
        adapter.fail_on_write = 2
        adapter.drop_on_fail = True

        with pytest.raises(ConnectionLostError):
            await connected.print(bytes(45))

        assert adapter.write_attempts == 2
        assert connected.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_write_timeout(self, adapter):
        printer = ThermalPrinter(adapter, write_timeout=0.01, chunk_delay=0, settle_delay=0)
        await printer.connect()

        async def stall(characteristic, data, response):
            await asyncio.sleep(1)

        adapter.write = stall

        with pytest.raises(WriteFailedError, match="timed out"):
            await printer.print(b"abc")

    @pytest.mark.asyncio
    async def test_print_test_page(self, connected, adapter):
        await connected.print_test_page()
        assert adapter.written == build_test_page()


class TestReconnect:
    """Test the single reconnect attempt inside print()."""

    @pytest.mark.asyncio
    async def test_reconnects_once_then_prints(self, connected, adapter):
        adapter.connected = False

        await connected.print(b"abc")

        assert len(adapter.connect_calls) == 2
        assert adapter.connect_calls[1] is adapter.device
        assert adapter.writes == [(b"abc", False)]
        assert connected.state == ConnectionState.CONNECTED

    @pytest.mark.asyncio
    async def test_failed_reconnect_is_connection_lost(self, connected, adapter):
        adapter.connected = False
        adapter.connect_errors = [DeviceNotFoundError("out of range")]

        with pytest.raises(ConnectionLostError):
            await connected.print(b"abc")

        assert len(adapter.connect_calls) == 2
        assert adapter.write_attempts == 0
        assert connected.state == ConnectionState.DISCONNECTED


class TestState:
    """Test observable state."""

    def test_initially_disconnected(self, printer):
        assert printer.state == ConnectionState.DISCONNECTED
        assert not printer.is_connected

    @pytest.mark.asyncio
    async def test_dead_link_reads_disconnected(self, connected, adapter):
        adapter.connected = False
        assert connected.state == ConnectionState.DISCONNECTED
        assert not connected.is_connected

    @pytest.mark.asyncio
    async def test_disconnect_clears_handles(self, connected, adapter):
        await connected.disconnect()

        assert adapter.disconnect_calls == 1
        assert connected.device is None
        assert connected.characteristic is None
        assert connected.state == ConnectionState.DISCONNECTED

    def test_status_when_idle(self, printer):
        assert printer.status() == PrinterStatus(
            state=ConnectionState.DISCONNECTED,
            connected=False,
            device_name=None,
            has_device=False,
            has_session=False,
            has_characteristic=False,
        )

    @pytest.mark.asyncio
    async def test_status_when_connected(self, connected):
        assert connected.status() == PrinterStatus(
            state=ConnectionState.CONNECTED,
            connected=True,
            device_name="RPP02N",
            has_device=True,
            has_session=True,
            has_characteristic=True,
        )

    @pytest.mark.asyncio
    async def test_status_after_link_drop(self, connected, adapter):
        adapter.connected = False

        status = connected.status()

        assert status.state == ConnectionState.DISCONNECTED
        assert not status.connected
        assert not status.has_session
        assert status.has_device
        assert status.has_characteristic

    @pytest.mark.asyncio
    async def test_print_after_disconnect(self, connected):
        await connected.disconnect()
        with pytest.raises(NotConnectedError):
            await connected.print(b"abc")

    @pytest.mark.asyncio
    async def test_discover_services(self, connected):
        services = await connected.discover_services()
        assert services[0].service_uuid == ThermalPrinter.SERIAL_SERVICE_UUID
        assert services[0].characteristics[0]["properties"] == ["write-without-response", "write"]

    @pytest.mark.asyncio
    async def test_discover_services_requires_connection(self, printer):
        with pytest.raises(NotConnectedError):
            await printer.discover_services()


class TestTestPage:
    def test_layout(self):
        data = build_test_page()
        assert data.startswith(b"\x1b\x40")
        assert b"TEST PRINT" in data
        assert data.endswith(b"\x1d\x56\x42\x00")
