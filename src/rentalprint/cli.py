"""
Command-Line Interface for BLE receipt printers.

Usage:
    rentalprint scan                 - Scan for printers
    rentalprint discover             - Show GATT services of a printer
    rentalprint test                 - Print a test page
    rentalprint invoice FILE         - Print a booking invoice from JSON
    rentalprint rental FILE          - Print a rental invoice from JSON
    rentalprint label FILE           - Print a product label from JSON
    rentalprint bprint-url KIND ID   - Build a Bluetooth Print app link
"""

import asyncio
import json
import re
import sys
from typing import Callable, Optional

import click

from . import bprint
from .cache import clear_cache, load_cached_printer, save_printer
from .connection import BLEConnection, PrinterInfo
from .errors import (
    ConnectionLostError,
    DeviceNotFoundError,
    ImageError,
    NotAvailableError,
    NotConnectedError,
    PermissionDeniedError,
    PrinterError,
    UnsupportedError,
    WriteFailedError,
)
from .escpos import BarcodeType, ESCPOSCommand
from .printer import ThermalPrinter, build_test_page
from .receipts import ReceiptComposer
from .records import InvoiceData, ProductLabel, Rental


# Bluetooth MAC address format: XX:XX:XX:XX:XX:XX (hex pairs separated by colons)
BLUETOOTH_MAC_PATTERN = re.compile(r"^([0-9A-Fa-f]{2}:){5}[0-9A-Fa-f]{2}$")

# macOS CoreBluetooth UUID format: XXXXXXXX-XXXX-XXXX-XXXX-XXXXXXXXXXXX
MACOS_UUID_PATTERN = re.compile(
    r"^[0-9A-Fa-f]{8}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{12}$"
)

ERROR_PREFIXES = [
    (NotAvailableError, "Bluetooth unavailable"),
    (PermissionDeniedError, "Permission denied"),
    (DeviceNotFoundError, "Printer not found"),
    (UnsupportedError, "Unsupported printer"),
    (NotConnectedError, "Not connected"),
    (ConnectionLostError, "Connection lost"),
    (WriteFailedError, "Print error"),
    (ImageError, "Image error"),
]


def validate_bluetooth_address(ctx, param, value):
    """Validate Bluetooth address format.

    Accepts:
        - MAC address format: XX:XX:XX:XX:XX:XX (Linux/Windows)
        - UUID format: XXXXXXXX-XXXX-XXXX-XXXX-XXXXXXXXXXXX (macOS)

    Returns:
        The validated address (uppercased for consistency)

    Raises:
        click.BadParameter: If the address format is invalid
    """
    if value is None:
        return None
    if BLUETOOTH_MAC_PATTERN.match(value) or MACOS_UUID_PATTERN.match(value):
        return value.upper()
    raise click.BadParameter(
        f"Invalid Bluetooth address format: '{value}'. "
        "Expected MAC format XX:XX:XX:XX:XX:XX or "
        "macOS UUID format XXXXXXXX-XXXX-XXXX-XXXX-XXXXXXXXXXXX"
    )


def describe_error(error: PrinterError) -> str:
    """User-facing message for a printer error."""
    for error_class, prefix in ERROR_PREFIXES:
        if isinstance(error, error_class):
            return f"{prefix}: {error}"
    return f"Printer error: {error}"


def prompt_chooser(printers: list[PrinterInfo]) -> Optional[PrinterInfo]:
    """Let the user pick a printer from scan results.

    Auto-selects when exactly one device was found.
    """
    if len(printers) == 1:
        printer = printers[0]
        click.echo(f"Found 1 printer: {printer.name} - using automatically")
        click.echo(f"Address: {printer.address}")
        return printer

    click.echo(f"\nFound {len(printers)} device(s):\n")
    for i, p in enumerate(printers, 1):
        click.echo(f"  [{i}] {p}")

    click.echo()
    while True:
        try:
            choice = click.prompt(f"Select printer (1-{len(printers)})", type=int)
        except click.Abort:
            return None
        if 1 <= choice <= len(printers):
            selected = printers[choice - 1]
            click.echo(f"Selected: {selected.name}")
            return selected
        click.echo(f"Please enter a number between 1 and {len(printers)}", err=True)


def resolve_address(address: Optional[str]) -> Optional[str]:
    """Explicit address, else the cached last printer, else None (scan)."""
    if address:
        return address
    cached = load_cached_printer()
    if cached:
        click.echo(f"Using last printer: {cached.name} [{cached.address}]")
        return cached.address
    return None


def make_printer(ctx) -> ThermalPrinter:
    """Printer configured from the group options."""
    adapter = BLEConnection(scan_timeout=ctx.obj["timeout"], chooser=prompt_chooser)
    printer = ThermalPrinter(adapter, chunk_size=ctx.obj["chunk_size"])
    printer.set_debug(ctx.obj["debug"])
    return printer


def load_json(path: str) -> dict:
    """Read a JSON object from a file, exiting with a message on bad input."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        click.echo(f"Invalid JSON in {path}: {e}", err=True)
        sys.exit(1)
    if not isinstance(data, dict):
        click.echo(f"Expected a JSON object in {path}", err=True)
        sys.exit(1)
    return data


async def send_job(
    ctx,
    address: Optional[str],
    build: Callable[[], bytes],
    description: str,
):
    """Connect, print the buffer produced by `build`, and disconnect."""
    printer = make_printer(ctx)
    address = resolve_address(address)

    click.echo(f"Connecting to {address or 'printer'}...")
    try:
        await printer.connect(address)
        save_printer(
            getattr(printer.device, "address", address or ""), printer.get_device_name()
        )

        data = build()
        click.echo(f"Printing {description} ({len(data)} bytes) on {printer.get_device_name()}...")
        await printer.print(data)
        click.echo("Print complete!")
    except PrinterError as e:
        click.echo(describe_error(e), err=True)
        sys.exit(1)
    finally:
        await printer.disconnect()


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug output")
@click.option("--timeout", default=10.0, help="Scan timeout in seconds")
@click.option(
    "--chunk-size",
    type=click.IntRange(1, 512),
    default=ThermalPrinter.CHUNK_SIZE,
    help="Bytes per BLE write (default 20)",
)
@click.pass_context
def main(ctx, debug, timeout, chunk_size):
    """Thermal receipt printer CLI."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["timeout"] = timeout
    ctx.obj["chunk_size"] = chunk_size


address_option = click.option(
    "--address",
    "-a",
    callback=validate_bluetooth_address,
    help="Printer Bluetooth address (if omitted, uses the last printer or scans)",
)


@main.command()
@click.option("--all", "show_all", is_flag=True, help="List every named device, not only SPP ones")
@click.pass_context
def scan(ctx, show_all):
    """Scan for BLE printers."""

    async def _scan():
        timeout = ctx.obj["timeout"]
        click.echo(f"Scanning for printers ({timeout}s)...")
        services = None if show_all else [ThermalPrinter.SERIAL_SERVICE_UUID]
        printers = await BLEConnection.scan(timeout=timeout, services=services)

        if not printers and not show_all:
            # Most BLE printers do not advertise SPP; fall back to every device
            printers = await BLEConnection.scan(timeout=timeout)

        if not printers:
            click.echo("No printers found.")
            return

        click.echo(f"\nFound {len(printers)} device(s):\n")
        for p in printers:
            click.echo(f"  {p}")

    asyncio.run(_scan())


@main.command()
@address_option
@click.pass_context
def discover(ctx, address):
    """Show the GATT services of a printer."""

    async def _discover():
        printer = make_printer(ctx)
        target = resolve_address(address)
        click.echo(f"Connecting to {target or 'printer'}...")

        try:
            await printer.connect(target)
            services = await printer.discover_services()

            write_uuid = printer.characteristic.uuid
            click.echo(f"\n{printer.get_device_name()} exposes {len(services)} service(s):\n")
            for svc in services:
                click.echo(svc.service_uuid)
                for char in svc.characteristics:
                    marker = "  <- print channel" if char["uuid"] == write_uuid else ""
                    click.echo(f"    {char['uuid']} ({', '.join(char['properties'])}){marker}")
                click.echo()
            click.echo(f"Write characteristic: {write_uuid}")

            status = printer.status()
            click.echo(
                f"State: {status.state.value} "
                f"(session {'open' if status.has_session else 'closed'}, "
                f"write channel {'resolved' if status.has_characteristic else 'missing'})"
            )
        except PrinterError as e:
            click.echo(describe_error(e), err=True)
            sys.exit(1)
        finally:
            await printer.disconnect()

    asyncio.run(_discover())


@main.command()
@address_option
@click.pass_context
def test(ctx, address):
    """Print a test page."""
    asyncio.run(send_job(ctx, address, build_test_page, "test page"))


@main.command()
@click.argument("json_file", type=click.Path(exists=True, dir_okay=False))
@address_option
@click.option("--logo", type=click.Path(exists=True, dir_okay=False), help="Logo image for the header")
@click.pass_context
def invoice(ctx, json_file, address, logo):
    """Print a booking invoice from a JSON file."""
    record = InvoiceData.from_dict(load_json(json_file))
    try:
        composer = ReceiptComposer(logo=logo)
    except ImageError as e:
        click.echo(describe_error(e), err=True)
        sys.exit(1)
    composer.set_debug(ctx.obj["debug"])
    asyncio.run(send_job(
        ctx, address, lambda: composer.build_booking_invoice(record),
        f"invoice {record.invoice_number}",
    ))


@main.command()
@click.argument("json_file", type=click.Path(exists=True, dir_okay=False))
@address_option
@click.option("--logo", type=click.Path(exists=True, dir_okay=False), help="Logo image for the header")
@click.pass_context
def rental(ctx, json_file, address, logo):
    """Print a rental invoice from a JSON file."""
    record = Rental.from_dict(load_json(json_file))
    try:
        composer = ReceiptComposer(logo=logo)
    except ImageError as e:
        click.echo(describe_error(e), err=True)
        sys.exit(1)
    composer.set_debug(ctx.obj["debug"])
    asyncio.run(send_job(
        ctx, address, lambda: composer.build_rental_invoice(record),
        f"rental {record.invoice_number}",
    ))


@main.command()
@click.argument("json_file", type=click.Path(exists=True, dir_okay=False))
@address_option
@click.option("--copies", type=click.IntRange(1, 100), default=1, help="Number of labels")
@click.pass_context
def label(ctx, json_file, address, copies):
    """Print a product label from a JSON file."""
    record = ProductLabel.from_dict(load_json(json_file))
    composer = ReceiptComposer()
    asyncio.run(send_job(
        ctx, address, lambda: composer.build_product_label(record) * copies,
        f"{copies} label(s) for {record.code or record.name}",
    ))


@main.command()
@click.argument("data")
@address_option
@click.option(
    "--type",
    "barcode_type",
    type=click.Choice([t.name for t in BarcodeType], case_sensitive=False),
    default="CODE128",
    help="Barcode type (default: CODE128)",
)
@click.pass_context
def barcode(ctx, data, address, barcode_type):
    """Print a barcode using the printer's built-in symbologies.

    Examples:
        rentalprint barcode "INV12345678"
        rentalprint barcode "4006381333931" --type EAN13
    """
    cmd = (ESCPOSCommand()
           .initialize()
           .set_align("center")
           .barcode(data, barcode_type)
           .line_feed(2)
           .cut())
    asyncio.run(send_job(ctx, address, lambda: cmd.get_bytes(), f"{barcode_type.upper()} barcode"))


@main.command()
@click.argument("data")
@address_option
@click.option("--size", type=click.IntRange(1, 16), default=6, help="Module size in dots (1-16)")
@click.option(
    "--error-correction",
    type=click.Choice(["L", "M", "Q", "H"]),
    default="M",
    help="Error correction level (L=7%%, M=15%%, Q=25%%, H=30%%)",
)
@click.pass_context
def qr(ctx, data, address, size, error_correction):
    """Print a QR code using the printer's built-in QR support."""
    cmd = (ESCPOSCommand()
           .initialize()
           .set_align("center")
           .qrcode(data, size, error_correction)
           .line_feed(2)
           .cut())
    asyncio.run(send_job(ctx, address, lambda: cmd.get_bytes(), "QR code"))


@main.command()
@click.argument("hex_data")
@address_option
@click.option(
    "--force",
    is_flag=True,
    help="Skip the confirmation prompt",
)
@click.pass_context
def raw(ctx, hex_data, address, force):
    """Send raw hex bytes to the printer (for debugging).

    WARNING: bytes are sent unchecked; bad ESC/POS sequences can leave the
    printer in an odd mode until it is power cycled.
    """
    try:
        data = bytes.fromhex(hex_data)
    except ValueError:
        click.echo("Invalid hex data!", err=True)
        sys.exit(1)

    if not force:
        click.echo("WARNING: Raw mode sends arbitrary bytes directly to the printer.", err=True)
        if not click.confirm("Do you want to continue?"):
            click.echo("Aborted.")
            return

    asyncio.run(send_job(ctx, address, lambda: data, f"raw data {data.hex()}"))


@main.command("bprint-url")
@click.argument("kind", type=click.Choice(["booking", "rental", "label"]))
@click.argument("record_id")
@click.option(
    "--type",
    "invoice_type",
    type=click.Choice(list(bprint.INVOICE_TYPES)),
    default="full",
    help="Booking invoice type (default: full)",
)
@click.option("--api-base", default=None, help=f"API base URL (default: ${bprint.API_URL_ENV})")
def bprint_url(kind, record_id, invoice_type, api_base):
    """Print a bprint:// link for the Bluetooth Print phone app."""
    if kind == "booking":
        url = bprint.booking_invoice_url(record_id, invoice_type, api_base)
    elif kind == "rental":
        url = bprint.rental_invoice_url(record_id, api_base)
    else:
        url = bprint.product_label_url(record_id, api_base)
    click.echo(url)


@main.command()
def forget():
    """Forget the last used printer."""
    if clear_cache():
        click.echo("Cached printer cleared.")
    else:
        click.echo("No cached printer.")


if __name__ == "__main__":
    main()
