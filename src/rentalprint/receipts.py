"""
Receipt and label layouts for 58mm printers.

ReceiptComposer turns booking invoices, rental invoices and product labels
into one ESC/POS buffer each and hands it to a ThermalPrinter.
"""

import json
from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import Callable, Optional, Union

from PIL import Image

from .errors import ImageError
from .escpos import BarcodeType, ESCPOSCommand
from .formatting import alphanumeric, format_currency, format_date, format_datetime, wrap
from .printer import ThermalPrinter, build_test_page
from .records import CompanyInfo, InvoiceData, ProductLabel, Rental

DEFAULT_COMPANY = CompanyInfo(
    name="SUITLABS BALI",
    tagline="Sewa Jas Jimbaran & Nusadua",
    address="Jl. Taman Kebo Iwa No.1D",
    address_lines=["Benoa, Kec. Kuta Sel., Kab. Badung", "Bali 80362"],
    website="suitlabs.id",
    short_name="SuitLabs",
)

WARRANTY_NOTE = "6-Month Warranty. T&C apply."

ImageSource = Union[str, Path, bytes, Image.Image]


def load_image(image: ImageSource) -> Image.Image:
    """
    Load an image from a path, raw bytes, or a PIL Image.

    Raises:
        ImageError: If image cannot be loaded or is invalid
    """
    try:
        if isinstance(image, (str, Path)):
            path = Path(image)
            if not path.exists():
                raise ImageError(f"Image file not found: {path}")
            img = Image.open(path)
            img.load()
        elif isinstance(image, bytes):
            img = Image.open(BytesIO(image))
            img.load()
        elif isinstance(image, Image.Image):
            img = image
        else:
            raise ImageError(f"Unsupported image type: {type(image)}")
        return img
    except ImageError:
        raise
    except Exception as e:
        raise ImageError(f"Failed to load image: {e}") from e


class ReceiptComposer:
    """Lays out receipts and labels and sends them to the printer."""

    LINE_WIDTH = ESCPOSCommand.LINE_WIDTH
    QR_SIZE = 6

    def __init__(
        self,
        printer: Optional[ThermalPrinter] = None,
        *,
        company: Optional[CompanyInfo] = None,
        logo: Optional[ImageSource] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            printer: Printer used by the print_* methods
            company: Shop details (default: DEFAULT_COMPANY)
            logo: Optional image printed above the receipt header
            now: Clock used for the printed date (default: datetime.now)
        """
        self.printer = printer
        self.company = company or DEFAULT_COMPANY
        self.logo = load_image(logo) if logo is not None else None
        self.now = now or datetime.now
        self._debug = False

    def set_debug(self, enabled: bool):
        """Enable/disable debug output."""
        self._debug = enabled

    def _log(self, message: str):
        """Print debug message if enabled."""
        if self._debug:
            print(f"[RECEIPT] {message}")

    # ---- Layout helpers ----

    def _lines(self, cmd: ESCPOSCommand, text: str, indent: str = "") -> ESCPOSCommand:
        """Print text wrapped to the paper width."""
        for line in wrap(text, self.LINE_WIDTH - len(indent)):
            cmd.text(indent + line).line_feed()
        return cmd

    def _price_line(self, cmd: ESCPOSCommand, quantity: str, total: str, indent: str = "    "):
        """Print "2 PCS × Rp 250.000 = Rp 500.000", moving the total down if it is too wide."""
        line = f"{indent}{quantity} = {total}"
        if len(line) <= self.LINE_WIDTH:
            cmd.text(line).line_feed()
        else:
            cmd.text(f"{indent}{quantity}").line_feed()
            cmd.text(f"{indent}= {total}").line_feed()

    def _header(self, cmd: ESCPOSCommand, company: CompanyInfo, show_contact: bool):
        cmd.initialize()
        if self.logo is not None:
            cmd.set_align("center").image(self.logo).line_feed()

        (cmd.set_align("center")
            .set_font_size(2, 2)
            .set_bold(True)
            .text(company.name)
            .line_feed()
            .set_font_size(1, 1)
            .set_bold(False))
        if company.tagline:
            cmd.text(company.tagline).line_feed()
        cmd.line_feed()

        for line in [company.address, *company.address_lines]:
            if line:
                self._lines(cmd, line)

        if show_contact:
            if company.phone:
                self._lines(cmd, f"TEL: {company.phone}")
            if company.email:
                self._lines(cmd, f"Email: {company.email}")
        cmd.line_feed()
        cmd.separator()

    def _invoice_barcode(self, cmd: ESCPOSCommand, invoice_number: str):
        cmd.set_align("center").text("Invoice Barcode:").line_feed()
        data = alphanumeric(invoice_number)
        if data:
            cmd.barcode(data, BarcodeType.CODE128)
        cmd.line_feed()
        cmd.separator()

    def _footer(self, cmd: ESCPOSCommand, company: CompanyInfo, terms: str, qr_payload: dict):
        cmd.line_feed()
        cmd.separator()
        (cmd.set_align("center")
            .text(f"Thank you for using {company.display_name}!")
            .line_feed()
            .text(terms)
            .line_feed()
            .text(WARRANTY_NOTE)
            .line_feed())
        if company.website:
            cmd.text(company.website).line_feed()
        cmd.line_feed()

        cmd.set_align("center").text("Scan for details:").line_feed()
        cmd.qrcode(json.dumps(qr_payload, separators=(",", ":")), self.QR_SIZE)
        cmd.line_feed(2)
        cmd.cut()

    # ---- Documents ----

    def build_booking_invoice(self, invoice: InvoiceData) -> bytes:
        """ESC/POS bytes for a booking invoice."""
        company = invoice.company or self.company
        if invoice.company:
            # Keep the shop's own lines where the API leaves fields blank
            company = CompanyInfo(
                name=company.name or self.company.name,
                tagline=company.tagline or self.company.tagline,
                address=company.address or self.company.address,
                address_lines=company.address_lines or self.company.address_lines,
                phone=company.phone,
                email=company.email,
                website=company.website or self.company.website,
                short_name=company.short_name or self.company.short_name,
            )

        cmd = ESCPOSCommand()
        self._header(cmd, company, show_contact=True)

        cmd.set_align("left").set_font_size(1, 1)
        self._lines(cmd, f"Invoice: {invoice.invoice_number}")
        cmd.text(f"Date: {format_datetime(self.now())}").line_feed()
        cmd.text(f"Booking ID: {invoice.booking_id[-8:]}").line_feed()
        cmd.text(f"Type: {(invoice.invoice_type or 'full').upper()}").line_feed()
        if invoice.due_date:
            cmd.text(f"Due Date: {format_date(invoice.due_date)}").line_feed()
        cmd.line_feed()

        self._invoice_barcode(cmd, invoice.invoice_number)

        cmd.set_align("left").set_bold(True).text("CUSTOMER:").line_feed().set_bold(False)
        self._lines(cmd, invoice.customer_name)
        self._lines(cmd, f"Email: {invoice.customer_email}")
        self._lines(cmd, f"Phone: {invoice.customer_phone}")
        cmd.line_feed()
        cmd.separator()

        cmd.set_bold(True).text("ITEMS:").line_feed().set_bold(False)
        if invoice.items:
            package = invoice.is_package_pricing
            for item in invoice.items:
                self._lines(cmd, item.description, indent="  ")
                if not (package and item.unit_price <= 0 and item.total <= 0):
                    self._price_line(
                        cmd,
                        f"{item.quantity} PCS × {format_currency(item.unit_price)}",
                        format_currency(item.total),
                    )
            if package:
                (cmd.set_bold(True)
                    .text(f"Package Total: {format_currency(invoice.total_amount)}")
                    .line_feed()
                    .set_bold(False))
        else:
            self._lines(cmd, invoice.product_name or "Booking Package")
        cmd.line_feed()
        cmd.separator()

        cmd.text(f"Subtotal: {format_currency(invoice.total_amount)}").line_feed()
        if invoice.discount_amount > 0:
            cmd.text(f"Discount: ({format_currency(invoice.discount_amount)})").line_feed()
        (cmd.set_bold(True)
            .text(f"TOTAL AMOUNT: {format_currency(invoice.grand_total)}")
            .line_feed()
            .set_bold(False))
        cmd.line_feed()
        cmd.separator()

        if invoice.invoice_type == "dp":
            cmd.text(f"Down Payment: {format_currency(invoice.due_amount)}").line_feed()
            remaining = invoice.grand_total - invoice.due_amount
            cmd.text(f"Remaining: {format_currency(remaining)}").line_feed()
        else:
            cmd.text(f"Due Amount: {format_currency(invoice.due_amount)}").line_feed()

        status = (invoice.payment_status or "pending").upper()
        cmd.set_bold(True).text(f"Payment Status: {status}").line_feed().set_bold(False)

        if invoice.booking_date:
            cmd.line_feed()
            cmd.separator()
            cmd.text(f"Booking Date: {format_date(invoice.booking_date)}").line_feed()

        self._footer(cmd, company, "All bookings subject to T&C", {
            "invoice": invoice.invoice_number,
            "booking": invoice.booking_id,
            "type": invoice.invoice_type,
            "amount": invoice.final_amount,
        })
        data = cmd.get_bytes()
        self._log(f"Booking invoice {invoice.invoice_number}: {len(data)} bytes")
        return data

    def build_rental_invoice(self, rental: Rental) -> bytes:
        """ESC/POS bytes for a rental invoice."""
        invoice_number = rental.invoice_number

        cmd = ESCPOSCommand()
        self._header(cmd, self.company, show_contact=False)

        cmd.set_align("left").set_font_size(1, 1)
        cmd.text(f"Invoice: {invoice_number}").line_feed()
        cmd.text(f"Date: {format_datetime(self.now())}").line_feed()
        cmd.text(f"Rental ID: {rental.id[-8:]}").line_feed()
        cmd.text(f"Status: {rental.status.upper()}").line_feed()
        if rental.customer:
            self._lines(cmd, f"Customer: {rental.customer.full_name}")
            cmd.text(f"Phone: {rental.customer.phone}").line_feed()
        cmd.line_feed()

        self._invoice_barcode(cmd, invoice_number)

        cmd.set_align("left").set_bold(True).text("ITEMS:").line_feed().set_bold(False)
        if rental.items:
            for item in rental.items:
                self._lines(cmd, item.description, indent="  ")
                self._price_line(
                    cmd,
                    f"{item.quantity} PCS × {format_currency(item.price_each)}",
                    format_currency(item.line_total),
                )
                if item.discount_amount > 0:
                    cmd.text(f"    Discount: ({format_currency(item.discount_amount)})").line_feed()
        else:
            cmd.text("Rental Package").line_feed()
        cmd.line_feed()
        cmd.separator()

        subtotal = rental.items_subtotal or rental.total_cost
        cmd.text(f"Subtotal: {format_currency(subtotal)}").line_feed()
        if rental.items_discount > 0:
            cmd.text(f"Discount: ({format_currency(rental.items_discount)})").line_feed()
        if rental.late_fee > 0:
            cmd.text(f"Late Fee: {format_currency(rental.late_fee)}").line_feed()
        if rental.damage_charges > 0:
            cmd.text(f"Damage: {format_currency(rental.damage_charges)}").line_feed()
        (cmd.set_bold(True)
            .text(f"GRAND TOTAL: {format_currency(rental.grand_total)}")
            .line_feed()
            .set_bold(False))

        if rental.security_deposit > 0:
            cmd.line_feed()
            cmd.separator()
            cmd.text(f"Security Deposit: {format_currency(rental.security_deposit)}").line_feed()
            if rental.damage_charges > 0:
                cmd.text(
                    f"Damage Deduction: ({format_currency(rental.damage_charges)})"
                ).line_feed()
            (cmd.set_bold(True)
                .text(f"Refundable: {format_currency(rental.refundable_deposit)}")
                .line_feed()
                .set_bold(False))

        cmd.line_feed()
        cmd.separator()
        if rental.rental_date:
            cmd.text(f"Rental Date: {format_date(rental.rental_date)}").line_feed()
        if rental.return_date:
            cmd.text(f"Return Date: {format_date(rental.return_date)}").line_feed()
        if rental.actual_pickup_date:
            cmd.text(f"Pickup: {format_date(rental.actual_pickup_date)}").line_feed()
        if rental.actual_return_date:
            cmd.text(f"Returned: {format_date(rental.actual_return_date)}").line_feed()

        if rental.notes:
            cmd.line_feed()
            cmd.separator()
            cmd.set_bold(True).text("NOTE:").line_feed().set_bold(False)
            self._lines(cmd, rental.notes)

        self._footer(cmd, self.company, "All rentals subject to T&C", {
            "invoice": invoice_number,
            "rental": rental.id,
            "status": rental.status,
            "total": rental.grand_total,
        })
        data = cmd.get_bytes()
        self._log(f"Rental invoice {invoice_number}: {len(data)} bytes")
        return data

    def build_product_label(self, label: ProductLabel) -> bytes:
        """ESC/POS bytes for an inventory label with a CODE128 barcode."""
        cmd = ESCPOSCommand()
        cmd.initialize()

        cmd.set_align("center").set_font_size(1, 1).set_bold(True)
        self._lines(cmd, label.name)
        cmd.set_bold(False)
        cmd.text(f"#{label.code}").line_feed()

        if label.details:
            self._lines(cmd, " • ".join(label.details))
        cmd.line_feed()

        data = alphanumeric(label.barcode)
        cmd.set_align("center")
        if data:
            cmd.barcode(data, BarcodeType.CODE128)
        else:
            cmd.text("Invalid barcode").line_feed()

        cmd.line_feed(2)
        cmd.cut()
        return cmd.get_bytes()

    # ---- Printing ----

    def _require_printer(self) -> ThermalPrinter:
        if self.printer is None:
            raise ValueError("ReceiptComposer has no printer to print to")
        return self.printer

    async def print_booking_invoice(self, invoice: InvoiceData):
        """Print a booking invoice."""
        await self._require_printer().print(self.build_booking_invoice(invoice))

    async def print_rental_invoice(self, rental: Rental):
        """Print a rental invoice."""
        await self._require_printer().print(self.build_rental_invoice(rental))

    async def print_product_label(self, label: ProductLabel):
        """Print a product label."""
        await self._require_printer().print(self.build_product_label(label))

    async def print_test_page(self):
        """Print the printer test page."""
        await self._require_printer().print(build_test_page())
