"""ESC/POS receipt printing over Bluetooth Low Energy."""

__version__ = "0.1.0"

from .connection import BLEConnection, PrinterInfo, SerialAdapter, ServiceInfo
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
from .escpos import Align, BarcodeType, ESCPOSCommand, HRIPosition, QRErrorCorrection
from .printer import ConnectionState, PrinterStatus, ThermalPrinter, build_test_page, iter_chunks
from .receipts import ReceiptComposer
from .records import (
    CompanyInfo,
    Customer,
    InvoiceData,
    InvoiceItem,
    ProductLabel,
    Rental,
    RentalItem,
)

__all__ = [
    "ThermalPrinter",
    "ConnectionState",
    "PrinterStatus",
    "build_test_page",
    "iter_chunks",
    "BLEConnection",
    "SerialAdapter",
    "PrinterInfo",
    "ServiceInfo",
    "ESCPOSCommand",
    "Align",
    "BarcodeType",
    "HRIPosition",
    "QRErrorCorrection",
    "ReceiptComposer",
    "CompanyInfo",
    "Customer",
    "InvoiceData",
    "InvoiceItem",
    "ProductLabel",
    "Rental",
    "RentalItem",
    "PrinterError",
    "NotAvailableError",
    "PermissionDeniedError",
    "DeviceNotFoundError",
    "UnsupportedError",
    "NotConnectedError",
    "ConnectionLostError",
    "WriteFailedError",
    "ImageError",
]
