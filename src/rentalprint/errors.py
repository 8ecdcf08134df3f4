"""
Exception classes for receipt printing.

Transport failures are reported with exactly one of the PrinterError
subclasses below; raw Bluetooth backend exceptions are chained as the
``__cause__`` but never raised directly.
"""


class PrinterError(Exception):
    """Base exception for all printer errors."""

    pass


class NotAvailableError(PrinterError):
    """Bluetooth is not available on this machine at all."""

    pass


class PermissionDeniedError(PrinterError):
    """Access to Bluetooth was refused by the operating system."""

    pass


class DeviceNotFoundError(PrinterError):
    """No printer was selected, found, or reachable."""

    pass


class UnsupportedError(PrinterError):
    """The connected device exposes no writable characteristic."""

    pass


class NotConnectedError(PrinterError):
    """An operation needs a printer but connect() was never called."""

    pass


class ConnectionLostError(PrinterError):
    """The link dropped and could not be re-established."""

    pass


class WriteFailedError(PrinterError):
    """A chunk could not be written to the printer."""

    pass


class ImageError(PrinterError):
    """Error loading an image for printing."""

    pass
