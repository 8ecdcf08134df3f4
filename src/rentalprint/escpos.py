"""
ESC/POS Protocol Implementation.

ESC/POS is the binary control-code language used by most 58mm/80mm thermal
receipt printers. Commands are short byte sequences introduced by ESC (0x1B)
or GS (0x1D), interleaved with raw text bytes.

The builder here never raises: out-of-range numbers are clamped and
oversized payloads are truncated so that receipt assembly always produces
a command stream.
"""

from enum import Enum, IntEnum
from typing import Union

from PIL import Image

ESC = 0x1B
GS = 0x1D
LF = 0x0A


class Align(IntEnum):
    """Text justification codes for ESC a."""
    LEFT = 0
    CENTER = 1
    RIGHT = 2


class BarcodeType(IntEnum):
    """Symbology codes for GS k (function B, length-prefixed form)."""
    CODE128 = 73
    CODE39 = 69
    EAN13 = 67
    EAN8 = 68


class HRIPosition(IntEnum):
    """Where the human readable barcode text is printed."""
    NONE = 0
    ABOVE = 1
    BELOW = 2
    BOTH = 3


class QRErrorCorrection(Enum):
    """QR error correction levels and their GS ( k function 169 codes."""
    L = 48
    M = 49
    Q = 50
    H = 51


class ESCPOSCommand:
    """
    ESC/POS command builder.

    Every method appends one or more command fragments and returns the
    builder, so calls can be chained::

        data = (ESCPOSCommand()
                .initialize()
                .set_align("center")
                .text("HELLO")
                .line_feed()
                .cut()
                .get_bytes())
    """

    # 58mm paper: 32 columns of font A, 384 dots per line
    LINE_WIDTH = 32
    MAX_DOTS = 384

    BARCODE_HEIGHT = 80
    BARCODE_MODULE_WIDTH = 3
    BARCODE_HRI = HRIPosition.BELOW
    MAX_BARCODE_LENGTH = 255

    def __init__(self):
        self._commands: list[bytes] = []

    def __len__(self) -> int:
        return sum(len(cmd) for cmd in self._commands)

    def get_bytes(self) -> bytes:
        """Get all commands as a single byte string."""
        return b"".join(self._commands)

    def reset(self) -> "ESCPOSCommand":
        """Clear all queued commands."""
        self._commands = []
        return self

    def _add(self, *values: int):
        """Add a command made of single byte values."""
        self._commands.append(bytes(values))

    def _add_raw(self, data: bytes):
        """Add raw bytes."""
        self._commands.append(bytes(data))

    # ---- Setup Commands ----

    def initialize(self) -> "ESCPOSCommand":
        """Reset the printer to its power-on state (ESC @)."""
        self._add(ESC, ord("@"))
        return self

    def set_align(self, align: Union[Align, str]) -> "ESCPOSCommand":
        """Set justification: left, center or right (ESC a n)."""
        if isinstance(align, str):
            align = Align.__members__.get(align.upper(), Align.LEFT)
        self._add(ESC, ord("a"), int(align))
        return self

    def set_font_size(self, width: int = 1, height: int = 1) -> "ESCPOSCommand":
        """
        Set character size (ESC ! n).

        Args:
            width: Horizontal multiplier, clamped to 1-8
            height: Vertical multiplier, clamped to 1-8
        """
        w = max(1, min(8, int(width)))
        h = max(1, min(8, int(height)))
        self._add(ESC, ord("!"), (w - 1) | ((h - 1) << 4))
        return self

    def set_bold(self, enabled: bool) -> "ESCPOSCommand":
        """Turn emphasized mode on or off (ESC E n)."""
        self._add(ESC, ord("E"), 1 if enabled else 0)
        return self

    def set_underline(self, enabled: bool) -> "ESCPOSCommand":
        """Turn underline on or off (ESC - n)."""
        self._add(ESC, ord("-"), 1 if enabled else 0)
        return self

    # ---- Text Commands ----

    def text(self, content: str) -> "ESCPOSCommand":
        """
        Add text as UTF-8 bytes.

        Note: bytes are not escaped, so text containing 0x1B/0x1D is sent
        to the printer as control codes.
        """
        self._commands.append(content.encode("utf-8"))
        return self

    def line_feed(self, lines: int = 1) -> "ESCPOSCommand":
        """Print the line buffer and advance `lines` lines."""
        for _ in range(lines):
            self._add(LF)
        return self

    def separator(self) -> "ESCPOSCommand":
        """Print a dashed rule across the paper."""
        return self.text("-" * self.LINE_WIDTH).line_feed()

    def feed(self, lines: int) -> "ESCPOSCommand":
        """Print and feed `lines` lines (ESC d n)."""
        self._add(ESC, ord("d"), max(0, min(255, int(lines))))
        return self

    # ---- Barcode Commands ----

    def barcode(
        self,
        code: str,
        barcode_type: Union[BarcodeType, str] = BarcodeType.CODE128,
    ) -> "ESCPOSCommand":
        """
        Print a 1D barcode with its number printed below.

        Args:
            code: Barcode content. Empty content is ignored.
            barcode_type: CODE128, CODE39, EAN13 or EAN8

        Content longer than 255 bytes is truncated to fit the one-byte
        length field.
        """
        if not code:
            return self

        if isinstance(barcode_type, str):
            barcode_type = BarcodeType.__members__.get(
                barcode_type.upper(), BarcodeType.CODE128
            )

        data = code.encode("utf-8")[:self.MAX_BARCODE_LENGTH]

        self._add(GS, ord("h"), self.BARCODE_HEIGHT)
        self._add(GS, ord("w"), self.BARCODE_MODULE_WIDTH)
        self._add(GS, ord("H"), int(self.BARCODE_HRI))
        self._add(GS, ord("k"), int(barcode_type), len(data))
        self._add_raw(data)
        return self.line_feed()

    def qrcode(
        self,
        data: str,
        size: int = 6,
        error_correction: Union[QRErrorCorrection, str] = QRErrorCorrection.M,
    ) -> "ESCPOSCommand":
        """
        Print a QR code using the GS ( k two-dimensional code commands.

        Args:
            data: Content to encode. Empty content is ignored.
            size: Module size in dots, clamped to 1-16
            error_correction: L, M, Q or H
        """
        if not data:
            return self

        if isinstance(error_correction, str):
            error_correction = QRErrorCorrection.__members__.get(
                error_correction.upper(), QRErrorCorrection.M
            )

        module_size = max(1, min(16, int(size)))
        payload = data.encode("utf-8")
        store_len = len(payload) + 3

        # fn 167: module size
        self._add(GS, ord("("), ord("k"), 3, 0, 49, 67, module_size)
        # fn 169: error correction level
        self._add(GS, ord("("), ord("k"), 3, 0, 49, 69, error_correction.value)
        # fn 180: store symbol data, pL/pH little-endian
        self._add(GS, ord("("), ord("k"), store_len & 0xFF, (store_len >> 8) & 0xFF, 49, 80, 48)
        self._add_raw(payload)
        # fn 181: print stored symbol
        self._add(GS, ord("("), ord("k"), 3, 0, 49, 81, 48)
        return self.line_feed(2)

    # ---- Bitmap Commands ----

    def image(self, image: Image.Image) -> "ESCPOSCommand":
        """
        Print a PIL Image as a raster bit image (GS v 0).

        The image is scaled down to the printable width if needed and
        converted to 1-bit. In ESC/POS a set bit burns a dot, the opposite
        of PIL's 1-bit mode where 0 is black.
        """
        if image.width > self.MAX_DOTS:
            ratio = self.MAX_DOTS / image.width
            image = image.resize(
                (self.MAX_DOTS, max(1, int(image.height * ratio))),
                Image.Resampling.LANCZOS,
            )

        if image.mode != "1":
            image = image.convert("L").point(lambda x: 0 if x < 128 else 255, mode="1")

        width_bytes = (image.width + 7) // 8
        height = image.height

        data = bytearray()
        for y_pos in range(height):
            row = bytearray(width_bytes)
            for x_pos in range(image.width):
                if image.getpixel((x_pos, y_pos)) == 0:
                    row[x_pos // 8] |= 0x80 >> (x_pos % 8)
            data.extend(row)

        self._add(
            GS, ord("v"), ord("0"), 0,
            width_bytes & 0xFF, (width_bytes >> 8) & 0xFF,
            height & 0xFF, (height >> 8) & 0xFF,
        )
        self._add_raw(bytes(data))
        return self

    # ---- Paper Commands ----

    def cut(self) -> "ESCPOSCommand":
        """Feed to the cutter and make a partial cut (GS V 66 0)."""
        self._add(GS, ord("V"), 66, 0)
        return self
