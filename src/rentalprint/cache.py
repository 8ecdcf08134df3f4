"""
Last-printer memory for the command-line tool.

The CLI records the printer of every successful job in
``~/.config/rentalprint/last_printer`` and reuses it when ``--address`` is
omitted. Entries expire after a day, so a counter that swapped printers
falls back to scanning instead of failing on a stale address.
"""

import json
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

DEFAULT_TTL_SECONDS = 24 * 60 * 60

CONFIG_DIR = Path.home() / ".config" / "rentalprint"
CACHE_FILE = CONFIG_DIR / "last_printer"


@dataclass
class CachedPrinter:
    """A remembered printer."""

    address: str
    name: str
    last_used: float  # Unix timestamp

    def is_expired(self, ttl_seconds: float, now: Optional[float] = None) -> bool:
        if now is None:
            now = time.time()
        return now - self.last_used > ttl_seconds

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2)

    @classmethod
    def from_json(cls, text: str) -> Optional["CachedPrinter"]:
        """Parse a cache record, None if it is unreadable."""
        try:
            data = json.loads(text)
            cached = cls(
                address=str(data["address"]),
                name=str(data["name"]),
                last_used=float(data["last_used"]),
            )
        except (ValueError, KeyError, TypeError):
            return None
        return cached if cached.address else None


def load_cached_printer(ttl_seconds: float = DEFAULT_TTL_SECONDS) -> Optional[CachedPrinter]:
    """The remembered printer, or None when missing, unreadable or expired."""
    try:
        text = CACHE_FILE.read_text()
    except FileNotFoundError:
        return None

    cached = CachedPrinter.from_json(text)
    if cached is None or cached.is_expired(ttl_seconds):
        return None
    return cached


def save_printer(address: str, name: str) -> CachedPrinter:
    """Remember `address` as the printer to use next time."""
    cached = CachedPrinter(address=address, name=name, last_used=time.time())
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    CACHE_FILE.write_text(cached.to_json())
    return cached


def clear_cache() -> bool:
    """Forget the remembered printer. Returns False if there was none."""
    try:
        CACHE_FILE.unlink()
    except FileNotFoundError:
        return False
    return True
