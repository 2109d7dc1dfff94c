import logging
import re
from dataclasses import dataclass

import config
from enums.scan_state import ScanSource, ScanState

logger = logging.getLogger(__name__)

PRINTABLE_KEY = re.compile(r"^[\w\-]$")
SUBMIT_KEYS = {"Enter", "\n", "\r"}


@dataclass(frozen=True)
class ScanResult:
    code: str
    source: ScanSource


class ScanInputClassifier:
    """
    Keystroke classifier for barcode wedge scanners.

    IDLE -> BUFFERING on the first printable key, BUFFERING -> SUBMIT on
    Enter, then straight back to IDLE. A burst is scanner input only if every
    gap between keys stayed within max_key_interval_ms and it reached
    min_length characters; anything else is manual typing.
    """

    def __init__(self, max_key_interval_ms: int = config.SCAN_MAX_KEY_INTERVAL_MS,
                 min_length: int = config.SCAN_MIN_LENGTH):
        self.max_key_interval_ms = max_key_interval_ms
        self.min_length = min_length
        self.reset()

    def reset(self) -> None:
        self.state = ScanState.IDLE
        self._buffer: list[str] = []
        self._last_key_ms: float | None = None
        self._burst_is_fast = True

    def feed(self, key: str, timestamp_ms: float) -> ScanResult | None:
        """
        Process one key press.

        Returns:
            ScanResult when Enter completes a non-empty buffer, None otherwise
        """
        if key in SUBMIT_KEYS:
            if self.state != ScanState.BUFFERING:
                return None
            self.state = ScanState.SUBMIT
            result = self._classify()
            self.reset()
            return result

        if not PRINTABLE_KEY.match(key):
            return None

        if self.state == ScanState.IDLE:
            self.state = ScanState.BUFFERING
        elif timestamp_ms - self._last_key_ms > self.max_key_interval_ms:
            self._burst_is_fast = False

        self._buffer.append(key)
        self._last_key_ms = timestamp_ms
        return None

    def _classify(self) -> ScanResult:
        code = "".join(self._buffer)
        if self._burst_is_fast and len(code) >= self.min_length:
            source = ScanSource.SCANNER
        else:
            source = ScanSource.MANUAL
        logger.debug(f"[Scanner] Classified '{code}' as {source.value} input")
        return ScanResult(code=code, source=source)
