import threading
import time


REPORT_CODE_PREFIX = "PS"
_CODE_SPACE = 1_000_000


class ReportCodeService:
    """
    Human-readable report codes (``PS-123456``) taken from the last six
    digits of the millisecond clock. Within one process the numeric part
    only moves forward, so back-to-back calls never repeat.
    """

    def __init__(self, clock=None):
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._lock = threading.Lock()
        self._last = None

    def generate(self) -> str:
        with self._lock:
            candidate = self._clock() % _CODE_SPACE
            if self._last is not None and candidate <= self._last < candidate + _CODE_SPACE // 2:
                candidate = (self._last + 1) % _CODE_SPACE
            self._last = candidate
        return f"{REPORT_CODE_PREFIX}-{candidate:06d}"


report_code_service = ReportCodeService()
