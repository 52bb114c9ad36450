# src/admission/rate_limiter.py
import asyncio
import logging
import math
import time
from typing import Callable, Dict, Mapping, Optional, Tuple

from .exceptions import AdmissionDeniedError
from .models import AdmissionConfig, AdmissionDecision, RateWindow, DEFAULT_ENDPOINT

logger = logging.getLogger(__name__)


def client_key_from_headers(headers: Mapping[str, str]) -> str:
    """Derive the rate limiting identity for a request.

    An API key is the more specific identifier; otherwise the first hop of
    ``x-forwarded-for`` (or ``x-real-ip``) is used.
    """
    api_key = headers.get("x-api-key")
    if api_key:
        return f"api:{api_key}"

    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = headers.get("x-real-ip") or "unknown"
    return f"ip:{ip}"


class AdmissionController:
    """Fixed-window request counter keyed by (client, endpoint).

    Admission fails open: an internal error is logged and the request is
    allowed through.
    """

    def __init__(
        self,
        config: Optional[AdmissionConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or AdmissionConfig()
        self._clock = clock
        self._windows: Dict[Tuple[str, str], RateWindow] = {}
        self._lock = asyncio.Lock()
        self._sweeper: Optional[asyncio.Task] = None
        self.running = False

    async def admit(self, client_key: str, endpoint: Optional[str] = None) -> AdmissionDecision:
        endpoint = endpoint or DEFAULT_ENDPOINT
        try:
            rule = self.config.rule_for(endpoint)
            async with self._lock:
                now = self._clock()
                key = (client_key, endpoint)
                window = self._windows.get(key)

                if window is None or now >= window.reset_at:
                    self._windows[key] = RateWindow(count=1, reset_at=now + rule.window_seconds)
                    return AdmissionDecision.allow()

                if window.count < rule.max_requests:
                    window.count += 1
                    return AdmissionDecision.allow()

                retry_after = max(1, math.ceil(window.reset_at - now))

            logger.info(
                f"Admission denied for {client_key} on '{endpoint}' "
                f"({rule.max_requests}/{rule.window_seconds:g}s), retry after {retry_after}s"
            )
            return AdmissionDecision.deny(retry_after)

        except Exception:
            logger.exception(f"Admission check failed for {client_key} on '{endpoint}', allowing request")
            return AdmissionDecision.allow()

    async def enforce(self, client_key: str, endpoint: Optional[str] = None) -> None:
        """Admit or raise AdmissionDeniedError."""
        decision = await self.admit(client_key, endpoint)
        if not decision.allowed:
            raise AdmissionDeniedError(
                client_key, endpoint or DEFAULT_ENDPOINT, decision.retry_after_seconds
            )

    async def sweep_expired(self) -> int:
        """Drop every window whose reset time has passed. Returns the number removed."""
        async with self._lock:
            now = self._clock()
            expired = [key for key, window in self._windows.items() if now >= window.reset_at]
            for key in expired:
                del self._windows[key]

        if expired:
            logger.debug(f"Swept {len(expired)} expired rate windows")
        return len(expired)

    async def get_window(self, client_key: str, endpoint: Optional[str] = None) -> Optional[RateWindow]:
        async with self._lock:
            window = self._windows.get((client_key, endpoint or DEFAULT_ENDPOINT))
            return RateWindow(window.count, window.reset_at) if window else None

    async def tracked_windows(self) -> int:
        async with self._lock:
            return len(self._windows)

    async def start(self) -> None:
        """Start the periodic sweep of expired windows."""
        if self.running:
            return
        self.running = True
        self._sweeper = asyncio.create_task(self._sweep_loop())
        logger.info(
            f"Admission sweeper started (every {self.config.sweep_interval_seconds:g}s)"
        )

    async def stop(self) -> None:
        self.running = False
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        logger.info("Admission sweeper stopped")

    async def _sweep_loop(self) -> None:
        while self.running:
            await asyncio.sleep(self.config.sweep_interval_seconds)
            try:
                await self.sweep_expired()
            except Exception as e:
                logger.error(f"Error sweeping rate windows: {str(e)}")
