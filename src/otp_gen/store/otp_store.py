"""In-memory OTP store with scheduled expiry."""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import threading
from collections.abc import Hashable
from dataclasses import dataclass, field

from otp_gen.config import settings
from otp_gen.errors import (
    ExpiryScheduleError,
    OTPAlreadyExistsError,
    StoreAlreadyStartedError,
    StoreNotRunningError,
)
from otp_gen.store.scheduler import ExpiryScheduler

logger = logging.getLogger(__name__)

# Six decimal digits, leading digit never zero
OTP_MIN = 100_000
OTP_MAX = 999_999


def generate_code() -> str:
    """Draw a uniformly distributed 6-digit code."""
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def hash_code(code: str) -> str:
    """Return the upper-case hex SHA-256 digest of *code*."""
    return hashlib.sha256(str(code).encode("utf-8")).hexdigest().upper()


@dataclass(eq=False)
class OTPRecord:
    """One outstanding OTP. Compared by identity so a stale expiry can tell
    its own record apart from a newer one stored under the same key."""

    key: Hashable
    hashed_code: str = field(repr=False)


class OTPStore:
    """Thread-safe in-memory OTP store.

    Each entry maps ``key → OTPRecord``.  Only the hash of a code is kept;
    the plaintext leaves the store once, as the return value of
    :meth:`generate`.  Every record is removed by whichever comes first of a
    verification attempt or its scheduled expiry.
    """

    def __init__(self, expiry_ms: int | None = None) -> None:
        if expiry_ms is None:
            expiry_ms = settings.otp_expiry_ms
        if expiry_ms <= 0:
            raise ValueError(f"expiry_ms must be positive, got {expiry_ms}")
        self.expiry_ms = expiry_ms
        self._lock = threading.Lock()
        self._records: dict[Hashable, OTPRecord] = {}
        self._running = False
        self._scheduler = ExpiryScheduler()

    # ── Lifecycle ────────────────────────────────────────

    def start(self) -> OTPStore:
        """Open the store for business and return it."""
        with self._lock:
            if self._running:
                raise StoreAlreadyStartedError("OTP store is already running")
            try:
                self._scheduler.start()
            except RuntimeError as exc:
                raise ExpiryScheduleError() from exc
            self._running = True
        logger.info("OTP store started (expiry %d ms)", self.expiry_ms)
        return self

    def stop(self) -> None:
        """Close the store.

        Pending expiries are not cancelled; they fire harmlessly later or
        die with the process.
        """
        with self._lock:
            self._running = False
            self._scheduler.stop()
            outstanding = len(self._records)
        logger.info("OTP store stopped with %d outstanding OTP(s)", outstanding)

    @property
    def is_running(self) -> bool:
        return self._running

    def __enter__(self) -> OTPStore:
        if not self._running:
            self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    # ── Operations ───────────────────────────────────────

    def generate(self, key: Hashable) -> str:
        """Generate and store a 6-digit OTP for *key*.

        Raises :class:`OTPAlreadyExistsError` if *key* already has an
        outstanding OTP, and :class:`ExpiryScheduleError` if the expiry
        cannot be scheduled (nothing is stored in that case).
        """
        with self._lock:
            self._ensure_running()
            if key in self._records:
                raise OTPAlreadyExistsError(key)

            code = generate_code()
            record = OTPRecord(key=key, hashed_code=hash_code(code))
            # Expiry takes the lock, so it cannot run before the insert
            self._schedule_expiry(record)
            self._records[key] = record

        logger.debug("OTP generated for key %r", key)
        return code

    def verify(self, key: Hashable, code: str) -> bool:
        """Return ``True`` if *code* matches the outstanding OTP for *key*.

        Any attempt consumes the OTP, so a second call always returns
        ``False``.  Unknown keys, wrong codes and expired codes all return
        ``False`` alike.
        """
        candidate = hash_code(code)
        with self._lock:
            self._ensure_running()
            record = self._records.pop(key, None)

        if record is None:
            return False
        return hmac.compare_digest(record.hashed_code, candidate)

    @property
    def active_count(self) -> int:
        """Number of outstanding OTPs (useful for monitoring)."""
        with self._lock:
            return len(self._records)

    # ── Internals ────────────────────────────────────────

    def _ensure_running(self) -> None:
        if not self._running:
            raise StoreNotRunningError("OTP store is not running")

    def _schedule_expiry(self, record: OTPRecord) -> None:
        try:
            self._scheduler.schedule(self.expiry_ms / 1000, self._expire, record)
        except RuntimeError as exc:
            raise ExpiryScheduleError(record.key) from exc

    def _expire(self, record: OTPRecord) -> None:
        with self._lock:
            if self._records.get(record.key) is not record:
                # Already verified, or replaced by a newer OTP
                return
            del self._records[record.key]
        logger.info('OTP for key "%s" expired', record.key)
