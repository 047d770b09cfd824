# SP Vault - One-Time-Code Ledger
#
# Process-wide store of outstanding login codes, one per identity.
# Flow:
#   1. issue(identity) after password + PIN check -> 6-digit code
#   2. Code is delivered out-of-band by a Notifier (not by the ledger)
#   3. verify(identity, candidate) consumes the code on match
#
# Rules:
#   - At most one record per identity; issuing replaces the old record
#   - Default TTL 10 min, 5 attempts
#   - Expired / exhausted records are deleted on the next touch
#   - Records nobody touches again are reclaimed by sweep_expired(),
#     run opportunistically on issue() and by the optional sweeper thread
#
# Concurrency: calls for the same identity serialize on a per-identity
# lock; different identities never block each other. The guard lock only
# protects the lock table itself and is never held while a key lock is
# being waited on.

import logging
import secrets
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, Iterator, Optional

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────

DEFAULT_TTL_SECONDS = 600       # 10 minutes
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_CODE_LENGTH = 6
DEFAULT_SWEEP_INTERVAL_SECONDS = 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Data Model ───────────────────────────────────────────────────────


class VerifyReason(str, Enum):
    """Outcome of a verify() call."""
    OK = "ok"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    CODE_MISMATCH = "code_mismatch"


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    reason: VerifyReason
    attempts_remaining: int = 0


@dataclass
class OneTimeCodeRecord:
    """An outstanding code for one identity."""
    code: str
    issued_at: datetime
    expires_at: datetime
    attempt_count: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    @property
    def exhausted(self) -> bool:
        return self.attempt_count >= self.max_attempts


@dataclass
class _KeyLock:
    lock: threading.Lock
    users: int = 0


# ── Ledger ───────────────────────────────────────────────────────────


class OneTimeCodeLedger:
    """In-memory, thread-safe ledger of one-time login codes.

    Usage::

        ledger = OneTimeCodeLedger()
        code = ledger.issue("a@x.com")
        result = ledger.verify("a@x.com", code)
        assert result.valid

    Args:
        ttl_seconds: Lifetime of an issued code.
        max_attempts: Wrong guesses allowed before the code is burned.
        code_length: Number of digits in a code.
        sweep_interval_seconds: Minimum spacing of opportunistic sweeps
            and the period of the background sweeper.
        clock: Returns the current aware datetime (patched in tests).
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        code_length: int = DEFAULT_CODE_LENGTH,
        sweep_interval_seconds: int = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be positive")
        if max_attempts < 1:
            raise ValueError("max_attempts must be positive")
        if code_length < 1:
            raise ValueError("code_length must be positive")

        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_attempts = max_attempts
        self.code_length = code_length
        self.sweep_interval = timedelta(seconds=sweep_interval_seconds)
        self._clock = clock or _utcnow

        self._records: Dict[str, OneTimeCodeRecord] = {}
        self._key_locks: Dict[str, _KeyLock] = {}
        self._guard = threading.Lock()
        self._last_sweep = self._clock()

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ── Per-identity locking ─────────────────────────────────────────

    @contextmanager
    def _locked(self, identity_key: str) -> Iterator[None]:
        """Hold the lock for one identity.

        Lock entries are reference counted and dropped when the last user
        leaves, so the lock table stays bounded by concurrent callers.
        """
        with self._guard:
            entry = self._key_locks.get(identity_key)
            if entry is None:
                entry = self._key_locks[identity_key] = _KeyLock(threading.Lock())
            entry.users += 1

        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._key_locks[identity_key]

    # ── Issue / Verify ───────────────────────────────────────────────

    def _generate_code(self) -> str:
        return f"{secrets.randbelow(10 ** self.code_length):0{self.code_length}d}"

    def issue(self, identity_key: str) -> str:
        """Issue a fresh code for identity_key, replacing any outstanding one.

        Returns:
            The code, for delivery by the caller's notifier.
        """
        now = self._clock()
        code = self._generate_code()
        record = OneTimeCodeRecord(
            code=code,
            issued_at=now,
            expires_at=now + self.ttl,
            attempt_count=0,
            max_attempts=self.max_attempts,
        )

        with self._locked(identity_key):
            replaced = identity_key in self._records
            self._records[identity_key] = record

        if replaced:
            logger.debug("Replaced outstanding code for %s", identity_key)

        self._maybe_sweep(now)
        return code

    def verify(self, identity_key: str, candidate: str) -> VerificationResult:
        """Check candidate against the outstanding code.

        Side effects:
            - expired or exhausted record: deleted
            - mismatch: attempt_count incremented, record kept
            - match: record deleted (codes are single use)
        """
        with self._locked(identity_key):
            now = self._clock()
            record = self._records.get(identity_key)

            if record is None:
                return VerificationResult(False, VerifyReason.NOT_FOUND)

            if record.is_expired(now):
                del self._records[identity_key]
                return VerificationResult(False, VerifyReason.EXPIRED)

            if record.exhausted:
                del self._records[identity_key]
                return VerificationResult(False, VerifyReason.ATTEMPTS_EXHAUSTED)

            if not secrets.compare_digest(record.code.encode(), str(candidate).encode()):
                record.attempt_count += 1
                return VerificationResult(
                    False,
                    VerifyReason.CODE_MISMATCH,
                    attempts_remaining=max(0, record.max_attempts - record.attempt_count),
                )

            del self._records[identity_key]
            return VerificationResult(True, VerifyReason.OK)

    def get_record(self, identity_key: str) -> Optional[OneTimeCodeRecord]:
        """Return a copy of the outstanding record (for diagnostics and tests)."""
        with self._locked(identity_key):
            record = self._records.get(identity_key)
            return replace(record) if record else None

    def __len__(self) -> int:
        return len(self._records)

    # ── Reclamation ──────────────────────────────────────────────────

    def sweep_expired(self) -> int:
        """Delete every expired record. Returns how many were removed.

        Exhausted records are left for verify() to report, they expire on
        their own schedule.
        """
        keys = list(self._records)

        removed = 0
        for key in keys:
            with self._locked(key):
                record = self._records.get(key)
                if record is not None and record.is_expired(self._clock()):
                    del self._records[key]
                    removed += 1

        self._last_sweep = self._clock()
        if removed:
            logger.info("Swept %d expired one-time code(s)", removed)
        return removed

    def _maybe_sweep(self, now: datetime) -> None:
        if now - self._last_sweep >= self.sweep_interval:
            self.sweep_expired()

    # ── Background sweeper ───────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background sweeper thread (idempotent)."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="otp-ledger-sweeper", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def _run(self) -> None:
        interval = max(1.0, self.sweep_interval.total_seconds())
        while not self._stop_event.wait(interval):
            try:
                self.sweep_expired()
            except Exception:
                logger.exception("One-time code sweep failed")
