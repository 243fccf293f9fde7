import threading
from collections import defaultdict, deque
from datetime import datetime, timedelta

from dms.core.config import settings


class LoginThrottle:
    """Per-key failed-login window with a temporary lockout.

    Keys are ``email:ip``. State is process-local, so each worker counts its
    own failures. Keys whose failures have all aged out are dropped.
    """

    def __init__(
        self,
        *,
        max_failures: int = settings.LOGIN_MAX_FAILURES,
        window: timedelta = timedelta(minutes=settings.LOGIN_WINDOW_MINUTES),
        lock_for: timedelta = timedelta(minutes=settings.LOGIN_LOCK_MINUTES),
    ) -> None:
        self.max_failures = max_failures
        self.window = window
        self.lock_for = lock_for
        self._failures: defaultdict[str, deque] = defaultdict(deque)
        self._locked_until: dict[str, datetime] = {}
        self._next_sweep: datetime | None = None
        self._lock = threading.Lock()

    def _prune(self, key: str, now: datetime) -> None:
        q = self._failures.get(key)
        if q is None:
            return
        cutoff = now - self.window
        while q and q[0] < cutoff:
            q.popleft()
        if not q:
            del self._failures[key]

    def _sweep(self, now: datetime) -> None:
        # At most once per window; touches every key.
        if self._next_sweep is not None and now < self._next_sweep:
            return
        self._next_sweep = now + self.window
        for key in list(self._failures):
            self._prune(key, now)
        for key, locked_until in list(self._locked_until.items()):
            if locked_until <= now:
                del self._locked_until[key]

    def is_locked(self, key: str, now: datetime | None = None) -> datetime | None:
        now = now or datetime.utcnow()
        with self._lock:
            locked_until = self._locked_until.get(key)
            if not locked_until:
                return None
            if locked_until <= now:
                self._locked_until.pop(key, None)
                return None
            return locked_until

    def register_failure(self, key: str, now: datetime | None = None) -> datetime | None:
        now = now or datetime.utcnow()
        with self._lock:
            self._sweep(now)
            self._prune(key, now)
            q = self._failures[key]
            q.append(now)

            if len(q) >= self.max_failures:
                locked_until = now + self.lock_for
                self._locked_until[key] = locked_until
                del self._failures[key]
                return locked_until

        return None

    def clear(self, key: str) -> None:
        with self._lock:
            self._failures.pop(key, None)
            self._locked_until.pop(key, None)

    def reset(self) -> None:
        with self._lock:
            self._failures.clear()
            self._locked_until.clear()
            self._next_sweep = None


def login_key(email: str, ip: str | None) -> str:
    return f"{str(email).strip().lower()}:{ip or 'unknown'}"


login_throttle = LoginThrottle()
