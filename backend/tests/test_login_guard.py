from datetime import datetime, timedelta

from dms.auth.login_guard import LoginThrottle, login_key


def test_lock_after_max_failures_in_window():
    throttle = LoginThrottle(max_failures=3, window=timedelta(minutes=15), lock_for=timedelta(minutes=15))
    now = datetime(2024, 1, 1, 12, 0)
    key = login_key("A@X.com", "1.2.3.4")

    assert throttle.register_failure(key, now) is None
    assert throttle.register_failure(key, now + timedelta(minutes=1)) is None
    locked_until = throttle.register_failure(key, now + timedelta(minutes=2))

    assert locked_until == now + timedelta(minutes=17)
    assert throttle.is_locked(key, now + timedelta(minutes=3)) == locked_until
    assert throttle.is_locked(key, locked_until) is None


def test_failures_outside_window_do_not_count():
    throttle = LoginThrottle(max_failures=2, window=timedelta(minutes=15), lock_for=timedelta(minutes=15))
    now = datetime(2024, 1, 1, 12, 0)

    throttle.register_failure("k", now)

    assert throttle.register_failure("k", now + timedelta(minutes=16)) is None
    assert throttle.is_locked("k", now + timedelta(minutes=16)) is None


def test_clear_forgets_failures_and_lock():
    throttle = LoginThrottle(max_failures=1)
    throttle.register_failure("k")

    throttle.clear("k")

    assert throttle.is_locked("k") is None


def test_login_key_normalizes_email_and_missing_ip():
    assert login_key(" A@X.com ", None) == "a@x.com:unknown"


def test_stale_keys_are_dropped():
    throttle = LoginThrottle(max_failures=5, window=timedelta(minutes=15), lock_for=timedelta(minutes=15))
    now = datetime(2024, 1, 1, 12, 0)
    for n in range(100):
        throttle.register_failure(f"user{n}@x.com:1.2.3.4", now)
    assert len(throttle._failures) == 100

    throttle.register_failure("late@x.com:1.2.3.4", now + timedelta(minutes=16))

    assert list(throttle._failures) == ["late@x.com:1.2.3.4"]


def test_expired_locks_are_dropped():
    throttle = LoginThrottle(max_failures=1, window=timedelta(minutes=15), lock_for=timedelta(minutes=15))
    now = datetime(2024, 1, 1, 12, 0)
    throttle.register_failure("a", now)
    assert "a" in throttle._locked_until

    throttle.register_failure("b", now + timedelta(minutes=31))

    assert "a" not in throttle._locked_until
