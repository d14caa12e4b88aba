"""Tests for the OTPStore — generation, verification, expiry and locking."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from otp_gen.errors import (
    ExpiryScheduleError,
    OTPAlreadyExistsError,
    StoreAlreadyStartedError,
    StoreNotRunningError,
)
from otp_gen.store import otp_store as otp_store_module
from otp_gen.store.otp_store import OTPStore, hash_code

# Long enough that no expiry fires during a test unless it asks for one
LONG_EXPIRY_MS = 60_000
SHORT_EXPIRY_MS = 50


@pytest.fixture
def store():
    with OTPStore(expiry_ms=LONG_EXPIRY_MS) as s:
        yield s


@pytest.fixture
def short_store():
    with OTPStore(expiry_ms=SHORT_EXPIRY_MS) as s:
        yield s


def _wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


# ──────────────────────────────────────────────────────────
# Generation
# ──────────────────────────────────────────────────────────
def test_generate_returns_six_digit_code(store):
    for i in range(200):
        code = store.generate(f"user-{i}")
        assert len(code) == 6
        assert code.isdigit()
        assert 100_000 <= int(code) <= 999_999


def test_generate_twice_for_same_key_raises(store):
    store.generate("a")

    with pytest.raises(OTPAlreadyExistsError) as excinfo:
        store.generate("a")

    assert excinfo.value.key == "a"
    assert store.active_count == 1


def test_generate_rejection_keeps_original_code(store):
    code = store.generate("a")
    with pytest.raises(OTPAlreadyExistsError):
        store.generate("a")

    assert store.verify("a", code) is True


def test_store_keeps_only_the_hash(store):
    code = store.generate("a")
    record = store._records["a"]

    assert record.hashed_code == hash_code(code)
    assert code not in record.hashed_code
    assert code not in repr(record)


def test_keys_can_be_any_hashable(store):
    code = store.generate(("tenant", 42))
    assert store.verify(("tenant", 42), code) is True


def test_hash_code_is_upper_hex_sha256():
    digest = hash_code("123456")
    assert len(digest) == 64
    assert digest == digest.upper()
    assert digest == hash_code("123456")
    assert digest != hash_code("123457")


# ──────────────────────────────────────────────────────────
# Verification
# ──────────────────────────────────────────────────────────
def test_verify_succeeds_once(store):
    code = store.generate("user@example.com")

    assert store.verify("user@example.com", code) is True
    assert store.verify("user@example.com", code) is False


def test_verify_unknown_key_returns_false(store):
    assert store.verify("nobody", "123456") is False


def test_wrong_code_consumes_record(store):
    code = store.generate("a")

    assert store.verify("a", "000000") is False
    assert store.verify("a", code) is False
    assert store.active_count == 0


def test_verify_garbage_code_returns_false(store):
    store.generate("a")
    assert store.verify("a", "invalid_otp") is False


def test_distinct_keys_are_never_conflated(store):
    codes = {key: store.generate(key) for key in ("a", "b", "c")}

    assert store.verify("b", codes["b"]) is True
    assert store.verify("c", codes["c"]) is True
    assert store.verify("a", codes["a"]) is True

    codes = {key: store.generate(key) for key in ("a", "b")}
    if codes["a"] != codes["b"]:
        assert store.verify("a", codes["b"]) is False
        assert store.verify("b", codes["a"]) is False


def test_key_can_be_regenerated_after_verify(store):
    first = store.generate("a")
    store.verify("a", first)

    second = store.generate("a")
    assert store.verify("a", second) is True


# ──────────────────────────────────────────────────────────
# Expiry
# ──────────────────────────────────────────────────────────
def test_expired_code_no_longer_verifies(short_store):
    code = short_store.generate("a")

    assert _wait_until(lambda: short_store.active_count == 0)
    assert short_store.verify("a", code) is False


def test_generate_succeeds_again_after_expiry(short_store):
    short_store.generate("a")
    assert _wait_until(lambda: short_store.active_count == 0)

    code = short_store.generate("a")
    assert len(code) == 6


def test_expiry_is_logged(short_store, caplog):
    caplog.set_level(logging.INFO, logger="otp_gen.store.otp_store")
    short_store.generate("user@example.com")

    assert _wait_until(lambda: short_store.active_count == 0)
    assert _wait_until(
        lambda: 'OTP for key "user@example.com" expired' in caplog.text
    )


def test_expiry_after_verify_is_silent(short_store, caplog):
    caplog.set_level(logging.INFO, logger="otp_gen.store.otp_store")
    code = short_store.generate("a")
    assert short_store.verify("a", code) is True

    time.sleep(SHORT_EXPIRY_MS / 1000 * 4)
    assert "expired" not in caplog.text


def test_stale_expiry_does_not_remove_newer_record(store):
    store.generate("a")
    stale = store._records["a"]
    store.verify("a", "not-the-code")

    code = store.generate("a")
    store._expire(stale)

    assert store.active_count == 1
    assert store.verify("a", code) is True


def test_schedule_failure_leaves_no_record(store, monkeypatch):
    def _refuse(*args):
        raise RuntimeError("expiry scheduler is not running")

    monkeypatch.setattr(store._scheduler, "schedule", _refuse)

    with pytest.raises(ExpiryScheduleError):
        store.generate("a")

    assert store.active_count == 0
    monkeypatch.undo()
    assert len(store.generate("a")) == 6


def test_expiries_share_one_thread(store):
    baseline = threading.active_count()

    for i in range(500):
        store.generate(f"user-{i}")

    assert store.active_count == 500
    assert threading.active_count() <= baseline


# ──────────────────────────────────────────────────────────
# Concurrency
# ──────────────────────────────────────────────────────────
def test_parallel_verify_has_single_winner(store):
    workers = 32
    code = store.generate("race")
    barrier = threading.Barrier(workers)

    def attempt(_):
        barrier.wait()
        return store.verify("race", code)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(attempt, range(workers)))

    assert results.count(True) == 1
    assert results.count(False) == workers - 1


def test_parallel_generate_has_single_winner(store):
    workers = 32
    barrier = threading.Barrier(workers)

    def attempt(_):
        barrier.wait()
        try:
            return store.generate("race")
        except OTPAlreadyExistsError:
            return None

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(attempt, range(workers)))

    winners = [r for r in results if r is not None]
    assert len(winners) == 1
    assert store.verify("race", winners[0]) is True


# ──────────────────────────────────────────────────────────
# Lifecycle
# ──────────────────────────────────────────────────────────
def test_store_must_be_started():
    store = OTPStore(expiry_ms=LONG_EXPIRY_MS)

    with pytest.raises(StoreNotRunningError):
        store.generate("a")
    with pytest.raises(StoreNotRunningError):
        store.verify("a", "123456")


def test_start_twice_raises():
    store = OTPStore(expiry_ms=LONG_EXPIRY_MS).start()
    try:
        with pytest.raises(StoreAlreadyStartedError):
            store.start()
    finally:
        store.stop()


def test_stopped_store_rejects_calls_and_expiries_fire_harmlessly():
    store = OTPStore(expiry_ms=SHORT_EXPIRY_MS).start()
    store.generate("a")
    store.stop()

    assert not store.is_running
    with pytest.raises(StoreNotRunningError):
        store.generate("b")

    assert _wait_until(lambda: store.active_count == 0)


def test_store_can_be_restarted():
    store = OTPStore(expiry_ms=LONG_EXPIRY_MS).start()
    store.stop()
    store.start()
    try:
        code = store.generate("a")
        assert store.verify("a", code) is True
    finally:
        store.stop()


@pytest.mark.parametrize("expiry_ms", [0, -1])
def test_expiry_must_be_positive(expiry_ms):
    with pytest.raises(ValueError):
        OTPStore(expiry_ms=expiry_ms)


def test_default_expiry_comes_from_settings(monkeypatch):
    monkeypatch.setattr(otp_store_module.settings, "otp_expiry_ms", 1234)
    assert OTPStore().expiry_ms == 1234
