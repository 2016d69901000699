from __future__ import annotations

import threading

from finapp.core.locks import LockTable


def test_try_acquire_is_exclusive_until_released():
    locks = LockTable("test")
    key = (1, "recurring", 202502)
    assert locks.try_acquire(key)
    assert not locks.try_acquire(key)
    assert locks.is_held(key)
    locks.release(key)
    assert not locks.is_held(key)
    assert locks.try_acquire(key)


def test_release_of_unheld_key_is_harmless():
    locks = LockTable()
    locks.release((1, "update", 99))
    assert len(locks) == 0


def test_hold_releases_on_exception():
    locks = LockTable()
    key = (1, "update", 5)
    try:
        with locks.hold(key) as acquired:
            assert acquired
            raise RuntimeError("boom")
    except RuntimeError:
        pass
    assert not locks.is_held(key)


def test_hold_does_not_release_someone_elses_key():
    locks = LockTable()
    key = (1, "update", 5)
    assert locks.try_acquire(key)
    with locks.hold(key) as acquired:
        assert not acquired
    # The original holder still owns it
    assert locks.is_held(key)


def test_only_one_thread_wins_a_key():
    locks = LockTable()
    key = (7, "recurring", 202503)
    barrier = threading.Barrier(8)
    wins: list[bool] = []
    guard = threading.Lock()

    def worker():
        barrier.wait()
        got = locks.try_acquire(key)
        with guard:
            wins.append(got)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert wins.count(True) == 1
