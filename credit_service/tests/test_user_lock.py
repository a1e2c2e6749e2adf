from __future__ import annotations

import threading

from credit_service.app.services.user_lock import UserLockRegistry


def test_entry_is_dropped_once_released() -> None:
    locks = UserLockRegistry()

    with locks.lock("user-1"):
        assert len(locks) == 1
        with locks.lock("user-1"):
            assert len(locks) == 1
        with locks.lock("user-2"):
            assert len(locks) == 2

    assert len(locks) == 0


def test_waiting_caller_keeps_the_entry_until_it_is_done() -> None:
    locks = UserLockRegistry()
    acquired = threading.Event()
    release = threading.Event()

    def hold() -> None:
        with locks.lock("user-1"):
            acquired.set()
            release.wait(timeout=5)

    holder = threading.Thread(target=hold)
    holder.start()
    assert acquired.wait(timeout=5)

    waiter_done = threading.Event()

    def wait_for_lock() -> None:
        with locks.lock("user-1"):
            waiter_done.set()

    waiter = threading.Thread(target=wait_for_lock)
    waiter.start()
    assert not waiter_done.wait(timeout=0.1)

    release.set()
    holder.join(timeout=5)
    waiter.join(timeout=5)

    assert waiter_done.is_set()
    assert len(locks) == 0
