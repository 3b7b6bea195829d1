# tests/test_locks.py

from __future__ import annotations

import threading

from taskhub.core.locks import KeyedLocks


def test_locks_are_released_and_forgotten() -> None:
    locks = KeyedLocks()
    with locks.hold("a"):
        with locks.hold("a"):
            assert len(locks) == 1
        with locks.hold("b"):
            assert len(locks) == 2
    assert len(locks) == 0


def test_same_key_is_mutually_exclusive() -> None:
    locks = KeyedLocks()
    counter = {"n": 0, "max_inside": 0, "inside": 0}
    guard = threading.Lock()

    def work() -> None:
        for _ in range(200):
            with locks.hold("k"):
                with guard:
                    counter["inside"] += 1
                    counter["max_inside"] = max(counter["max_inside"], counter["inside"])
                counter["n"] += 1
                with guard:
                    counter["inside"] -= 1

    threads = [threading.Thread(target=work) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert counter["n"] == 800
    assert counter["max_inside"] == 1
    assert len(locks) == 0
