from __future__ import annotations

import threading

from solar_mirror.scheduler import PeriodicTrigger


def test_trigger_fires_repeatedly_and_survives_errors() -> None:
    calls: list[int] = []
    third = threading.Event()

    def fn() -> None:
        calls.append(1)
        if len(calls) >= 3:
            third.set()
        if len(calls) == 1:
            raise RuntimeError("first run fails")

    trigger = PeriodicTrigger("Test", 0.01, fn)
    trigger.start()
    assert third.wait(timeout=5)
    trigger.stop()

    st = trigger.status()
    assert st["running"] is False
    assert st["runs"] >= 3


def test_trigger_once_records_error() -> None:
    def boom() -> None:
        raise ValueError("nope")

    trigger = PeriodicTrigger("Test", 60, boom)
    trigger.trigger_once()
    assert trigger.status()["last_error"] == "nope"
