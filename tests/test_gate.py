"""
Tests for the concurrency gate: bound, scoped release, draining.
"""

from __future__ import annotations

import threading
import time

import pytest

from solana_ingestion.gate import ConcurrencyGate


def test_acquire_and_release_track_outstanding():
    gate = ConcurrencyGate(2)
    first = gate.acquire()
    second = gate.acquire()
    assert gate.outstanding == 2
    first.release()
    assert gate.outstanding == 1
    second.release()
    assert gate.outstanding == 0


def test_acquire_times_out_when_full():
    gate = ConcurrencyGate(1)
    ticket = gate.acquire()
    assert gate.acquire(timeout=0.05) is None
    ticket.release()
    assert gate.acquire(timeout=0.05) is not None


def test_release_is_idempotent():
    gate = ConcurrencyGate(1)
    ticket = gate.acquire()
    ticket.release()
    ticket.release()
    assert gate.outstanding == 0
    assert ticket.released


def test_ticket_released_when_worker_raises():
    gate = ConcurrencyGate(1)
    with pytest.raises(RuntimeError):
        with gate.acquire():
            raise RuntimeError("worker fault")
    assert gate.outstanding == 0


def test_rejects_non_positive_bound():
    with pytest.raises(ValueError):
        ConcurrencyGate(0)


def test_outstanding_never_exceeds_bound():
    gate = ConcurrencyGate(3)
    peak = {"value": 0}
    lock = threading.Lock()

    def worker(ticket):
        with ticket:
            with lock:
                peak["value"] = max(peak["value"], gate.outstanding)
            time.sleep(0.01)

    threads = []
    for _ in range(20):
        ticket = gate.acquire()
        thread = threading.Thread(target=worker, args=(ticket,))
        thread.start()
        threads.append(thread)
    for thread in threads:
        thread.join()

    assert peak["value"] <= 3
    assert gate.wait_until_idle(timeout=1.0)
    assert gate.outstanding == 0


def test_acquire_unblocks_on_release():
    gate = ConcurrencyGate(1)
    ticket = gate.acquire()
    acquired = threading.Event()

    def waiter():
        with gate.acquire():
            acquired.set()

    thread = threading.Thread(target=waiter)
    thread.start()
    assert not acquired.wait(0.05)
    ticket.release()
    assert acquired.wait(1.0)
    thread.join()
