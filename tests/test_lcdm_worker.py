"""Tests for the Qt worker: slots on the calling thread, start/stop on a QThread."""

import time

import pytest
import serial

PySide6 = pytest.importorskip("PySide6")
from PySide6.QtCore import QCoreApplication  # noqa: E402

from lcdm_fakes import make_reply  # noqa: E402
from LCDM.lcdm_core import LcdmDispenser  # noqa: E402
from LCDM.lcdm_worker import LcdmWorker  # noqa: E402


@pytest.fixture(scope="module")
def qapp():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def worker(qapp, dispenser):
    w = LcdmWorker(dispenser)
    w.got = {"status": [], "dispensed": [], "version": [], "error": [], "reset": [], "stopped": []}
    w.status.connect(w.got["status"].append)
    w.dispensed.connect(w.got["dispensed"].append)
    w.version.connect(w.got["version"].append)
    w.error.connect(w.got["error"].append)
    w.resetDone.connect(lambda: w.got["reset"].append(True))
    w.stopped.connect(lambda: w.got["stopped"].append(True))
    return w


def test_status_signal(worker, fake_serial):
    fake_serial.feed(b"\x06", make_reply(0x46, bytes([0x30, 0x00, 0x00])))
    worker.request_status()
    assert len(worker.got["status"]) == 1
    assert worker.got["status"][0].status_code == 0x30
    assert worker.got["error"] == []


def test_dispense_signals(worker, fake_serial):
    fake_serial.feed(b"\x06", make_reply(0x45, b"0303" + bytes([0x30, 0x30])))
    worker.dispense_upper(3)
    fake_serial.feed(b"\x06", make_reply(0x55, b"01010101" + bytes([0x30, 0x30])))
    worker.dispense(1, 1)
    assert worker.got["dispensed"][0].exit_count == 3
    assert worker.got["dispensed"][1].lower_exit_count == 1


def test_version_and_reset(worker, fake_serial):
    fake_serial.feed(b"\x06", make_reply(0x47, b"\x00\x00B20101"))
    worker.request_version()
    fake_serial.feed(b"\x06", make_reply(0x44))
    worker.reset()
    assert worker.got["version"][0].model == "B2"
    assert worker.got["reset"] == [True]


def test_failure_goes_to_error_signal_without_retry(worker, fake_serial):
    fake_serial.feed(b"\x04")
    worker.dispense_lower(2)
    assert worker.got["dispensed"] == []
    assert len(worker.got["error"]) == 1
    assert "lower dispense failed" in worker.got["error"][0]
    assert len(fake_serial.writes) == 1


def test_stop_closes_dispenser(worker, dispenser):
    worker.stop()
    assert not dispenser.is_open
    assert worker.got["stopped"] == [True]


def _wait_for(qapp, cond, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not cond() and time.monotonic() < deadline:
        qapp.processEvents()
        time.sleep(0.01)
    return cond()


def _record(w):
    got = {"started": [], "stopped": [], "error": []}
    w.started.connect(lambda: got["started"].append(True))
    w.stopped.connect(lambda: got["stopped"].append(True))
    w.error.connect(got["error"].append)
    return got


def test_start_connects_on_worker_thread_and_stop_joins_it(qapp, make_dispenser):
    d = make_dispenser()
    w = LcdmWorker(d)
    got = _record(w)

    w.start()
    assert _wait_for(qapp, lambda: got["started"])
    assert d.is_open
    thread = w._thread
    assert thread.isRunning()

    w.stop()
    assert _wait_for(qapp, lambda: got["stopped"])
    assert not d.is_open
    assert not thread.isRunning()
    assert w._thread is None
    assert got["error"] == []


def test_failed_start_stops_the_thread(qapp):
    def boom(*args, **kwargs):
        raise serial.SerialException("could not open port")

    w = LcdmWorker(LcdmDispenser("/dev/nothing", serial_factory=boom))
    got = _record(w)

    w.start()
    assert _wait_for(qapp, lambda: got["stopped"])
    assert w._thread.wait(2000)
    assert not w._thread.isRunning()
    assert got["started"] == []
    assert len(got["error"]) == 1
    assert "start failed" in got["error"][0]
    assert w.thread() == qapp.thread()
