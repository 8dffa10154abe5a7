import pytest

from lcdm_fakes import FakeSerial
from LCDM.lcdm_core import LcdmDispenser


@pytest.fixture
def fake_serial():
    return FakeSerial()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_dispenser(fake_serial, sleeps):
    """Factory for dispensers wired to the fake port; not opened."""
    def _make(**kwargs):
        def factory(*args, **kw):
            fake_serial.open_args = (args, kw)
            fake_serial.is_open = True
            return fake_serial
        kwargs.setdefault("max_read_tries", 20)
        return LcdmDispenser("/dev/ttyFAKE", 9600, serial_factory=factory,
                             sleep=sleeps.append, **kwargs)
    return _make


@pytest.fixture
def dispenser(make_dispenser):
    d = make_dispenser().connect()
    yield d
    if d.is_open:
        d.close()
