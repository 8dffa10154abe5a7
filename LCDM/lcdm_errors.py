# LCDM/lcdm_errors.py
from typing import Optional


class LcdmError(Exception):
    """Base class for every failure raised by the LCDM link driver."""

    def __init__(self, msg: str) -> None:
        super().__init__(msg)
        self.error_msg = msg


class LinkClosed(LcdmError):
    """A command was attempted on a session that is not open."""


class TransportError(LcdmError):
    """The serial port failed to open, read or write. Never retried."""


class ReadExhausted(LcdmError):
    """The read loop hit its retry ceiling before a complete reply arrived."""

    def __init__(self, msg: str, tries: int) -> None:
        super().__init__(msg)
        self.tries = tries


class ResponseNotAcknowledged(LcdmError):
    """The device answered with NACK, EOT or an unrecognised control byte."""

    def __init__(self, msg: str, control=None, raw: Optional[int] = None) -> None:
        super().__init__(msg)
        self.control = control
        self.raw = raw


class MalformedFrame(LcdmError):
    """Start/identify/text markers are wrong, or the payload cannot be decoded."""


class ChecksumMismatch(LcdmError):
    """XOR checksum of the received frame does not match its trailing byte."""

    def __init__(self, msg: str, expected: int, received: int) -> None:
        super().__init__(msg)
        self.expected = expected
        self.received = received
