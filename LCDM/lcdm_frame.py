# LCDM/lcdm_frame.py
"""
Link framing for LCDM dispensers.

Wire format
-----------
Host -> device:
    [0x04 EOT][0x50 ID][0x02 STX][cmd][payload...][0x03 ETX][XOR]
Device -> host:
    [control byte]                      0x06 ACK / 0x15 NACK / 0x04 EOT
    [0x01 SOH][0x50 ID][0x02 STX][cmd echo][payload...][0x03 ETX][XOR]
where XOR is every byte from the first marker through ETX folded together.

The data frame carries no length field. A read cycle ends as soon as the
second-to-last buffered byte is ETX, so a payload byte equal to 0x03 sitting
right before the tail of a partial read ends the frame early. Counts and
status bytes (0x30..0x50) never equal ETX, but status sensor bitmasks can;
a frame cut short that way fails checksum, marker or length checks rather
than being decoded.
"""
import time
from enum import IntEnum
from typing import Callable, Optional

import serial

from logger import get_logger, hex_bytes
from .lcdm_errors import (
    ChecksumMismatch,
    MalformedFrame,
    ReadExhausted,
    ResponseNotAcknowledged,
    TransportError,
)

logger = get_logger(__name__)

# === Framing markers ===
REQUEST_START  = 0x04  # EOT doubles as the request start marker
RESPONSE_START = 0x01  # SOH
DEVICE_ID      = 0x50  # "communication identify", fixed for single-drop links
TEXT_START     = 0x02  # STX
TEXT_END       = 0x03  # ETX

# === Link-level control bytes ===
ACK = 0x06
NACK = 0x15
EOT = 0x04

# === Read loop tuning ===
MAX_READ_TRIES   = 1050   # single bounded reads per cycle before giving up
SETTLE_DELAY_S   = 0.2    # pause after ACKing a data frame; the device needs it


class ControlByte(IntEnum):
    UNRECOGNIZED = 0x00
    ACK = 0x06
    NACK = 0x15
    EOT = 0x04


_CONTROL_BYTES = {
    ACK: ControlByte.ACK,
    NACK: ControlByte.NACK,
    EOT: ControlByte.EOT,
}


def xor_checksum(data: bytes) -> int:
    chk = 0
    for b in data:
        chk ^= b
    return chk


def build_request(command_code: int, *payload_chunks: bytes) -> bytes:
    """Assemble one request frame; payload chunks are emitted in order."""
    frame = bytearray([REQUEST_START, DEVICE_ID, TEXT_START, command_code & 0xFF])
    for chunk in payload_chunks:
        frame += bytes(chunk)
    frame.append(TEXT_END)
    frame.append(xor_checksum(frame))
    return bytes(frame)


def classify_control_byte(value: int) -> ControlByte:
    return _CONTROL_BYTES.get(value, ControlByte.UNRECOGNIZED)


def frame_complete(buf: bytes) -> bool:
    """Heuristic end-of-frame test: ETX sits right before the checksum byte."""
    return len(buf) > 2 and buf[-2] == TEXT_END


def parse_response_frame(buf: bytes) -> bytes:
    """
    Validate a complete response buffer and return its payload.

    Checks run in a fixed order: start/identify markers, checksum, then the
    text markers. The returned payload is everything after the echoed command
    byte and before ETX.
    """
    if len(buf) < 2 or buf[0] != RESPONSE_START or buf[1] != DEVICE_ID:
        raise MalformedFrame(f"Response format invalid: {hex_bytes(buf)}")

    received = buf[-1]
    body = bytes(buf[:-1])
    expected = xor_checksum(body)
    if received != expected:
        raise ChecksumMismatch(
            f"Response verification failed: checksum 0x{received:02X} != 0x{expected:02X}",
            expected=expected,
            received=received,
        )

    if len(body) < 3 or body[2] != TEXT_START or body[-1] != TEXT_END:
        raise MalformedFrame(f"Response format invalid: {hex_bytes(buf)}")

    return body[4:-1]


class FrameReader:
    """
    Reads control bytes and data frames from an open serial port.

    One reader serves one response cycle at a time. Bytes that arrive in the
    same read as the control byte are kept for the data frame of that cycle
    and dropped when the next cycle starts.
    """

    def __init__(self, port, *, max_read_tries: int = MAX_READ_TRIES,
                 settle_delay_s: float = SETTLE_DELAY_S,
                 sleep: Callable[[float], None] = time.sleep, verbose: bool = False):
        if max_read_tries < 1:
            raise ValueError("max_read_tries must be >= 1")
        self.port = port
        self.max_read_tries = max_read_tries
        self.settle_delay_s = settle_delay_s
        self.verbose = verbose
        self._sleep = sleep
        self._pending = bytearray()

    # ---------- public ----------
    def read_response(self) -> bytes:
        """Control byte, then (on ACK only) the validated data frame payload."""
        self._pending.clear()
        control, raw = self._read_control()
        if control is not ControlByte.ACK:
            self._pending.clear()
            raise ResponseNotAcknowledged(
                f"Response not ACK ({control.name}, 0x{raw:02X})", control=control, raw=raw
            )
        return self.read_data_frame()

    def read_control_byte(self) -> ControlByte:
        return self._read_control()[0]

    def read_data_frame(self) -> bytes:
        """Reassemble, validate and acknowledge one data frame."""
        buf = self._read_until(frame_complete, initial=self._pending)
        self._pending.clear()
        try:
            payload = parse_response_frame(buf)
        except MalformedFrame:
            logger.warning("<- malformed frame %s", hex_bytes(buf))
            raise
        except ChecksumMismatch:
            logger.warning("<- checksum mismatch %s", hex_bytes(buf))
            raise

        if self.verbose:
            logger.info("<- %s", hex_bytes(payload))

        self.write_control(ACK)
        self._settle()
        return payload

    def write_control(self, value: int) -> None:
        self._write(bytes([value]))

    # ---------- internals ----------
    def _read_control(self):
        buf = self._read_until(lambda b: len(b) >= 1)
        raw = buf[0]
        control = classify_control_byte(raw)
        if self.verbose:
            label = control.name if control is not ControlByte.UNRECOGNIZED else f"0x{raw:02X}"
            logger.info("<- %s", label)
        self._pending = bytearray(buf[1:])
        return control, raw

    def _read_until(self, done: Callable[[bytes], bool], initial: Optional[bytes] = None) -> bytearray:
        buf = bytearray(initial or b"")
        if buf and done(buf):
            return buf
        for _ in range(self.max_read_tries):
            buf += self._read_chunk()
            if done(buf):
                return buf
        logger.error("Read tries exceeded (%d reads, %d bytes buffered)", self.max_read_tries, len(buf))
        raise ReadExhausted("Reads tries exceeded", tries=self.max_read_tries)

    def _read_chunk(self) -> bytes:
        try:
            # read(n) blocks until n bytes or the timeout; ask only for what is buffered
            return self.port.read(max(1, self.port.in_waiting))
        except serial.SerialException as exc:
            raise TransportError(f"Serial read failed: {exc}") from exc

    def _write(self, data: bytes) -> None:
        try:
            self.port.write(data)
        except serial.SerialException as exc:
            raise TransportError(f"Serial write failed: {exc}") from exc

    def _settle(self) -> None:
        """Settling delay after ACKing a frame; the device drops commands sent sooner."""
        if self.settle_delay_s > 0:
            self._sleep(self.settle_delay_s)
