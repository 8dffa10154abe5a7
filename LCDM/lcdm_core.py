# LCDM/lcdm_core.py
import time, serial, threading, logging
from typing import Any, Callable, Optional

from logger import get_logger, hex_bytes, log_json
from .lcdm_errors import LcdmError, LinkClosed, TransportError
from .lcdm_frame import ACK, NACK, MAX_READ_TRIES, SETTLE_DELAY_S, FrameReader, build_request
from .lcdm_decode import (
    COUNT_ASCII,
    COUNT_ENCODINGS,
    DispenseResult,
    DualDispenseResult,
    RomVersion,
    StatusResult,
    decode_dispense,
    decode_dual_dispense,
    decode_rom_version,
    decode_status,
    encode_count,
)

logger = get_logger(__name__)


class LcdmDispenser:
    """
    Synchronous client for LCDM bill dispensers.

    Design notes:
    - One command in flight at a time: every exchange is request -> control byte
      -> data frame -> our ACK -> settling delay, all under one session lock.
    - The class does *not* own a thread. Call it from your loop (Qt worker or CLI).
    - Errors are raised as `LcdmError` subclasses; `on_status` / `on_error`
      callbacks mirror them as human-readable strings for UI hooks.
    - Nothing is retried at command level; the only retries are the bounded
      reads inside `FrameReader`.
    """

    # === Commands (host -> device) ===
    CMD_STATUS          = 0x46  # Sensor snapshot + last status byte.
    CMD_RESET           = 0x44  # Purge the bill path / reset the mechanism.
    CMD_UPPER_DISPENSE  = 0x45  # Dispense N bills from the upper cassette.
    CMD_LOWER_DISPENSE  = 0x55  # Dispense N bills from the lower cassette.
    CMD_DUAL_DISPENSE   = 0x55  # Upper + lower in one go; told apart from LOWER only by payload length.
    CMD_ROM_VERSION     = 0x47  # Model code + firmware version.

    SUPPORTED_BAUD_RATES = (9600, 19200)
    DEFAULT_TIMEOUT_S = 5.0

    def __init__(self, port: str, baud: int = 9600, *, timeout: float = DEFAULT_TIMEOUT_S,
                 verbose: bool = False, count_encoding: str = COUNT_ASCII,
                 max_read_tries: int = MAX_READ_TRIES, settle_delay_s: float = SETTLE_DELAY_S,
                 dual_dispense_command: int = CMD_DUAL_DISPENSE,
                 serial_factory: Callable[..., serial.Serial] = serial.Serial,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Bind a dispenser to a serial port. Nothing is opened until `connect()`.

        Parameters
        ----------
        port : str
            OS serial device name (e.g. 'COM4' or '/dev/ttyUSB0').
        baud : int, default 9600
            9600 or 19200; the device is strapped to one of them.
        timeout : float
            Per-read timeout in seconds. Bounds one read, not the whole reply.
        verbose : bool
            Log every outgoing frame, control byte and payload.
        count_encoding : "ascii" | "binary"
            How dispense counts travel on the wire (see lcdm_decode.encode_count).
        serial_factory, sleep
            Injection points for tests; default to pyserial and time.sleep.
        """
        if baud not in self.SUPPORTED_BAUD_RATES:
            raise ValueError(f"Unsupported baud rate {baud}; use one of {self.SUPPORTED_BAUD_RATES}")
        if count_encoding not in COUNT_ENCODINGS:
            raise ValueError(f"Unknown count encoding {count_encoding!r}")

        # --- Connection descriptor ---
        self.port = port
        self.baud = baud
        self.timeout = timeout
        self.verbose = verbose

        # --- Protocol options ---
        self.count_encoding = count_encoding
        self.max_read_tries = max_read_tries
        self.settle_delay_s = settle_delay_s
        self.dual_dispense_command = dual_dispense_command & 0xFF

        self._serial_factory = serial_factory
        self._sleep = sleep

        # Created in open(), released in close().
        self.serial_port: Optional[serial.Serial] = None
        self._reader: Optional[FrameReader] = None
        self._open = False

        # Guards the open/closed state and keeps exchanges from interleaving.
        self._lock = threading.RLock()

        self.on_status: Optional[Callable[[str], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None

    @classmethod
    def from_config(cls, cfg, **overrides) -> "LcdmDispenser":
        """Build from a KioskConfig `lcdm` block; keyword overrides win."""
        kwargs = dict(
            timeout=cfg.lcdm_read_timeout,
            verbose=cfg.lcdm_logging,
            count_encoding=cfg.lcdm_count_encoding,
            max_read_tries=cfg.lcdm_max_read_tries,
            settle_delay_s=cfg.lcdm_settle_delay,
            dual_dispense_command=cfg.lcdm_dual_dispense_command,
        )
        port = overrides.pop("port", None) or cfg.lcdm_port_name
        baud = overrides.pop("baud", None) or cfg.lcdm_baud_rate
        kwargs.update(overrides)
        return cls(port, baud, **kwargs)

    # ---------- session lifecycle ----------
    @property
    def is_open(self) -> bool:
        return self._open

    def connect(self) -> "LcdmDispenser":
        """Open the link for the first time (same as `open()`)."""
        return self.open()

    def open(self) -> "LcdmDispenser":
        """
        Open the serial port (8N1) and bind a frame reader to it.

        Raises `LcdmError` if already open, `TransportError` if the port
        cannot be opened.
        """
        with self._lock:
            if self._open:
                raise LcdmError("port already opened")
            try:
                port = self._serial_factory(
                    self.port,
                    self.baud,
                    bytesize=serial.EIGHTBITS,
                    parity=serial.PARITY_NONE,
                    stopbits=serial.STOPBITS_ONE,
                    timeout=self.timeout,
                    write_timeout=self.timeout,
                )
            except (serial.SerialException, ValueError) as exc:
                self._error(f"Error connecting to {self.port}: {exc}")
                raise TransportError(f"Error connecting to {self.port}: {exc}") from exc

            # Drop anything left over from a previous session before the first command.
            try:
                port.reset_input_buffer()
            except serial.SerialException as exc:
                logger.debug("Input buffer reset not supported on %s: %s", self.port, exc)

            self.serial_port = port
            self._reader = FrameReader(
                port,
                max_read_tries=self.max_read_tries,
                settle_delay_s=self.settle_delay_s,
                sleep=self._sleep,
                verbose=self.verbose,
            )
            self._open = True
            self._status(f"Connected to {self.port} @ {self.baud} bps")
            return self

    def close(self) -> None:
        with self._lock:
            if not self._open:
                raise LinkClosed("port not opened")
            port = self.serial_port
            self._open = False
            self._reader = None
            self.serial_port = None
            try:
                port.close()
            except serial.SerialException as exc:
                raise TransportError(f"Error closing {self.port}: {exc}") from exc
            self._status("Disconnected.")

    def __enter__(self) -> "LcdmDispenser":
        if not self._open:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._open:
            self.close()

    # ---------- commands ----------
    def status(self) -> StatusResult:
        """Query the status byte and the 14 sensor flags."""
        return self._transact(self.CMD_STATUS, decode=decode_status)

    def reset(self) -> None:
        """Reset the mechanism; succeeds once the device returns a valid frame."""
        self._transact(self.CMD_RESET)

    def upper_dispense(self, count: int) -> DispenseResult:
        data = encode_count(count, self.count_encoding)
        return self._transact(self.CMD_UPPER_DISPENSE, data, decode=self._decode_dispense)

    def lower_dispense(self, count: int) -> DispenseResult:
        data = encode_count(count, self.count_encoding)
        return self._transact(self.CMD_LOWER_DISPENSE, data, decode=self._decode_dispense)

    def dispense(self, upper_count: int, lower_count: int) -> DualDispenseResult:
        """Dispense from both cassettes in one command."""
        upper = encode_count(upper_count, self.count_encoding)
        lower = encode_count(lower_count, self.count_encoding)
        return self._transact(self.dual_dispense_command, upper, lower,
                              decode=lambda p: decode_dual_dispense(p, self.count_encoding))

    def rom_version(self) -> RomVersion:
        return self._transact(self.CMD_ROM_VERSION, decode=decode_rom_version)

    def ack(self) -> None:
        """Write a bare ACK byte."""
        self._write_control(ACK)

    def nack(self) -> None:
        """Write a bare NACK byte."""
        self._write_control(NACK)

    # ---------- internals ----------
    def _transact(self, command: int, *payload: bytes,
                  decode: Optional[Callable[[bytes], Any]] = None):
        """
        Send one request, read the reply and run `decode` on its payload.

        Decoding happens inside the exchange so a payload that frames fine but
        does not decode is reported like any other failed command. Without a
        decoder the reply only confirms the command and `None` is returned.
        """
        with self._lock:
            self._ensure_open()
            packet = build_request(command, *payload)
            if self.verbose:
                logger.info("-> %s", hex_bytes(packet))
            try:
                self._write(packet)
                reply = self._reader.read_response()
                return decode(reply) if decode else None
            except LcdmError as exc:
                log_json(logger, logging.WARNING, "command_failed",
                         command=f"0x{command:02X}", error=type(exc).__name__, detail=str(exc))
                self._error(f"Command 0x{command:02X} failed: {exc}")
                raise

    def _decode_dispense(self, payload: bytes) -> DispenseResult:
        return decode_dispense(payload, self.count_encoding)

    def _write_control(self, value: int) -> None:
        with self._lock:
            self._ensure_open()
            self._reader.write_control(value)

    def _write(self, data: bytes) -> None:
        try:
            self.serial_port.write(data)
        except serial.SerialException as exc:
            raise TransportError(f"Serial write failed: {exc}") from exc

    def _ensure_open(self) -> None:
        if not self._open:
            raise LinkClosed("serial port is closed")

    # --- small helpers ---
    def _status(self, msg: str):
        logger.info(msg)
        if self.on_status:
            self.on_status(msg)

    def _error(self, msg: str):
        if self.on_error:
            self.on_error(msg)
