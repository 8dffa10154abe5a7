# LCDM/lcdm_decode.py
from dataclasses import dataclass
from typing import Dict, Optional

from .lcdm_errors import MalformedFrame

COUNT_ASCII = "ascii"
COUNT_BINARY = "binary"
COUNT_ENCODINGS = (COUNT_ASCII, COUNT_BINARY)


class StatusCode:
    """Device status byte values (open set; unknown bytes are passed through)."""
    GOOD                          = 0x30
    NORMAL_STOP                   = 0x31
    PICKUP_ERROR                  = 0x32
    UPPER_CHECK_SENSOR_JAM        = 0x33
    OVERFLOW_BILL                 = 0x34
    JAM_EXIT_OR_EJECT_SENSOR      = 0x35
    JAM_DIVERT_SENSOR             = 0x36
    UNDEFINED_COMMAND             = 0x37
    UPPER_BILL_END                = 0x38
    CHECK_EJECT_COUNT_MISMATCH    = 0x3A
    BILL_COUNT_ZERO_OR_OVERFLOW   = 0x3B
    DIVERT_TIMEOUT                = 0x3C
    BILL_COUNT_ERROR              = 0x3D
    SENSOR_ERROR                  = 0x3E
    REJECT_TRAY_NOT_RECOGNISED    = 0x3F
    LOWER_BILL_END                = 0x40
    MOTOR_STOP                    = 0x41
    TIMEOUT_CHECK_EJECT_SENSOR    = 0x42
    TIMEOUT_DIVERT_EJECT_SENSOR   = 0x43
    NO_UPPER_CASHBOX              = 0x45
    NO_LOWER_CASHBOX              = 0x46
    DISPENSING_TIMEOUT            = 0x47
    EJECT_SENSOR_JAM              = 0x48
    DIVERTER_OR_SOLENOID_ERROR    = 0x49
    BILLS_NOT_DISPENSED_DIVERTER  = 0x4A
    DIVERT_CHECK_COUNT_MISMATCH   = 0x4B
    LOWER_CHECK_SENSOR_JAM        = 0x4C
    EJECT_EXIT_COUNT_MISMATCH     = 0x4D
    REVERSE_JAM                   = 0x4E
    WRONG_CASHBOX                 = 0x4F
    TIMEOUT_CHECK_DIVERT_SENSOR   = 0x50


class CashboxStatus:
    NORMAL   = 0x30
    NEAR_END = 0x31


STATUS_DESCRIPTIONS: Dict[int, str] = {
    0x30: "Good",
    0x31: "Normal stop",
    0x32: "Pickup error",
    0x33: "JAM at upper check sensor",
    0x34: "Overflow bill",
    0x35: "JAM at exit or eject sensor",
    0x36: "JAM at divert sensor",
    0x37: "Undefined command",
    0x38: "Upper bill-end",
    0x3A: "Counting error (check sensor / eject sensor mismatch)",
    0x3B: "Bill count zero or overflow",
    0x3C: "Divert timeout",
    0x3D: "Bill count error",
    0x3E: "Sensor error",
    0x3F: "Reject tray is not recognized",
    0x40: "Lower bill-end",
    0x41: "Motor stop",
    0x42: "Timeout (check sensor to eject sensor)",
    0x43: "Timeout (divert sensor to eject sensor)",
    0x45: "Upper cassette is not recognized",
    0x46: "Lower cassette is not recognized",
    0x47: "Dispensing timeout",
    0x48: "JAM at eject sensor",
    0x49: "Diverter not operated normally or solenoid sensor error",
    0x4A: "Bills not dispensed, diverter abnormal",
    0x4B: "Counting error (divert sensor / check sensor mismatch)",
    0x4C: "JAM at lower check sensor",
    0x4D: "Counting error (eject sensor / exit sensor mismatch)",
    0x4E: "Reverse jam",
    0x4F: "Bill dispensed from wrong cassette",
    0x50: "Timeout (check sensor to divert sensor)",
}

# Only these two status bytes mean the last operation went through.
NON_FAULT_STATUSES = frozenset({StatusCode.GOOD, StatusCode.NORMAL_STOP})

CASHBOX_DESCRIPTIONS: Dict[int, str] = {
    0x30: "Normal",
    0x31: "Near end",
}


def describe_status(code: int) -> str:
    return STATUS_DESCRIPTIONS.get(code, f"Unknown status 0x{code:02X}")


def describe_cashbox(code: Optional[int]) -> str:
    if code is None:
        return "N/A"
    return CASHBOX_DESCRIPTIONS.get(code, f"Unknown cashbox status 0x{code:02X}")


# ---------- result records ----------
@dataclass(frozen=True)
class SensorStatus:
    check_sensor_1: bool = False
    check_sensor_2: bool = False
    check_sensor_3: bool = False
    check_sensor_4: bool = False
    divert_sensor_1: bool = False
    divert_sensor_2: bool = False
    eject_sensor: bool = False
    exit_sensor: bool = False
    solenoid_sensor: bool = False
    upper_near_end: bool = False
    lower_near_end: bool = False
    cashbox_upper: bool = False
    cashbox_lower: bool = False
    reject_tray: bool = False


@dataclass(frozen=True)
class StatusResult:
    status_code: int
    sensors: SensorStatus

    @property
    def description(self) -> str:
        return describe_status(self.status_code)

    @property
    def is_fault(self) -> bool:
        return self.status_code not in NON_FAULT_STATUSES


@dataclass(frozen=True)
class DispenseResult:
    status_code: int
    cashbox_status: int
    check_count: int
    exit_count: int

    @property
    def description(self) -> str:
        return describe_status(self.status_code)

    @property
    def is_fault(self) -> bool:
        return self.status_code not in NON_FAULT_STATUSES


@dataclass(frozen=True)
class DualDispenseResult:
    status_code: int
    cashbox_status: int
    upper_check_count: int
    upper_exit_count: int
    lower_check_count: int
    lower_exit_count: int

    @property
    def description(self) -> str:
        return describe_status(self.status_code)

    @property
    def is_fault(self) -> bool:
        return self.status_code not in NON_FAULT_STATUSES


@dataclass(frozen=True)
class RomVersion:
    model: str
    version: str


# ---------- count fields ----------
def encode_count(count: int, encoding: str = COUNT_ASCII) -> bytes:
    """
    Encode a bill count for a dispense request.

    ascii:  two decimal digits, 7 -> b"07" (0..99)
    binary: high nibble, low nibble, 0x2A -> b"\\x02\\x0A" (0..255)
    """
    count = int(count)
    if encoding == COUNT_ASCII:
        if not 0 <= count <= 99:
            raise ValueError(f"count must be 0..99 for ascii encoding, got {count}")
        return f"{count:02d}".encode("ascii")
    if encoding == COUNT_BINARY:
        if not 0 <= count <= 0xFF:
            raise ValueError(f"count must be 0..255 for binary encoding, got {count}")
        return bytes([(count >> 4) & 0x0F, count & 0x0F])
    raise ValueError(f"Unknown count encoding {encoding!r}")


def decode_count(pair: bytes, encoding: str = COUNT_ASCII) -> int:
    if len(pair) != 2:
        raise MalformedFrame(f"Count field needs 2 bytes, got {len(pair)}")
    if encoding == COUNT_ASCII:
        if not all(0x30 <= b <= 0x39 for b in pair):
            raise MalformedFrame(f"Count field is not decimal: {pair.hex(' ').upper()}")
        return (pair[0] - 0x30) * 10 + (pair[1] - 0x30)
    if encoding == COUNT_BINARY:
        if pair[0] > 0x0F or pair[1] > 0x0F:
            raise MalformedFrame(f"Count field is not a nibble pair: {pair.hex(' ').upper()}")
        return (pair[0] << 4) | pair[1]
    raise ValueError(f"Unknown count encoding {encoding!r}")


def _require(payload: bytes, n: int, what: str) -> None:
    if len(payload) < n:
        raise MalformedFrame(f"{what} payload too short: {len(payload)} < {n} bytes")


# ---------- per-command decoders ----------
def decode_status(payload: bytes) -> StatusResult:
    """
    Status reply: [status][sensor byte A][sensor byte B]

    byte A, bit 0..6: CHK1, CHK2, DIV1, DIV2, EJT, EXIT, upper near-end
    byte B, bit 0..6: SOL, upper cashbox, lower cashbox, CHK3, CHK4, lower near-end, reject tray
    """
    _require(payload, 3, "Status")
    a, b = payload[1], payload[2]
    sensors = SensorStatus(
        check_sensor_1=bool(a & 0b00000001),
        check_sensor_2=bool(a & 0b00000010),
        divert_sensor_1=bool(a & 0b00000100),
        divert_sensor_2=bool(a & 0b00001000),
        eject_sensor=bool(a & 0b00010000),
        exit_sensor=bool(a & 0b00100000),
        upper_near_end=bool(a & 0b01000000),
        solenoid_sensor=bool(b & 0b00000001),
        cashbox_upper=bool(b & 0b00000010),
        cashbox_lower=bool(b & 0b00000100),
        check_sensor_3=bool(b & 0b00001000),
        check_sensor_4=bool(b & 0b00010000),
        lower_near_end=bool(b & 0b00100000),
        reject_tray=bool(b & 0b01000000),
    )
    return StatusResult(status_code=payload[0], sensors=sensors)


def decode_dispense(payload: bytes, encoding: str = COUNT_ASCII) -> DispenseResult:
    """Single-cassette reply: [check count x2][exit count x2][status][cashbox]."""
    _require(payload, 6, "Dispense")
    return DispenseResult(
        status_code=payload[4],
        cashbox_status=payload[5],
        check_count=decode_count(payload[0:2], encoding),
        exit_count=decode_count(payload[2:4], encoding),
    )


def decode_dual_dispense(payload: bytes, encoding: str = COUNT_ASCII) -> DualDispenseResult:
    """Dual reply: [upper check][upper exit][lower check][lower exit] (2 bytes each), [status][cashbox]."""
    _require(payload, 10, "Dual dispense")
    return DualDispenseResult(
        status_code=payload[8],
        cashbox_status=payload[9],
        upper_check_count=decode_count(payload[0:2], encoding),
        upper_exit_count=decode_count(payload[2:4], encoding),
        lower_check_count=decode_count(payload[4:6], encoding),
        lower_exit_count=decode_count(payload[6:8], encoding),
    )


def decode_rom_version(payload: bytes) -> RomVersion:
    _require(payload, 8, "ROM version")
    return RomVersion(
        model=payload[2:4].decode("ascii", "replace"),
        version=payload[4:8].decode("ascii", "replace"),
    )
