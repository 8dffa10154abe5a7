import json
import sys
from typing import Optional

# Defaults for the dispenser link; mirror the device's factory settings.
LCDM_DEFAULTS = {
    "port_name": "/dev/ttyUSB0",
    "baud_rate": 9600,
    "read_timeout": 5.0,
    "logging": False,
    "count_encoding": "ascii",
    "max_read_tries": 1050,
    "settle_delay": 0.2,
    "dual_dispense_command": 0x55,
}

SUPPORTED_BAUD_RATES = (9600, 19200)
COUNT_ENCODINGS = ("ascii", "binary")


class KioskConfig:
    """A simple class to load and manage dispenser configuration from a JSON file."""
    def __init__(self, config_path: Optional[str] = 'config.json', data: Optional[dict] = None):
        if data is None:
            try:
                with open(config_path, 'r') as f:
                    data = json.load(f)
            except (FileNotFoundError, json.JSONDecodeError) as e:
                print(f"Error: Could not load or parse {config_path}. {e}")
                print("Please ensure 'config.json' exists and is correctly formatted.")
                sys.exit(1)

        self.user_id = data.get('user_id')

        # ---- lcdm block ----
        lcdm = dict(LCDM_DEFAULTS)
        lcdm.update(data.get("lcdm") or {})

        # keep names close to JSON keys for clarity
        self.lcdm_port_name: str = lcdm.get("port_name")
        self.lcdm_baud_rate: int = int(lcdm.get("baud_rate"))
        self.lcdm_read_timeout: float = float(lcdm.get("read_timeout"))
        self.lcdm_logging: bool = bool(lcdm.get("logging"))
        self.lcdm_count_encoding: str = str(lcdm.get("count_encoding")).lower()
        self.lcdm_max_read_tries: int = int(lcdm.get("max_read_tries"))
        self.lcdm_settle_delay: float = float(lcdm.get("settle_delay"))
        self.lcdm_dual_dispense_command: int = _parse_byte(lcdm.get("dual_dispense_command"))

        if self.lcdm_baud_rate not in SUPPORTED_BAUD_RATES:
            print(f"Error: 'lcdm.baud_rate' must be one of {SUPPORTED_BAUD_RATES}, got {self.lcdm_baud_rate}.")
            sys.exit(1)
        if self.lcdm_count_encoding not in COUNT_ENCODINGS:
            print(f"Error: 'lcdm.count_encoding' must be one of {COUNT_ENCODINGS}.")
            sys.exit(1)
        if not self.lcdm_port_name:
            print("Error: 'lcdm.port_name' is required in config.json.")
            sys.exit(1)

    @classmethod
    def from_dict(cls, data: dict) -> "KioskConfig":
        return cls(config_path=None, data=data)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "lcdm": {
                "port_name": self.lcdm_port_name,
                "baud_rate": self.lcdm_baud_rate,
                "read_timeout": self.lcdm_read_timeout,
                "logging": self.lcdm_logging,
                "count_encoding": self.lcdm_count_encoding,
                "max_read_tries": self.lcdm_max_read_tries,
                "settle_delay": self.lcdm_settle_delay,
                "dual_dispense_command": self.lcdm_dual_dispense_command,
            },
        }


def _parse_byte(value) -> int:
    # JSON has no hex literals; accept "0x55" as well as 85
    if isinstance(value, str):
        return int(value, 0) & 0xFF
    return int(value) & 0xFF
