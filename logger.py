import logging
import logging.handlers
import os
import json
from typing import Any

# Driver log; LCDM_LOG_FILE points it elsewhere (tests, read-only installs)
LOG_FILE = os.environ.get(
    "LCDM_LOG_FILE",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), 'lcdm.log'),
)

MAX_BYTES = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 3

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    handlers=[
        logging.handlers.RotatingFileHandler(
            LOG_FILE, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding='utf-8'
        ),
        logging.StreamHandler()
    ]
)

# pyserial is chatty at DEBUG on some platforms
logging.getLogger("serial").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    return logging.getLogger(name)


def log_json(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """
    Emit one single-line JSON record: {"event": ..., **fields}.

    Used for failed exchanges so a log scraper can pick out the command,
    the error type and the device's detail without parsing prose.
    """
    record = {"event": event}
    record.update(fields)
    logger.log(level, json.dumps(record, separators=(",", ":"), default=str))


def hex_bytes(data: bytes) -> str:
    """b'\\x04\\x50' -> '04 50' (wire traces)."""
    return bytes(data).hex(" ").upper()
