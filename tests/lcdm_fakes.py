"""In-memory stand-ins for a serial port and device replies."""

from collections import deque

RESPONSE_HEAD = bytes([0x01, 0x50, 0x02])
ETX = 0x03


def xor(data: bytes) -> int:
    chk = 0
    for b in data:
        chk ^= b
    return chk


def make_reply(command: int, payload: bytes = b"") -> bytes:
    """Device data frame: SOH ID STX <cmd echo> payload ETX XOR."""
    body = RESPONSE_HEAD + bytes([command]) + payload + bytes([ETX])
    return body + bytes([xor(body)])


class FakeSerial:
    """Scripted serial port: each read() pops the next chunk, b'' once drained."""

    def __init__(self, *chunks: bytes):
        self.chunks = deque(chunks)
        self.writes = []
        self.reads = 0
        self.is_open = True
        self.read_error = None
        self.write_error = None
        self.open_args = None

    def feed(self, *chunks: bytes) -> None:
        self.chunks.extend(chunks)

    @property
    def in_waiting(self) -> int:
        """Only the next scripted chunk counts as arrived."""
        return len(self.chunks[0]) if self.chunks else 0

    def read(self, size: int = 1) -> bytes:
        self.reads += 1
        if self.read_error is not None:
            raise self.read_error
        if not self.chunks:
            return b""
        chunk = self.chunks.popleft()
        if len(chunk) > size:
            self.chunks.appendleft(chunk[size:])
            chunk = chunk[:size]
        return chunk

    def write(self, data: bytes) -> int:
        if self.write_error is not None:
            raise self.write_error
        self.writes.append(bytes(data))
        return len(data)

    def reset_input_buffer(self) -> None:
        pass

    def close(self) -> None:
        self.is_open = False
