"""Host console used by the target for debug output and for ending a run."""

from __future__ import annotations

import sys
from typing import TextIO

SYS_OPEN = 0x01
SYS_CLOSE = 0x02
SYS_WRITEC = 0x03
SYS_WRITE0 = 0x04
SYS_WRITE = 0x05
SYS_READ = 0x06
SYS_READC = 0x07
SYS_ISERROR = 0x08
SYS_ISTTY = 0x09
SYS_SEEK = 0x0A
SYS_FLEN = 0x0C
SYS_TMPNAM = 0x0D
SYS_REMOVE = 0x0E
SYS_RENAME = 0x0F
SYS_CLOCK = 0x10
SYS_TIME = 0x11
SYS_SYSTEM = 0x12
SYS_ERRNO = 0x13
SYS_EXIT = 0x18

_WORD_MASK = 0xFFFFFFFF


class SemihostExit(Exception):
    """Raised when the target asks the host to end the run."""

    def __init__(self, code: int) -> None:
        super().__init__(f"target exited with code {code}")
        self.code = code


def format_hex(value: int) -> str:
    """Render a 32-bit word as ``0x`` followed by eight upper-case hex digits."""
    return f"0x{value & _WORD_MASK:08X}"


def format_dec(value: int) -> str:
    """Render a 32-bit word as an unsigned decimal number."""
    return str(value & _WORD_MASK)


class Semihost:
    """Writes characters, strings and numbers to a host text stream."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream if stream is not None else sys.stdout

    def write_char(self, c: str) -> None:
        self.stream.write(c)

    def write_string(self, text: str) -> None:
        self.stream.write(text)

    def write_hex(self, value: int) -> None:
        self.write_string(format_hex(value))

    def write_dec(self, value: int) -> None:
        self.write_string(format_dec(value))

    def exit(self, code: int) -> None:
        """Flush the stream and end the run with ``code``."""
        self.stream.flush()
        raise SemihostExit(code)

    def debug_print(self, text: str) -> None:
        self.write_string(text)
        self.write_char("\n")

    def debug_print_hex(self, prefix: str, value: int) -> None:
        self.write_string(prefix)
        self.write_string(": ")
        self.write_hex(value)
        self.write_char("\n")

    def debug_print_dec(self, prefix: str, value: int) -> None:
        self.write_string(prefix)
        self.write_string(": ")
        self.write_dec(value)
        self.write_char("\n")