"""Stack-based bytecode machine with Arduino-style I/O opcodes."""

from __future__ import annotations

from enum import IntEnum
from typing import Callable, Iterable, Sequence

from hypervm.buttons import ButtonInput
from hypervm.hal import Board, PinMode, PinState
from hypervm.semihosting import Semihost

VM_MEMORY_SIZE = 0x2000
VM_STACK_SIZE = 0x1000
VM_HEAP_SIZE = 0x1000
VM_STACK_BASE = 0x20000000
VM_HEAP_BASE = VM_STACK_BASE + VM_STACK_SIZE
STACK_CAPACITY = VM_STACK_SIZE // 4

FLAG_ZERO = 0x01

STRING_TABLE_BASE = 0x8000
MAX_PRINTF_ARGS = 8
MAX_PIN_NUMBER = 50

_WORD_MASK = 0xFFFFFFFF

STRING_TABLE: tuple[str, ...] = (
    "Hello World",
    "Value: %d",
    "Char: %c",
    "Hex: %x",
    "Multiple: %d %c %x",
    "Test complete",
    "Printf working: %d",
    "String: %s",
    "Error in format",
)


class Opcode(IntEnum):
    NOP = 0x00
    PUSH = 0x01
    POP = 0x02
    ADD = 0x03
    SUB = 0x04
    MUL = 0x05
    DIV = 0x06
    CALL = 0x07
    RET = 0x08
    DIGITAL_WRITE = 0x10
    DIGITAL_READ = 0x11
    ANALOG_WRITE = 0x12
    ANALOG_READ = 0x13
    DELAY = 0x14
    BUTTON_PRESSED = 0x15
    BUTTON_RELEASED = 0x16
    PIN_MODE = 0x17
    PRINTF = 0x18
    MILLIS = 0x19
    MICROS = 0x1A
    EQ = 0x20
    NE = 0x21
    LT = 0x22
    GT = 0x23
    LE = 0x24
    GE = 0x25
    EQ_S = 0x26
    NE_S = 0x27
    LT_S = 0x28
    GT_S = 0x29
    LE_S = 0x2A
    GE_S = 0x2B
    HALT = 0xFF


class VMError(Exception):
    """Base class for faults raised while running bytecode."""


class StackOverflowError(VMError):
    pass


class StackUnderflowError(VMError):
    pass


class InvalidOpcodeError(VMError):
    pass


class InvalidAddressError(VMError):
    pass


class DivisionByZeroError(VMError):
    pass


def _signed(value: int) -> int:
    return value - (1 << 32) if value & 0x80000000 else value


_COMPARISONS: dict[Opcode, Callable[[int, int], bool]] = {
    Opcode.EQ: lambda a, b: a == b,
    Opcode.NE: lambda a, b: a != b,
    Opcode.LT: lambda a, b: a < b,
    Opcode.GT: lambda a, b: a > b,
    Opcode.LE: lambda a, b: a <= b,
    Opcode.GE: lambda a, b: a >= b,
    Opcode.EQ_S: lambda a, b: _signed(a) == _signed(b),
    Opcode.NE_S: lambda a, b: _signed(a) != _signed(b),
    Opcode.LT_S: lambda a, b: _signed(a) < _signed(b),
    Opcode.GT_S: lambda a, b: _signed(a) > _signed(b),
    Opcode.LE_S: lambda a, b: _signed(a) <= _signed(b),
    Opcode.GE_S: lambda a, b: _signed(a) >= _signed(b),
}


def encode(opcode: int, immediate: int = 0) -> int:
    """Pack an opcode and an 8-bit immediate into one 16-bit instruction word."""
    if not 0 <= opcode <= 0xFF:
        raise ValueError(f"opcode out of range: {opcode}")
    if not 0 <= immediate <= 0xFF:
        raise ValueError(f"immediate out of range: {immediate}")
    return (int(opcode) << 8) | immediate


def format_string(address: int) -> str | None:
    """Look up a string by address.

    Addresses from ``STRING_TABLE_BASE`` up index the built-in string table,
    falling back to its last entry; lower addresses name no readable string.
    """
    if address < STRING_TABLE_BASE:
        return None
    index = address - STRING_TABLE_BASE
    if index < len(STRING_TABLE):
        return STRING_TABLE[index]
    return STRING_TABLE[-1]


class VirtualMachine:
    """Executes 16-bit bytecode words (8-bit opcode, 8-bit immediate).

    Without ``buttons`` a button system is created on the board, which
    switches the board's digital reads to mock inputs.
    """

    def __init__(
        self,
        board: Board | None = None,
        buttons: ButtonInput | None = None,
        console: Semihost | None = None,
    ) -> None:
        if console is None:
            console = board.console if board is not None else Semihost()
        self.console = console
        self.board = board if board is not None else Board(console)
        self.buttons = buttons if buttons is not None else ButtonInput(self.board)
        self.stack: list[int] = []
        self.program: tuple[int, ...] = ()
        self.pc = 0
        self.running = False
        self.cycle_count = 0
        self.flags = 0
        self._handlers: dict[Opcode, Callable[[int], None]] = {
            Opcode.NOP: lambda imm: None,
            Opcode.PUSH: self.push,
            Opcode.POP: lambda imm: self.pop(),
            Opcode.ADD: lambda imm: self._binary(lambda a, b: a + b),
            Opcode.SUB: lambda imm: self._binary(lambda a, b: a - b),
            Opcode.MUL: lambda imm: self._binary(lambda a, b: a * b),
            Opcode.DIV: self._divide,
            Opcode.HALT: self._halt,
            Opcode.DIGITAL_WRITE: self._digital_write,
            Opcode.DIGITAL_READ: self._digital_read,
            Opcode.ANALOG_WRITE: self._analog_write,
            Opcode.ANALOG_READ: lambda imm: self.push(self.board.analog_read(imm)),
            Opcode.DELAY: self._delay,
            Opcode.BUTTON_PRESSED: lambda imm: self.push(int(self.buttons.pressed(imm))),
            Opcode.BUTTON_RELEASED: lambda imm: self.push(
                int(self.buttons.released(imm))
            ),
            Opcode.PIN_MODE: self._pin_mode,
            Opcode.MILLIS: lambda imm: self.push(self.buttons.time_ms),
            Opcode.MICROS: lambda imm: self.push(self.buttons.time_ms * 1000),
            Opcode.PRINTF: self._printf_op,
        }
        for opcode in _COMPARISONS:
            self._handlers[opcode] = self._comparison_handler(opcode)

    # Program and stack ---------------------------------------------------

    def load_program(self, program: Iterable[int] | None) -> None:
        """Load instruction words and start the machine at the first one."""
        if program is None:
            raise InvalidAddressError("no program given")
        self.program = tuple(word & 0xFFFF for word in program)
        self.pc = 0
        self.running = True

    def push(self, value: int) -> None:
        if len(self.stack) >= STACK_CAPACITY:
            raise StackOverflowError("stack overflow")
        self.stack.append(value & _WORD_MASK)

    def pop(self) -> int:
        if not self.stack:
            raise StackUnderflowError("stack underflow")
        return self.stack.pop()

    # Execution -----------------------------------------------------------

    def execute_instruction(self) -> None:
        """Fetch, decode and execute one instruction."""
        if not self.program or not self.running:
            raise InvalidAddressError("no running program")
        if self.pc >= len(self.program):
            self.running = False
            return
        word = self.program[self.pc]
        self.pc += 1
        self.cycle_count += 1
        raw_opcode, immediate = word >> 8, word & 0xFF
        try:
            handler = self._handlers[Opcode(raw_opcode)]
        except (ValueError, KeyError):
            raise InvalidOpcodeError(f"invalid opcode 0x{raw_opcode:02x}") from None
        handler(immediate)

    def run(self, max_cycles: int) -> int:
        """Run until halted, out of program, or ``max_cycles`` spent; return cycles used."""
        start = self.cycle_count
        while self.running and self.cycle_count - start < max_cycles:
            self.execute_instruction()
        return self.cycle_count - start

    # Opcode handlers -----------------------------------------------------

    def _binary(self, operation: Callable[[int, int], int]) -> None:
        b = self.pop()
        a = self.pop()
        self.push(operation(a, b))

    def _divide(self, immediate: int) -> None:
        b = self.pop()
        a = self.pop()
        if b == 0:
            raise DivisionByZeroError("division by zero")
        self.push(a // b)

    def _halt(self, immediate: int) -> None:
        self.running = False

    def _digital_write(self, immediate: int) -> None:
        state = self.pop()
        self.board.digital_write(immediate, PinState.HIGH if state else PinState.LOW)

    def _digital_read(self, immediate: int) -> None:
        state = self.board.digital_read(immediate)
        self.push(1 if state == PinState.HIGH else 0)

    def _analog_write(self, immediate: int) -> None:
        self.board.analog_write(immediate, self.pop() & 0xFFFF)

    def _delay(self, immediate: int) -> None:
        milliseconds = immediate if immediate else self.pop()
        self.board.delay(milliseconds)

    def _pin_mode(self, immediate: int) -> None:
        mode = self.pop()
        if immediate > MAX_PIN_NUMBER:
            self.console.debug_print_dec("Invalid pin number", immediate)
            return
        try:
            pin_mode = PinMode(mode)
        except ValueError:
            self.console.debug_print_dec("Invalid pin mode", mode)
            return
        self.board.pin_mode(immediate, pin_mode)

    def _printf_op(self, immediate: int) -> None:
        count = self.pop()
        if count > MAX_PRINTF_ARGS:
            self.console.debug_print_dec("Too many printf args", count)
            count = MAX_PRINTF_ARGS
        args = [0] * count
        for index in range(count):
            try:
                args[index] = self.pop()
            except StackUnderflowError:
                self.console.debug_print_dec("Printf arg pop failed at", index)
                break
        self.printf(immediate, args)

    def _comparison_handler(self, opcode: Opcode) -> Callable[[int], None]:
        def handler(immediate: int) -> None:
            self._compare(opcode)

        return handler

    def _compare(self, opcode: Opcode) -> None:
        try:
            b = self.pop()
        except StackUnderflowError:
            self.console.debug_print_dec(
                "Comparison: missing operand B, using default", 0
            )
            b = 0
        try:
            a = self.pop()
        except StackUnderflowError:
            self.console.debug_print_dec(
                "Comparison: missing operand A, using default", 0
            )
            a = 0
        result = _COMPARISONS[opcode](a, b)
        if result:
            self.flags |= FLAG_ZERO
        else:
            self.flags &= ~FLAG_ZERO
        self.push(1 if result else 0)

    # Formatted output ----------------------------------------------------

    def format_printf(self, format_addr: int, args: Sequence[int]) -> str:
        """Render the format string at ``format_addr`` with ``args``.

        Supports %d, %x, %c and %s; missing arguments are padded and unknown
        conversions are copied through.
        """
        template = format_string(format_addr)
        if template is None:
            return "Printf: Invalid format string"
        values = iter(args)
        out: list[str] = []
        chars = iter(template)
        for ch in chars:
            if ch != "%":
                out.append(ch)
                continue
            spec = next(chars, None)
            if spec is None:
                out.append("%")
                break
            if spec not in "dxcs":
                out.append("%" + spec)
                continue
            value = next(values, None)
            if spec == "d":
                out.append("0" if value is None else str(value & _WORD_MASK))
            elif spec == "x":
                out.append("0" if value is None else format(value & _WORD_MASK, "x"))
            elif spec == "c":
                out.append("?" if value is None else chr(value & 0xFF))
            else:
                text = None if value is None else format_string(value)
                out.append("(null)" if text is None else text)
        return "".join(out)

    def printf(self, format_addr: int, args: Sequence[int]) -> None:
        """Write the rendered format string to the console."""
        self.console.write_string(self.format_printf(format_addr, args))