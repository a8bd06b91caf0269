# hypervm

A small stack-based virtual machine that runs 16-bit bytecode words (8-bit
opcode in the high byte, 8-bit immediate in the low byte) against a simulated
Arduino-style board. It comes with debounced button input on virtual time, a
minimal `printf`, and a compiler for a tiny subset of C.

It has no dependencies outside the standard library.

## Installation

```
pip install .
```

For running the tests:

```
pip install .[test]
pytest
```

## Modules

- `hypervm.semihosting` – `Semihost`, the console the other parts write
  debug output to (any text stream, `sys.stdout` by default), plus
  `format_hex` and `format_dec`. `Semihost.exit(code)` flushes the stream
  and raises `SemihostExit`.
- `hypervm.hal` – `Board`, a simulated board with memory-mapped GPIO
  registers, and the `PinMode`, `PinState` and `PinMapping` types.
- `hypervm.buttons` – `ButtonInput`, debounced button monitoring with an
  event queue of `ButtonEvent`s.
- `hypervm.vm` – `VirtualMachine`, the `Opcode` set, `encode` and the
  `VMError` family.
- `hypervm.symbol_table` – `SymbolTable`, the scoped table used by the
  compiler.
- `hypervm.compiler` – `Compiler`, `Instruction`, `CompilerOpcode`,
  `CompileError` and the `main` function behind `hypervm-compile`.

## Running bytecode

```python
import io
from hypervm.semihosting import Semihost
from hypervm.hal import Board
from hypervm.buttons import ButtonInput
from hypervm.vm import VirtualMachine, Opcode, encode

console = Semihost(io.StringIO())
board = Board(console)
buttons = ButtonInput(board)
vm = VirtualMachine(board, buttons, console)

vm.load_program([
    encode(Opcode.PUSH, 10),
    encode(Opcode.PUSH, 20),
    encode(Opcode.ADD, 0),
    encode(Opcode.HALT, 0),
])
cycles = vm.run(100)   # 4
print(vm.pop())        # 30
```

`run(max_cycles)` executes until `HALT`, the end of the program, or the
cycle budget, and returns the number of instructions executed. Every argument
of `VirtualMachine` is optional; when no `ButtonInput` is given one is
created on the board, which switches the board's digital reads to mock
inputs.

Faults are raised as subclasses of `VMError`: `StackOverflowError` (the
stack holds 1024 words), `StackUnderflowError`, `InvalidOpcodeError`,
`InvalidAddressError` (executing with no running program) and
`DivisionByZeroError`. Arithmetic wraps to 32 bits.

Some opcodes are lenient by design:

- The comparison opcodes (`EQ`…`GE` unsigned, `EQ_S`…`GE_S` signed) use 0
  for a missing operand, push 1 or 0, and set or clear `FLAG_ZERO` in
  `vm.flags`.
- `PIN_MODE` pops a mode and ignores pins above 50 or modes other than
  0, 1, 2.
- `DELAY` uses its immediate, or pops the delay when the immediate is 0.
- `MILLIS` and `MICROS` push the button system's virtual time
  (`buttons.time_ms`, and that times 1000).
- `PRINTF` pops an argument count (clamped to 8), then the arguments, and
  writes the formatted text to the console.

`CALL` and `RET` are named in `Opcode` but have no behaviour; executing them
raises `InvalidOpcodeError`.

### printf

`format_printf(format_addr, args)` renders `%d`, `%x`, `%c` and `%s`;
missing arguments print as `0`, `0`, `?` and `(null)`, and unknown
conversions are copied through. Format strings come from the built-in
`STRING_TABLE`, addressed from `STRING_TABLE_BASE` (0x8000) upwards; an
address past the table uses its last entry, and an address below the base
gives `Printf: Invalid format string`. Since an instruction's immediate is
only 8 bits, a `PRINTF` opcode always names an address below the base;
call `vm.printf` or `vm.format_printf` directly to use the table.

## The simulated board

`Board` maps Arduino pin numbers 0–13 to GPIO ports B, C and F and keeps the
register values in memory (`board.register(address)` reads one). It provides
`pin_mode`, `digital_write`, `digital_read`, `analog_write`, `analog_read`
and `delay`. `analog_write` sets the pin HIGH for values above 512;
`analog_read` returns fixed samples (256, 512, 768, 1023 for pins 0–3, 512
otherwise); `delay` only logs. Invalid pin numbers are reported on the
console and ignored.

Mock mode (`enable_mock_mode`, `set_mock_pin_state`,
`get_mock_pin_state`) makes `digital_read` return states set by tests,
starting HIGH for every pin.

## Buttons

`ButtonInput` watches up to four active-low pins (`monitor_pin` raises
`ButtonError` beyond that). Each `update()` advances virtual time by 1 ms and
samples the pins; a state that has held for 20 ms produces a press or
release event. The queue keeps the seven most recent events.

```python
buttons.monitor_pin(2)
buttons.mock_press(2)
buttons.update()
buttons.advance_time(25)
buttons.update()
buttons.pressed(2)        # True
buttons.get_event()       # ButtonEvent(pin=2, pressed=True, timestamp=26)
```

## Compiling

The compiler accepts global `int` declarations and functions without
parameters whose bodies contain local declarations, assignments, and calls
to `pinMode`, `digitalWrite`, `digitalRead`, `analogWrite`, `analogRead`,
`delay`, `millis`, `micros` and `printf`, with integer, string and variable
arguments.

```python
from hypervm.compiler import Compiler

compiler = Compiler()
compiler.compile("int ledPin; void blink() { digitalWrite(ledPin, 1); }")
print(compiler.format_symbol_table())
print(compiler.format_bytecode())
data = compiler.to_bytes()   # little-endian 16-bit words
```

`compile` raises `CompileError` for syntax errors (`exc.syntax` is true)
and for undefined variables, unknown functions or repeated declarations; its
`messages` list the reasons. Progress is logged through the `logging`
module under `hypervm.compiler`.

From the command line:

```
hypervm-compile program.c
```

This prints the source, the symbol table and the bytecode, and writes the
encoded instructions to `program.bin` next to the source file. The exit
status is 1 if the source cannot be read or fails to compile.

## What it does not do

- It does not drive real hardware; the board, its timing and its analog
  inputs are simulated.
- The compiler has no control flow, operators or function parameters, and
  its output uses its own numbering (`CompilerOpcode`: `HALT` is 0x09, and
  it emits `LOAD_GLOBAL`/`STORE_GLOBAL`/`LOAD_LOCAL`/`STORE_LOCAL`).
  `VirtualMachine` does not run that output as is: those load and store
  opcodes raise `InvalidOpcodeError` there.
- There is no command for running bytecode; use `VirtualMachine` from
  Python.