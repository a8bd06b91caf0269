"""Compiler from a small Arduino-flavoured C subset to 16-bit bytecode words."""

from __future__ import annotations

import logging
import re
import struct
import sys
from dataclasses import dataclass
from enum import IntEnum
from typing import Sequence, Union

from hypervm.symbol_table import DataType, SymbolTable, SymbolType

logger = logging.getLogger(__name__)


class CompilerOpcode(IntEnum):
    PUSH = 0x01
    POP = 0x02
    ADD = 0x03
    SUB = 0x04
    MUL = 0x05
    DIV = 0x06
    CALL = 0x07
    RET = 0x08
    HALT = 0x09
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
    LOAD_GLOBAL = 0x40
    STORE_GLOBAL = 0x41
    LOAD_LOCAL = 0x42
    STORE_LOCAL = 0x43


_ARDUINO_OPCODES = {
    "pinMode": CompilerOpcode.PIN_MODE,
    "digitalWrite": CompilerOpcode.DIGITAL_WRITE,
    "digitalRead": CompilerOpcode.DIGITAL_READ,
    "analogWrite": CompilerOpcode.ANALOG_WRITE,
    "analogRead": CompilerOpcode.ANALOG_READ,
    "delay": CompilerOpcode.DELAY,
    "millis": CompilerOpcode.MILLIS,
    "micros": CompilerOpcode.MICROS,
    "printf": CompilerOpcode.PRINTF,
}

_INT_MAX = 0x7FFFFFFF


@dataclass(frozen=True)
class Instruction:
    opcode: CompilerOpcode
    immediate: int = 0

    def encode(self) -> int:
        """The 16-bit word: opcode in the high byte, immediate in the low byte."""
        return (int(self.opcode) << 8) | (self.immediate & 0xFF)


class CompileError(Exception):
    """Raised when source text cannot be compiled; ``messages`` lists the reasons."""

    def __init__(self, messages: Sequence[str], syntax: bool = False) -> None:
        self.messages = list(messages)
        self.syntax = syntax
        super().__init__("; ".join(self.messages))


# Lexing ------------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"""
    (?P<skip>\s+|//[^\n]*|/\*.*?\*/)
    |(?P<string>"(?:\\.|[^"\\\n])*")
    |(?P<integer>\d+)
    |(?P<name>[A-Za-z_]\w*)
    |(?P<punct>[(){};,=])
    """,
    re.VERBOSE | re.DOTALL,
)
_KEYWORDS = frozenset({"int", "void"})


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    line: int


def _tokenize(source: str) -> list[_Token]:
    tokens: list[_Token] = []
    line = 1
    pos = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if match is None:
            raise CompileError(
                [f"line {line}: unexpected character {source[pos]!r}"], syntax=True
            )
        kind = match.lastgroup or "skip"
        text = match.group()
        if kind == "name" and text in _KEYWORDS:
            kind = "keyword"
        if kind != "skip":
            tokens.append(_Token(kind, text, line))
        line += text.count("\n")
        pos = match.end()
    tokens.append(_Token("eof", "", line))
    return tokens


# Syntax tree -------------------------------------------------------------


@dataclass(frozen=True)
class _Declaration:
    type_name: str
    name: str


@dataclass(frozen=True)
class _Assignment:
    name: str
    value: "_Expression"


@dataclass(frozen=True)
class _Call:
    name: str
    args: tuple["_Expression", ...]


@dataclass(frozen=True)
class _Name:
    name: str


@dataclass(frozen=True)
class _Integer:
    value: int


@dataclass(frozen=True)
class _String:
    text: str


_Expression = Union[_Assignment, _Call, _Name, _Integer, _String]


@dataclass(frozen=True)
class _ExpressionStatement:
    expression: _Expression | None


@dataclass(frozen=True)
class _FunctionDefinition:
    return_type: str
    name: str
    body: tuple[Union[_Declaration, _ExpressionStatement], ...]


class _Parser:
    def __init__(self, tokens: list[_Token]) -> None:
        self._tokens = tokens
        self._pos = 0

    def _peek(self) -> _Token:
        return self._tokens[self._pos]

    def _advance(self) -> _Token:
        token = self._peek()
        if token.kind != "eof":
            self._pos += 1
        return token

    def _at(self, kind: str, text: str | None = None) -> bool:
        token = self._peek()
        return token.kind == kind and (text is None or token.text == text)

    def _expect(self, kind: str, text: str | None = None) -> _Token:
        if not self._at(kind, text):
            token = self._peek()
            found = token.text or "end of input"
            raise CompileError(
                [f"line {token.line}: expected {text or kind}, found {found!r}"],
                syntax=True,
            )
        return self._advance()

    def parse_program(self) -> list[Union[_Declaration, _FunctionDefinition]]:
        items: list[Union[_Declaration, _FunctionDefinition]] = []
        while not self._at("eof"):
            items.append(self._top_level())
        return items

    def _top_level(self) -> Union[_Declaration, _FunctionDefinition]:
        type_name = self._expect("keyword").text
        name = self._expect("name").text
        if self._at("punct", "("):
            self._advance()
            self._expect("punct", ")")
            return _FunctionDefinition(type_name, name, self._compound())
        self._expect("punct", ";")
        return _Declaration(type_name, name)

    def _compound(self) -> tuple[Union[_Declaration, _ExpressionStatement], ...]:
        self._expect("punct", "{")
        statements: list[Union[_Declaration, _ExpressionStatement]] = []
        while not self._at("punct", "}"):
            if self._at("eof"):
                self._expect("punct", "}")
            statements.append(self._statement())
        self._advance()
        return tuple(statements)

    def _statement(self) -> Union[_Declaration, _ExpressionStatement]:
        if self._at("keyword"):
            type_name = self._advance().text
            name = self._expect("name").text
            self._expect("punct", ";")
            return _Declaration(type_name, name)
        if self._at("punct", ";"):
            self._advance()
            return _ExpressionStatement(None)
        expression = self._expression()
        self._expect("punct", ";")
        return _ExpressionStatement(expression)

    def _expression(self) -> _Expression:
        token = self._peek()
        if token.kind == "name":
            self._advance()
            if self._at("punct", "="):
                self._advance()
                return _Assignment(token.text, self._expression())
            if self._at("punct", "("):
                self._advance()
                args: list[_Expression] = []
                if not self._at("punct", ")"):
                    args.append(self._expression())
                    while self._at("punct", ","):
                        self._advance()
                        args.append(self._expression())
                self._expect("punct", ")")
                return _Call(token.text, tuple(args))
            return _Name(token.text)
        if token.kind == "integer":
            self._advance()
            value = int(token.text)
            if value > _INT_MAX:
                raise CompileError(
                    [f"line {token.line}: integer out of range: {token.text}"]
                )
            return _Integer(value)
        if token.kind == "string":
            self._advance()
            return _String(token.text[1:-1])
        self._expect("expression")
        raise AssertionError("unreachable")


# Code generation ---------------------------------------------------------


class Compiler:
    """Turns source text into bytecode, string literals and a symbol table."""

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self.symbol_table = SymbolTable()
        self.bytecode: list[Instruction] = []
        self.string_literals: list[str] = []
        self.errors: list[str] = []

    def compile(self, source: str) -> list[Instruction]:
        """Compile ``source``; raise CompileError on syntax or semantic errors.

        Semantic errors are gathered over the whole program and are also left
        in ``errors`` along with the partial bytecode.
        """
        self._reset()
        program = _Parser(_tokenize(source)).parse_program()
        logger.info("Compiling Arduino C program...")
        for item in program:
            self._generate(item)
        self._emit(CompilerOpcode.HALT)
        logger.info(
            "Compilation complete. Generated %d instructions.", len(self.bytecode)
        )
        if self.errors:
            raise CompileError(self.errors)
        return list(self.bytecode)

    def _report(self, message: str) -> None:
        self.errors.append(message)
        logger.error("Error: %s", message)

    def _emit(self, opcode: CompilerOpcode, immediate: int = 0) -> None:
        self.bytecode.append(Instruction(opcode, immediate & 0xFF))

    def _push_constant(self, value: int) -> None:
        if 0 <= value <= 0xFF:
            self._emit(CompilerOpcode.PUSH, value)
            return
        for shift in (0, 8, 16, 24):
            self._emit(CompilerOpcode.PUSH, (value >> shift) & 0xFF)

    def _load(self, name: str) -> None:
        symbol = self.symbol_table.lookup(name)
        if symbol is None:
            self._report(f"Undefined variable: {name}")
        elif symbol.is_global:
            self._emit(CompilerOpcode.LOAD_GLOBAL, symbol.global_index)
        else:
            self._emit(CompilerOpcode.LOAD_LOCAL, symbol.stack_offset)

    def _store(self, name: str) -> None:
        symbol = self.symbol_table.lookup(name)
        if symbol is None:
            self._report(f"Undefined variable: {name}")
        elif symbol.is_global:
            self._emit(CompilerOpcode.STORE_GLOBAL, symbol.global_index)
        else:
            self._emit(CompilerOpcode.STORE_LOCAL, symbol.stack_offset)

    def _arduino_opcode(self, name: str) -> CompilerOpcode:
        opcode = _ARDUINO_OPCODES.get(name)
        if opcode is None:
            self._report(f"Unknown Arduino function: {name}")
            return CompilerOpcode.HALT
        return opcode

    def _generate(self, node: object) -> None:
        match node:
            case _Declaration(type_name=type_name, name=name):
                data_type = DataType.INT if type_name == "int" else DataType.VOID
                try:
                    self.symbol_table.declare(name, SymbolType.VARIABLE, data_type)
                except ValueError:
                    self._report(f"Variable already declared: {name}")
                else:
                    logger.info("Declared variable: %s (%s)", name, type_name)
            case _FunctionDefinition(name=name, body=body):
                logger.info("Compiling function: %s", name)
                self.symbol_table.enter_scope()
                self.symbol_table.reset_stack_offset()
                for statement in body:
                    self._generate(statement)
                self.symbol_table.exit_scope()
            case _ExpressionStatement(expression=expression):
                if expression is not None:
                    self._generate(expression)
            case _Assignment(name=name, value=value):
                self._generate(value)
                self._store(name)
            case _Call(name=name, args=args):
                for arg in args:
                    self._generate(arg)
                self._emit(self._arduino_opcode(name))
                logger.info("Generated function call: %s", name)
            case _Name(name=name):
                self._load(name)
            case _Integer(value=value):
                self._push_constant(value)
            case _String(text=text):
                self.string_literals.append(text)
                self._push_constant(len(self.string_literals) - 1)

    # Results -------------------------------------------------------------

    def format_bytecode(self) -> str:
        """Listing of the generated instructions and string literals."""
        lines = ["", "Generated Bytecode:"]
        lines.extend(
            f"{i}: 0x{int(ins.opcode):x} {ins.immediate:x} "
            f"(encoded: 0x{ins.encode():x})"
            for i, ins in enumerate(self.bytecode)
        )
        if self.string_literals:
            lines.extend(["", "String Literals:"])
            lines.extend(f'{i}: "{s}"' for i, s in enumerate(self.string_literals))
        return "\n".join(lines) + "\n"

    def format_symbol_table(self) -> str:
        return self.symbol_table.format_symbols()

    def to_bytes(self) -> bytes:
        """The encoded instruction words, little-endian, two bytes each."""
        return b"".join(struct.pack("<H", ins.encode()) for ins in self.bytecode)


def main(argv: Sequence[str] | None = None) -> int:
    """Compile one source file and write its bytecode next to it as ``.bin``."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) != 1:
        print("Usage: hypervm-compile <source_file.c>", file=sys.stderr)
        return 1
    filename = args[0]
    try:
        with open(filename, encoding="utf-8") as handle:
            source = handle.read()
    except OSError:
        print(f"Error: Cannot open file {filename}", file=sys.stderr)
        return 1

    print(f"Compiling: {filename}")
    print(f"Source code:\n{source}")

    compiler = Compiler()
    try:
        compiler.compile(source)
    except CompileError as exc:
        if exc.syntax:
            for message in exc.messages:
                print(message, file=sys.stderr)
            print("Syntax errors found. Compilation failed.", file=sys.stderr)
        elif compiler.errors:
            print("Compilation errors found:", file=sys.stderr)
            for message in exc.messages:
                print(f"  {message}", file=sys.stderr)
        else:
            print(f"Compilation error: {exc}", file=sys.stderr)
        return 1

    print(compiler.format_symbol_table(), end="")
    print(compiler.format_bytecode(), end="")

    dot = filename.rfind(".")
    output = (filename[:dot] if dot >= 0 else filename) + ".bin"
    try:
        with open(output, "wb") as out:
            out.write(compiler.to_bytes())
    except OSError:
        pass
    else:
        print(f"Bytecode saved to: {output}")

    print("Compilation successful!")
    return 0