"""Scoped symbol table that assigns global slots and stack offsets."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class SymbolType(Enum):
    VARIABLE = "var"
    FUNCTION = "func"
    PARAMETER = "param"


class DataType(Enum):
    INT = "int"
    VOID = "void"


BUILTIN_FUNCTIONS: tuple[tuple[str, DataType], ...] = (
    ("pinMode", DataType.VOID),
    ("digitalWrite", DataType.VOID),
    ("digitalRead", DataType.INT),
    ("analogWrite", DataType.VOID),
    ("analogRead", DataType.INT),
    ("delay", DataType.VOID),
    ("millis", DataType.INT),
    ("micros", DataType.INT),
    ("printf", DataType.VOID),
)


@dataclass
class Symbol:
    name: str
    symbol_type: SymbolType
    data_type: DataType
    scope_depth: int
    stack_offset: int = -1
    global_index: int = -1
    is_global: bool = field(init=False)

    def __post_init__(self) -> None:
        self.is_global = self.scope_depth == 0


class SymbolTable:
    """Symbols by nested scope; scope 0 holds globals and the built-in functions."""

    def __init__(self) -> None:
        self._symbols: list[Symbol] = []
        self.current_scope = 0
        self._next_global = 0
        self._stack_offset = 0
        for name, data_type in BUILTIN_FUNCTIONS:
            self.declare(name, SymbolType.FUNCTION, data_type)

    def enter_scope(self) -> None:
        """Open a nested scope; stack offsets carry on from the enclosing one."""
        self.current_scope += 1

    def exit_scope(self) -> None:
        """Drop the innermost scope and its symbols; a no-op at global scope."""
        if self.current_scope == 0:
            return
        self._symbols = [
            s for s in self._symbols if s.scope_depth < self.current_scope
        ]
        self.current_scope -= 1

    def declare(
        self, name: str, symbol_type: SymbolType, data_type: DataType
    ) -> Symbol:
        """Add a symbol to the current scope and give it storage.

        Raises ValueError if the name is already declared in this scope.
        """
        if any(
            s.name == name and s.scope_depth == self.current_scope
            for s in self._symbols
        ):
            raise ValueError(f"symbol already declared in this scope: {name}")
        symbol = Symbol(name, symbol_type, data_type, self.current_scope)
        if self.current_scope == 0:
            symbol.global_index = self.allocate_global()
        else:
            symbol.stack_offset = self.allocate_local()
        self._symbols.append(symbol)
        return symbol

    def lookup(self, name: str) -> Symbol | None:
        """The innermost visible symbol called ``name``, or None."""
        return next(
            (
                s
                for s in reversed(self._symbols)
                if s.name == name and s.scope_depth <= self.current_scope
            ),
            None,
        )

    def is_declared(self, name: str) -> bool:
        return self.lookup(name) is not None

    def allocate_global(self) -> int:
        index = self._next_global
        self._next_global += 1
        return index

    def allocate_local(self) -> int:
        offset = self._stack_offset
        self._stack_offset += 1
        return offset

    def reset_stack_offset(self) -> None:
        self._stack_offset = 0

    def format_symbols(self) -> str:
        """A readable listing of every symbol currently held."""
        lines = [f"Symbol Table (scope={self.current_scope}):"]
        for s in self._symbols:
            location = (
                f"globalIndex={s.global_index}"
                if s.is_global
                else f"stackOffset={s.stack_offset}"
            )
            lines.append(
                f"  {s.name} (scope={s.scope_depth}, type={s.symbol_type.value}, "
                f"datatype={s.data_type.value}, global={int(s.is_global)}, "
                f"{location})"
            )
        return "\n".join(lines) + "\n"

    def __len__(self) -> int:
        return len(self._symbols)