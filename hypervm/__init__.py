"""Stack-based bytecode VM with a simulated board, button input and a small C-subset compiler."""

__version__ = "0.1.0"
__all__ = ["semihosting", "hal", "buttons", "vm", "symbol_table", "compiler"]