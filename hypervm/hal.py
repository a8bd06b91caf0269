"""Simulated Arduino-style GPIO layer on a register-mapped board."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from hypervm.semihosting import Semihost

PIN_13 = 13
PIN_2 = 2

GPIO_PORTA_BASE = 0x40004000
GPIO_PORTB_BASE = 0x40005000
GPIO_PORTC_BASE = 0x40006000
GPIO_PORTD_BASE = 0x40007000
GPIO_PORTE_BASE = 0x40024000
GPIO_PORTF_BASE = 0x40025000
GPIO_PORTG_BASE = 0x40026000

GPIO_DATA_OFFSET = 0x000
GPIO_DATA_MASK_OFFSET = 0x3FC
GPIO_DIR_OFFSET = 0x400
GPIO_DEN_OFFSET = 0x51C
GPIO_PUR_OFFSET = 0x510
GPIO_PDR_OFFSET = 0x514

SYSCTL_BASE = 0x400FE000
SYSCTL_RCGC2 = 0x108

_WORD_MASK = 0xFFFFFFFF


class PinMode(IntEnum):
    INPUT = 0
    OUTPUT = 1
    INPUT_PULLUP = 2


class PinState(IntEnum):
    LOW = 0
    HIGH = 1


@dataclass(frozen=True)
class PinMapping:
    """Where an Arduino pin number lives: its port and its bit within it."""

    port_base: int
    pin_mask: int
    initialized: bool = False


PIN_MAP: tuple[PinMapping, ...] = (
    *(PinMapping(GPIO_PORTB_BASE, 1 << bit) for bit in range(8)),
    *(PinMapping(GPIO_PORTC_BASE, 1 << bit) for bit in range(5)),
    PinMapping(GPIO_PORTF_BASE, 1 << 0),
)

_ANALOG_MOCK_VALUES = {0: 256, 1: 512, 2: 768, 3: 1023}
_ANALOG_DEFAULT = 512


class Board:
    """An LM3S6965-style board with memory-mapped GPIO registers."""

    def __init__(self, console: Semihost | None = None) -> None:
        self.console = console if console is not None else Semihost()
        self._registers: dict[int, int] = {}
        self._mock_states = [PinState.LOW] * len(PIN_MAP)
        self.mock_enabled = False

    # Register file -------------------------------------------------------

    def register(self, address: int) -> int:
        """Current value of the 32-bit register at ``address``."""
        return self._registers.get(address, 0)

    def _store(self, address: int, value: int) -> None:
        self._registers[address] = value & _WORD_MASK

    def _set_bits(self, address: int, bits: int) -> None:
        self._store(address, self.register(address) | bits)

    def _clear_bits(self, address: int, bits: int) -> None:
        self._store(address, self.register(address) & ~bits)

    @staticmethod
    def _data(port_base: int) -> int:
        return port_base + GPIO_DATA_OFFSET + GPIO_DATA_MASK_OFFSET

    # Low-level GPIO ------------------------------------------------------

    def gpio_init(self) -> None:
        self._set_bits(SYSCTL_BASE + SYSCTL_RCGC2, 0x7F)
        self.console.debug_print("GPIO HAL initialized")

    def port_enable(self, port_base: int) -> None:
        self._store(port_base + GPIO_DEN_OFFSET, 0xFF)

    def set_direction(self, port_base: int, pin_mask: int, output: bool) -> None:
        if output:
            self._set_bits(port_base + GPIO_DIR_OFFSET, pin_mask)
        else:
            self._clear_bits(port_base + GPIO_DIR_OFFSET, pin_mask)
            self._set_bits(port_base + GPIO_PUR_OFFSET, pin_mask)

    def set_pin(self, port_base: int, pin_mask: int) -> None:
        self._set_bits(self._data(port_base), pin_mask)

    def clear_pin(self, port_base: int, pin_mask: int) -> None:
        self._clear_bits(self._data(port_base), pin_mask)

    def get_pin(self, port_base: int, pin_mask: int) -> bool:
        return (self.register(self._data(port_base)) & pin_mask) != 0

    # Pin-level HAL -------------------------------------------------------

    def _mapping(self, pin: int) -> PinMapping | None:
        if not 0 <= pin < len(PIN_MAP):
            self.console.debug_print_dec("Invalid pin number", pin)
            return None
        return PIN_MAP[pin]

    def set_mode(self, pin: int, mode: int) -> None:
        info = self._mapping(pin)
        if info is None:
            return
        self.port_enable(info.port_base)
        if mode == PinMode.OUTPUT:
            self.set_direction(info.port_base, info.pin_mask, True)
            self.console.debug_print_dec("Pin configured as output", pin)
        elif mode in (PinMode.INPUT, PinMode.INPUT_PULLUP):
            self.set_direction(info.port_base, info.pin_mask, False)
            self.console.debug_print_dec("Pin configured as input", pin)

    def write(self, pin: int, state: int) -> None:
        info = self._mapping(pin)
        if info is None:
            return
        if state == PinState.HIGH:
            self.set_pin(info.port_base, info.pin_mask)
            self.console.debug_print_dec("Pin set HIGH", pin)
        else:
            self.clear_pin(info.port_base, info.pin_mask)
            self.console.debug_print_dec("Pin set LOW", pin)

    def read(self, pin: int) -> PinState:
        info = self._mapping(pin)
        if info is None:
            return PinState.LOW
        state = self.get_pin(info.port_base, info.pin_mask)
        self.console.debug_print_dec("Pin read", pin)
        self.console.debug_print_dec("State", 1 if state else 0)
        return PinState.HIGH if state else PinState.LOW

    # Mocked inputs -------------------------------------------------------

    def enable_mock_mode(self) -> None:
        """Serve digital reads from mock states, all starting HIGH (pulled up)."""
        self.mock_enabled = True
        self._mock_states = [PinState.HIGH] * len(PIN_MAP)
        self.console.debug_print("Mock mode enabled")

    def set_mock_pin_state(self, pin: int, state: int) -> None:
        if 0 <= pin < len(PIN_MAP):
            self._mock_states[pin] = PinState(state)
            self.console.debug_print_dec("Mock pin set", pin)
            self.console.debug_print_dec("State", int(state))

    def get_mock_pin_state(self, pin: int) -> PinState:
        if 0 <= pin < len(PIN_MAP):
            return self._mock_states[pin]
        return PinState.LOW

    # Arduino API ---------------------------------------------------------

    def pin_mode(self, pin: int, mode: int) -> None:
        self.set_mode(pin, mode)

    def digital_write(self, pin: int, state: int) -> None:
        self.write(pin, state)

    def digital_read(self, pin: int) -> PinState:
        if self.mock_enabled:
            return self.get_mock_pin_state(pin)
        return self.read(pin)

    def analog_write(self, pin: int, value: int) -> None:
        """Approximate PWM as a digital level: HIGH above mid-range."""
        value &= 0xFFFF
        self.digital_write(pin, PinState.HIGH if value > 512 else PinState.LOW)
        self.console.debug_print_dec("Analog write (simplified)", pin)
        self.console.debug_print_dec("Value", value)

    def analog_read(self, pin: int) -> int:
        """Return a fixed per-pin sample in the 10-bit ADC range."""
        self.console.debug_print_dec("Analog read (mock)", pin)
        return _ANALOG_MOCK_VALUES.get(pin, _ANALOG_DEFAULT)

    def delay(self, milliseconds: int) -> None:
        self.console.debug_print_dec("Delay complete (ms)", milliseconds)