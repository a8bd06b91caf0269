import io

import pytest

from hypervm.hal import (
    GPIO_DATA_MASK_OFFSET,
    GPIO_DATA_OFFSET,
    GPIO_DEN_OFFSET,
    GPIO_DIR_OFFSET,
    GPIO_PORTB_BASE,
    GPIO_PORTC_BASE,
    GPIO_PORTF_BASE,
    GPIO_PUR_OFFSET,
    PIN_2,
    PIN_13,
    PIN_MAP,
    SYSCTL_BASE,
    SYSCTL_RCGC2,
    Board,
    PinMapping,
    PinMode,
    PinState,
)
from hypervm.semihosting import Semihost, format_dec


@pytest.fixture
def stream():
    return io.StringIO()


@pytest.fixture
def board(stream):
    return Board(Semihost(stream))


def data_register(board, port_base):
    return board.register(port_base + GPIO_DATA_OFFSET + GPIO_DATA_MASK_OFFSET)


def test_gpio_init_enables_port_clocks(board, stream):
    board.gpio_init()
    assert board.register(SYSCTL_BASE + SYSCTL_RCGC2) & 0x7F == 0x7F
    assert "GPIO HAL initialized\n" in stream.getvalue()


def test_pin_map_layout():
    assert len(PIN_MAP) == 14
    assert PIN_MAP[PIN_2] == PinMapping(GPIO_PORTB_BASE, 1 << 2)
    assert PIN_MAP[8] == PinMapping(GPIO_PORTC_BASE, 1 << 0)
    assert PIN_MAP[PIN_13] == PinMapping(GPIO_PORTF_BASE, 1 << 0)


def test_pin_13_output_mode_configuration(board):
    board.pin_mode(PIN_13, PinMode.OUTPUT)
    assert board.register(GPIO_PORTF_BASE + GPIO_DEN_OFFSET) == 0xFF
    assert board.register(GPIO_PORTF_BASE + GPIO_DIR_OFFSET) & 1 == 1


def test_pin_2_input_mode_configuration(board):
    board.pin_mode(PIN_2, PinMode.OUTPUT)
    board.pin_mode(PIN_2, PinMode.INPUT_PULLUP)
    assert board.register(GPIO_PORTB_BASE + GPIO_DIR_OFFSET) & (1 << 2) == 0
    assert board.register(GPIO_PORTB_BASE + GPIO_PUR_OFFSET) & (1 << 2) == 1 << 2


def test_digital_write_high_and_low(board):
    board.pin_mode(PIN_13, PinMode.OUTPUT)
    board.digital_write(PIN_13, PinState.HIGH)
    assert data_register(board, GPIO_PORTF_BASE) & 1 == 1
    assert board.read(PIN_13) == PinState.HIGH
    board.digital_write(PIN_13, PinState.LOW)
    assert data_register(board, GPIO_PORTF_BASE) & 1 == 0
    assert board.read(PIN_13) == PinState.LOW


def test_write_only_touches_own_bit(board):
    board.digital_write(3, PinState.HIGH)
    board.digital_write(5, PinState.HIGH)
    board.digital_write(3, PinState.LOW)
    assert data_register(board, GPIO_PORTB_BASE) == 1 << 5


def test_digital_read_with_pullup_simulation_is_low(board):
    board.pin_mode(PIN_2, PinMode.INPUT_PULLUP)
    assert board.digital_read(PIN_2) == PinState.LOW


def test_analog_read_mock_values(board):
    assert board.analog_read(0) == 256
    assert board.analog_read(1) == 512
    assert board.analog_read(2) == 768
    assert board.analog_read(3) == 1023
    assert board.analog_read(7) == 512


@pytest.mark.parametrize(
    "value, expected",
    [(128, PinState.LOW), (512, PinState.LOW), (513, PinState.HIGH), (1023, PinState.HIGH)],
)
def test_analog_write_is_thresholded(board, value, expected):
    board.analog_write(PIN_13, value)
    assert board.read(PIN_13) == expected


def test_delay_reports_completion(board, stream):
    board.delay(5)
    assert "Delay complete (ms): " + format_dec(5) + "\n" in stream.getvalue()
    assert data_register(board, GPIO_PORTF_BASE) == 0


def test_invalid_pin_is_reported_and_ignored(board, stream):
    board.digital_write(20, PinState.HIGH)
    assert board.read(20) == PinState.LOW
    assert "Invalid pin number: 20\n" in stream.getvalue()
    assert data_register(board, GPIO_PORTB_BASE) == 0


def test_mock_mode_defaults_high(board):
    board.enable_mock_mode()
    assert all(board.digital_read(pin) == PinState.HIGH for pin in range(len(PIN_MAP)))


def test_mock_pin_state_drives_digital_read(board):
    board.enable_mock_mode()
    board.set_mock_pin_state(PIN_2, PinState.LOW)
    assert board.digital_read(PIN_2) == PinState.LOW
    assert board.get_mock_pin_state(PIN_2) == PinState.LOW
    assert board.digital_read(PIN_13) == PinState.HIGH


def test_mock_out_of_range_pin(board):
    board.enable_mock_mode()
    board.set_mock_pin_state(99, PinState.HIGH)
    assert board.get_mock_pin_state(99) == PinState.LOW