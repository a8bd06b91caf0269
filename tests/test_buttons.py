import io

import pytest

from hypervm.buttons import (
    EVENT_QUEUE_SIZE,
    GLOBAL_DEBOUNCE_MS,
    MAX_MONITORED_PINS,
    ButtonError,
    ButtonEvent,
    ButtonInput,
)
from hypervm.hal import PIN_2, Board, PinState
from hypervm.semihosting import Semihost


@pytest.fixture
def stream():
    return io.StringIO()


@pytest.fixture
def buttons(stream):
    return ButtonInput(Board(Semihost(stream)))


def settle(buttons):
    buttons.update()
    buttons.advance_time(GLOBAL_DEBOUNCE_MS + 5)
    buttons.update()


def test_init_state(buttons):
    assert not buttons.event_available()
    assert buttons.time_ms == 0


def test_monitoring_reads_pullup_default(buttons):
    buttons.monitor_pin(PIN_2)
    assert buttons.read_debounced(PIN_2) == PinState.HIGH


def test_unmonitored_pin_reads_low(buttons):
    assert buttons.read_debounced(PIN_2) == PinState.LOW


def test_debouncing(buttons):
    buttons.monitor_pin(PIN_2)
    initial = buttons.read_debounced(PIN_2)
    for _ in range(5):
        buttons.mock_set_state(PIN_2, PinState.HIGH)
        buttons.update()
        buttons.mock_set_state(PIN_2, PinState.LOW)
        buttons.update()
    buttons.advance_time(GLOBAL_DEBOUNCE_MS - 5)
    buttons.update()
    assert buttons.read_debounced(PIN_2) == initial
    assert not buttons.event_available()

    buttons.advance_time(10)
    buttons.update()
    assert buttons.read_debounced(PIN_2) == PinState.LOW
    assert buttons.pressed(PIN_2)


def test_press_detection(buttons):
    buttons.monitor_pin(PIN_2)
    assert not buttons.pressed(PIN_2)
    buttons.mock_press(PIN_2)
    settle(buttons)
    assert buttons.pressed(PIN_2)
    assert not buttons.released(PIN_2)


def test_pressed_does_not_consume(buttons):
    buttons.monitor_pin(PIN_2)
    buttons.mock_press(PIN_2)
    settle(buttons)
    assert buttons.pressed(PIN_2)
    assert buttons.pressed(PIN_2)
    assert buttons.event_available()


def test_release_detection(buttons):
    buttons.monitor_pin(PIN_2)
    buttons.mock_press(PIN_2)
    settle(buttons)
    while buttons.event_available():
        buttons.get_event()
    buttons.mock_release(PIN_2)
    settle(buttons)
    assert buttons.released(PIN_2)
    assert not buttons.pressed(PIN_2)


def test_event_queue(buttons):
    buttons.monitor_pin(PIN_2)
    assert not buttons.event_available()
    buttons.mock_press(PIN_2)
    settle(buttons)
    assert buttons.event_available()
    event = buttons.get_event()
    assert event.pin == PIN_2
    assert event.pressed is True
    assert event.timestamp == buttons.time_ms
    assert not buttons.event_available()


def test_get_event_on_empty_queue(buttons):
    assert buttons.get_event() == ButtonEvent(0, False, 0)


def test_queue_overflow_drops_oldest(buttons, stream):
    buttons.monitor_pin(PIN_2)
    for index in range(EVENT_QUEUE_SIZE):
        if index % 2 == 0:
            buttons.mock_press(PIN_2)
        else:
            buttons.mock_release(PIN_2)
        settle(buttons)
    events = []
    while buttons.event_available():
        events.append(buttons.get_event())
    assert len(events) == EVENT_QUEUE_SIZE - 1
    assert events[0].pressed is False
    assert events[-1].pressed is False
    assert "WARNING: Event queue overflow\n" in stream.getvalue()


def test_too_many_monitored_pins(buttons):
    for pin in range(MAX_MONITORED_PINS):
        buttons.monitor_pin(pin)
    with pytest.raises(ButtonError):
        buttons.monitor_pin(MAX_MONITORED_PINS)


def test_virtual_timing(buttons):
    start = buttons.time_ms
    buttons.advance_time(100)
    advanced = buttons.time_ms
    assert advanced >= start + 100
    buttons.update()
    assert buttons.time_ms > advanced


def test_reset_forgets_pins_and_events(buttons):
    buttons.monitor_pin(PIN_2)
    buttons.mock_press(PIN_2)
    settle(buttons)
    buttons.reset()
    assert not buttons.event_available()
    assert buttons.time_ms == 0
    assert buttons.read_debounced(PIN_2) == PinState.LOW
    assert buttons.board.digital_read(PIN_2) == PinState.HIGH