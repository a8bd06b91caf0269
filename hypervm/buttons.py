"""Debounced button input with a small polled event queue and virtual time."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass

from hypervm.hal import Board, PinMode, PinState

GLOBAL_DEBOUNCE_MS = 20
MAX_MONITORED_PINS = 4
EVENT_QUEUE_SIZE = 8

_WORD_MASK = 0xFFFFFFFF
# One ring slot stays empty to tell a full queue from an empty one.
_QUEUE_CAPACITY = EVENT_QUEUE_SIZE - 1


class ButtonError(Exception):
    """Raised when the button system cannot take on a request."""


@dataclass
class ButtonState:
    current_state: PinState = PinState.LOW
    last_stable_state: PinState = PinState.LOW
    last_change_time: int = 0
    is_stable: bool = True


@dataclass(frozen=True)
class ButtonEvent:
    pin: int
    pressed: bool
    timestamp: int


class ButtonInput:
    """Monitors active-low buttons on a board and queues press/release events."""

    def __init__(self, board: Board) -> None:
        self.board = board
        self.time_ms = 0
        self._monitored: list[tuple[int, ButtonState]] = []
        self._events: deque[ButtonEvent] = deque()
        self.reset()

    def reset(self) -> None:
        """Forget all pins and events, rewind time and switch the board to mock inputs."""
        self._monitored.clear()
        self._events.clear()
        self.time_ms = 0
        self.board.enable_mock_mode()
        self.board.console.debug_print("Button system initialized")

    def monitor_pin(self, pin: int) -> None:
        if len(self._monitored) >= MAX_MONITORED_PINS:
            raise ButtonError(f"cannot monitor more than {MAX_MONITORED_PINS} pins")
        self.board.pin_mode(pin, PinMode.INPUT_PULLUP)
        current = self.board.digital_read(pin)
        self._monitored.append(
            (pin, ButtonState(current, current, self.time_ms, True))
        )
        self.board.console.debug_print_dec("Monitoring pin", pin)

    def _find(self, pin: int) -> ButtonState | None:
        return next((state for p, state in self._monitored if p == pin), None)

    def _add_event(self, pin: int, pressed: bool) -> None:
        if len(self._events) >= _QUEUE_CAPACITY:
            self._events.popleft()
            self.board.console.debug_print("WARNING: Event queue overflow")
        self._events.append(ButtonEvent(pin, pressed, self.time_ms))

    def update(self) -> None:
        """Advance time by one tick and sample every monitored pin."""
        self.time_ms = (self.time_ms + 1) & _WORD_MASK
        for pin, state in self._monitored:
            new_state = self.board.digital_read(pin)
            if new_state != state.current_state:
                state.current_state = new_state
                state.last_change_time = self.time_ms
                state.is_stable = False
                continue
            elapsed = (self.time_ms - state.last_change_time) & _WORD_MASK
            if state.is_stable or elapsed < GLOBAL_DEBOUNCE_MS:
                continue
            state.is_stable = True
            if state.current_state != state.last_stable_state:
                pressed = state.current_state == PinState.LOW
                self._add_event(pin, pressed)
                state.last_stable_state = state.current_state
                self.board.console.debug_print_dec(
                    "Button pressed" if pressed else "Button released", pin
                )

    def read_debounced(self, pin: int) -> PinState:
        """Last settled state of ``pin``; LOW for pins that are not monitored."""
        state = self._find(pin)
        if state is None:
            return PinState.LOW
        return state.current_state if state.is_stable else state.last_stable_state

    def pressed(self, pin: int) -> bool:
        """Whether a press event for ``pin`` is waiting in the queue."""
        return any(e.pin == pin and e.pressed for e in self._events)

    def released(self, pin: int) -> bool:
        """Whether a release event for ``pin`` is waiting in the queue."""
        return any(e.pin == pin and not e.pressed for e in self._events)

    def event_available(self) -> bool:
        return bool(self._events)

    def get_event(self) -> ButtonEvent:
        """Take the oldest event; an all-zero event when the queue is empty."""
        if self._events:
            return self._events.popleft()
        return ButtonEvent(0, False, 0)

    def advance_time(self, ms: int) -> None:
        self.time_ms = (self.time_ms + ms) & _WORD_MASK

    def mock_press(self, pin: int) -> None:
        self.mock_set_state(pin, PinState.LOW)
        self.board.console.debug_print_dec("Mock button press", pin)

    def mock_release(self, pin: int) -> None:
        self.mock_set_state(pin, PinState.HIGH)
        self.board.console.debug_print_dec("Mock button release", pin)

    def mock_set_state(self, pin: int, state: int) -> None:
        self.board.set_mock_pin_state(pin, state)
        self.board.console.debug_print_dec("Mock button state set", pin)
        self.board.console.debug_print_dec("State", int(state))