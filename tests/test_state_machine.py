"""Tests for readyState machine."""

import pytest

from evsource.connection.state_machine import (
    InvalidTransition,
    ReadyState,
    transition,
    validate_transition,
)


class TestReadyState:
    def test_numeric_values(self):
        assert ReadyState.CONNECTING == 0
        assert ReadyState.OPEN == 1
        assert ReadyState.CLOSED == 2


class TestValidTransitions:
    def test_connecting_to_open(self):
        validate_transition(ReadyState.CONNECTING, ReadyState.OPEN)

    def test_open_to_connecting(self):
        validate_transition(ReadyState.OPEN, ReadyState.CONNECTING)

    def test_connecting_to_connecting(self):
        validate_transition(ReadyState.CONNECTING, ReadyState.CONNECTING)

    def test_close_from_any_state(self):
        for state in ReadyState:
            validate_transition(state, ReadyState.CLOSED)


class TestInvalidTransitions:
    def test_closed_is_terminal(self):
        for state in (ReadyState.CONNECTING, ReadyState.OPEN):
            with pytest.raises(InvalidTransition):
                validate_transition(ReadyState.CLOSED, state)

    def test_open_to_open(self):
        with pytest.raises(InvalidTransition):
            validate_transition(ReadyState.OPEN, ReadyState.OPEN)

    def test_error_message(self):
        with pytest.raises(InvalidTransition, match="CLOSED → OPEN"):
            validate_transition(ReadyState.CLOSED, ReadyState.OPEN)


class TestTransition:
    def test_returns_new_state(self):
        result = transition(
            ReadyState.CONNECTING,
            ReadyState.OPEN,
            url="https://stream.test/events",
            trigger="response_ok",
        )
        assert result is ReadyState.OPEN

    def test_raises_on_invalid(self):
        with pytest.raises(InvalidTransition):
            transition(ReadyState.CLOSED, ReadyState.CONNECTING, url="https://stream.test/events")
