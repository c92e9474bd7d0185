"""
Finite state machine for deterministic dialog flow control.

Every turn walks a session through explicit transitions between the
dialog states. Two transitions apply from any non-terminal state: a
handoff request and session expiry. Terminal states accept nothing.

Usage:
    sm = DialogStateMachine(DialogState.IDLE)
    sm.transition(TransitionTrigger.MESSAGE_RECEIVED)
    assert sm.current_state == DialogState.AWAITING_INTENT
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from helpdesk.errors import InvalidTransitionError
from helpdesk.schemas.session_schema import TERMINAL_STATES, DialogState

logger = logging.getLogger(__name__)


class TransitionTrigger(str, Enum):
    """Events that cause state transitions."""
    MESSAGE_RECEIVED = "message_received"
    INTENT_CLASSIFIED = "intent_classified"
    CLASSIFIER_UNAVAILABLE = "classifier_unavailable"
    NEEDS_CONFIRMATION = "needs_confirmation"
    NO_MATCH = "no_match"
    SLOT_MISSING = "slot_missing"
    SLOT_PROVIDED = "slot_provided"
    SLOTS_COMPLETE = "slots_complete"
    USER_CONFIRMED = "user_confirmed"
    USER_REJECTED = "user_rejected"
    NEW_UTTERANCE = "new_utterance"
    TURN_COMPLETE = "turn_complete"
    HANDOFF_REQUESTED = "handoff_requested"
    HANDOFF_CONFIRMED = "handoff_confirmed"
    SESSION_EXPIRED = "session_expired"


@dataclass(frozen=True)
class Transition:
    """A single valid state transition; ``from_state=None`` matches any live state."""
    from_state: Optional[DialogState]
    to_state: DialogState
    trigger: TransitionTrigger


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: DialogState
    entered_at: datetime
    trigger: Optional[TransitionTrigger] = None


class DialogStateMachine:
    """
    Deterministic state machine controlling one session's turn.

    The machine starts from the session's persisted state; the dialog
    manager writes ``current_state`` back once the turn settles.
    """

    TRANSITIONS: list[Transition] = [
        # --- New turn ---
        Transition(DialogState.IDLE, DialogState.AWAITING_INTENT,
                   TransitionTrigger.MESSAGE_RECEIVED),

        # --- Classification ---
        Transition(DialogState.AWAITING_INTENT, DialogState.RESOLVING,
                   TransitionTrigger.INTENT_CLASSIFIED),
        Transition(DialogState.AWAITING_INTENT, DialogState.RESPONDING,
                   TransitionTrigger.CLASSIFIER_UNAVAILABLE),
        Transition(DialogState.AWAITING_INTENT, DialogState.RESOLVING,
                   TransitionTrigger.SLOT_PROVIDED),

        # --- Resolution ---
        Transition(DialogState.RESOLVING, DialogState.AWAITING_CONFIRMATION,
                   TransitionTrigger.NEEDS_CONFIRMATION),
        Transition(DialogState.RESOLVING, DialogState.RESPONDING,
                   TransitionTrigger.SLOTS_COMPLETE),
        Transition(DialogState.RESOLVING, DialogState.RESPONDING,
                   TransitionTrigger.NO_MATCH),
        Transition(DialogState.RESOLVING, DialogState.AWAITING_INTENT,
                   TransitionTrigger.SLOT_MISSING),

        # --- Disambiguation ---
        Transition(DialogState.AWAITING_CONFIRMATION, DialogState.RESOLVING,
                   TransitionTrigger.USER_CONFIRMED),
        Transition(DialogState.AWAITING_CONFIRMATION, DialogState.AWAITING_INTENT,
                   TransitionTrigger.USER_REJECTED),
        Transition(DialogState.AWAITING_CONFIRMATION, DialogState.AWAITING_INTENT,
                   TransitionTrigger.NEW_UTTERANCE),

        # --- Completion ---
        Transition(DialogState.RESPONDING, DialogState.IDLE,
                   TransitionTrigger.TURN_COMPLETE),

        # --- Handoff ---
        Transition(None, DialogState.HANDOFF_PENDING,
                   TransitionTrigger.HANDOFF_REQUESTED),
        Transition(DialogState.HANDOFF_PENDING, DialogState.CLOSED,
                   TransitionTrigger.HANDOFF_CONFIRMED),

        # --- Expiry ---
        Transition(None, DialogState.EXPIRED,
                   TransitionTrigger.SESSION_EXPIRED),
    ]

    def __init__(self, initial: DialogState = DialogState.IDLE) -> None:
        self._current_state = initial
        self._history: list[StateEntry] = [
            StateEntry(state=initial, entered_at=datetime.now(timezone.utc))
        ]

    @property
    def current_state(self) -> DialogState:
        return self._current_state

    def _matches(self, t: Transition, trigger: TransitionTrigger) -> bool:
        if t.trigger != trigger:
            return False
        if t.from_state is None:
            return self._current_state not in TERMINAL_STATES
        return t.from_state == self._current_state

    def transition(self, trigger: TransitionTrigger) -> DialogState:
        """
        Execute a state transition.

        Args:
            trigger: The event triggering the transition.

        Returns:
            The new dialog state.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if not self._matches(t, trigger):
                continue

            old_state = self._current_state
            self._current_state = t.to_state
            self._history.append(StateEntry(
                state=self._current_state,
                entered_at=datetime.now(timezone.utc),
                trigger=trigger,
            ))
            logger.debug(
                "State transition: %s -> %s (trigger: %s)",
                old_state.value, self._current_state.value, trigger.value,
            )
            return self._current_state

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_state.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def can_transition(self, trigger: TransitionTrigger) -> bool:
        return any(self._matches(t, trigger) for t in self.TRANSITIONS)

    def get_valid_triggers(self) -> list[TransitionTrigger]:
        """Return all triggers valid from the current state."""
        return [t.trigger for t in self.TRANSITIONS if self._matches(t, t.trigger)]

    def get_history(self) -> list[StateEntry]:
        """Return the full state transition history."""
        return list(self._history)

    def get_state_trace(self) -> list[str]:
        """Return ordered list of state names visited."""
        return [entry.state.value for entry in self._history]

    def is_terminal(self) -> bool:
        """Check if the conversation has reached a terminal state."""
        return self._current_state in TERMINAL_STATES
