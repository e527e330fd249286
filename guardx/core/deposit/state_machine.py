"""
Deposit State Machine

Validates workflow state transitions, records them on the workflow
context, and notifies listeners.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from .errors import InvalidTransitionError
from .models import WorkflowContext, WorkflowEvent, WorkflowFailure, WorkflowState


# Listeners run synchronously inside the transition
TransitionListener = Callable[[WorkflowEvent], None]


class DepositStateMachine:
    """
    Manages deposit workflow state transitions.

    Features:
    - Validates transitions against the allowed transition map
    - Never revisits a state; FAILED is reachable from every non-terminal state
    - Records every transition as a ``WorkflowEvent`` in the context history
    - Notifies listeners of each event
    """

    # Define valid state transitions
    TRANSITIONS: Dict[WorkflowState, Set[WorkflowState]] = {
        WorkflowState.IDLE: {
            WorkflowState.VALIDATING,
            WorkflowState.FAILED,  # Cancelled before start
        },
        WorkflowState.VALIDATING: {
            WorkflowState.SWITCHING_NETWORK,
            WorkflowState.QUOTING,
            WorkflowState.SUBMITTING_SOURCE,  # Same-chain: no bridge quote
            WorkflowState.FAILED,
        },
        WorkflowState.SWITCHING_NETWORK: {
            WorkflowState.QUOTING,
            WorkflowState.SUBMITTING_SOURCE,
            WorkflowState.FAILED,
        },
        WorkflowState.QUOTING: {
            WorkflowState.SUBMITTING_SOURCE,
            WorkflowState.FAILED,
        },
        WorkflowState.SUBMITTING_SOURCE: {
            WorkflowState.AWAITING_SOURCE_CONFIRMATION,
            WorkflowState.FAILED,
        },
        WorkflowState.AWAITING_SOURCE_CONFIRMATION: {
            WorkflowState.COMPLETED,                   # Same-chain
            WorkflowState.AWAITING_BRIDGE_COMPLETION,  # Cross-chain
            WorkflowState.FAILED,
        },
        WorkflowState.AWAITING_BRIDGE_COMPLETION: {
            WorkflowState.SUBMITTING_DESTINATION,
            WorkflowState.FAILED,
        },
        WorkflowState.SUBMITTING_DESTINATION: {
            WorkflowState.AWAITING_DESTINATION_CONFIRMATION,
            WorkflowState.FAILED,
        },
        WorkflowState.AWAITING_DESTINATION_CONFIRMATION: {
            WorkflowState.COMPLETED,
            WorkflowState.FAILED,
        },
        WorkflowState.COMPLETED: set(),
        WorkflowState.FAILED: set(),
    }

    def __init__(
        self,
        context: WorkflowContext,
        logger: Optional[logging.Logger] = None,
    ):
        self.context = context
        self.logger = logger or logging.getLogger(__name__)
        self._listeners: List[TransitionListener] = []

    @property
    def current_state(self) -> WorkflowState:
        return self.context.state

    @property
    def is_terminal(self) -> bool:
        return self.context.is_terminal

    def can_transition_to(self, to_state: WorkflowState) -> bool:
        return to_state in self.TRANSITIONS.get(self.current_state, set())

    def get_allowed_transitions(self) -> Set[WorkflowState]:
        return self.TRANSITIONS.get(self.current_state, set())

    def add_listener(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: TransitionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def transition_to(
        self,
        to_state: WorkflowState,
        detail: Optional[Dict[str, Any]] = None,
        failure: Optional[WorkflowFailure] = None,
    ) -> WorkflowEvent:
        """
        Transition to a new state.

        Args:
            to_state: Target state
            detail: Extra data published with the event
            failure: Failure record, required context for FAILED

        Returns:
            WorkflowEvent record

        Raises:
            InvalidTransitionError: If transition is not allowed
        """
        from_state = self.current_state

        if not self.can_transition_to(to_state):
            raise InvalidTransitionError(
                from_state=from_state,
                to_state=to_state,
                message=f"Invalid transition from {from_state.value} to {to_state.value}. "
                        f"Allowed: {sorted(s.value for s in self.get_allowed_transitions())}",
            )

        event = WorkflowEvent(
            workflow_id=self.context.workflow_id,
            from_state=from_state,
            to_state=to_state,
            timestamp=datetime.now(timezone.utc),
            detail=detail or {},
            failure=failure,
        )

        # Update context
        self.context.state = to_state
        self.context.state_entered_at = event.timestamp
        self.context.history.append(event)
        if failure is not None:
            self.context.failure = failure
        if to_state.is_terminal:
            self.context.completed_at = event.timestamp

        if failure is not None:
            self.logger.warning(
                "Deposit %s: %s -> %s (%s: %s)",
                self.context.workflow_id,
                from_state.value,
                to_state.value,
                failure.reason.value,
                failure.message,
            )
        else:
            self.logger.info(
                "Deposit %s: %s -> %s", self.context.workflow_id, from_state.value, to_state.value
            )

        # Notify listeners
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                self.logger.error("Transition listener error: %s", e)

        return event

    def fail(self, failure: WorkflowFailure) -> WorkflowEvent:
        """Transition to FAILED with the given failure attached."""
        return self.transition_to(
            WorkflowState.FAILED,
            detail={"reason": failure.reason.value},
            failure=failure,
        )

    def complete(self, detail: Optional[Dict[str, Any]] = None) -> WorkflowEvent:
        """Mark the deposit as completed."""
        return self.transition_to(WorkflowState.COMPLETED, detail=detail)
