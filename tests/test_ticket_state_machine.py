import pytest

from ticketdesk.core.errors import InvalidTransitionError
from ticketdesk.tickets.state import TicketStateMachine, TicketStatus


def test_ticket_state_machine_allows_expected_transitions():
    assert TicketStateMachine.can_transition(TicketStatus.NOT_STARTED, TicketStatus.IN_PROGRESS)
    assert TicketStateMachine.can_transition(TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED)
    assert TicketStateMachine.can_transition(TicketStatus.IN_PROGRESS, TicketStatus.INVALID)


@pytest.mark.parametrize(
    "current,target",
    [
        (TicketStatus.NOT_STARTED, TicketStatus.RESOLVED),
        (TicketStatus.NOT_STARTED, TicketStatus.INVALID),
        (TicketStatus.IN_PROGRESS, TicketStatus.NOT_STARTED),
        (TicketStatus.RESOLVED, TicketStatus.IN_PROGRESS),
        (TicketStatus.RESOLVED, TicketStatus.INVALID),
        (TicketStatus.INVALID, TicketStatus.NOT_STARTED),
    ],
)
def test_ticket_state_machine_blocks_invalid_transitions(current, target):
    assert not TicketStateMachine.can_transition(current, target)
    with pytest.raises(InvalidTransitionError):
        TicketStateMachine.assert_transition(current, target)


def test_transition_to_current_status_is_rejected():
    with pytest.raises(InvalidTransitionError, match="already"):
        TicketStateMachine.assert_transition(TicketStatus.IN_PROGRESS, TicketStatus.IN_PROGRESS)


def test_terminal_states():
    assert TicketStateMachine.initial_state() == TicketStatus.NOT_STARTED
    assert TicketStateMachine.is_terminal(TicketStatus.RESOLVED)
    assert TicketStateMachine.is_terminal(TicketStatus.INVALID)
    assert not TicketStateMachine.is_terminal(TicketStatus.IN_PROGRESS)
