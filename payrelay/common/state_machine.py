"""Verification state machine transitions enforced by the orchestrator."""

from enum import Enum


class VerificationState(str, Enum):
    RECEIVED = "RECEIVED"
    SIGNATURE_CHECKED = "SIGNATURE_CHECKED"
    SUCCESS = "SUCCESS"
    TEST_MODE_SOFT_FAIL = "TEST_MODE_SOFT_FAIL"
    HARD_FAIL = "HARD_FAIL"


ALLOWED_TRANSITIONS: dict[VerificationState, set[VerificationState]] = {
    VerificationState.RECEIVED: {VerificationState.SIGNATURE_CHECKED},
    VerificationState.SIGNATURE_CHECKED: {
        VerificationState.SUCCESS,
        VerificationState.TEST_MODE_SOFT_FAIL,
        VerificationState.HARD_FAIL,
    },
    VerificationState.SUCCESS: set(),
    VerificationState.TEST_MODE_SOFT_FAIL: set(),
    VerificationState.HARD_FAIL: set(),
}

TERMINAL_STATES = frozenset(state for state, targets in ALLOWED_TRANSITIONS.items() if not targets)


def validate_transition(current: VerificationState, new: VerificationState) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current.value} -> {new.value}")


def decide_outcome(signature_valid: bool, test_mode: bool, book_on_failure: bool) -> VerificationState:
    """Pick the terminal state once the signature has been checked.

    Test-mode policy only applies after the signature is known to be invalid;
    a valid signature always lands in SUCCESS.
    """

    if signature_valid:
        return VerificationState.SUCCESS
    if test_mode and book_on_failure:
        return VerificationState.TEST_MODE_SOFT_FAIL
    return VerificationState.HARD_FAIL
