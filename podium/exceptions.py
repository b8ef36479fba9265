"""Domain errors raised by the Podium services.

Precondition failures are raised synchronously with a reason code so API
routes and tasks can react without parsing messages.
"""

from enum import Enum


class PodiumError(Exception):
    """Base class for all Podium domain errors."""


class RejectionReason(str, Enum):
    """Why a wager was refused."""
    PERIOD_NOT_FOUND = "period_not_found"
    PERIOD_NOT_OPEN = "period_not_open"
    DUPLICATE_WAGER = "duplicate_wager"
    WRONG_PICK_COUNT = "wrong_pick_count"
    DUPLICATE_COMPETITOR = "duplicate_competitor"
    INVALID_POSITION = "invalid_position"
    DUPLICATE_POSITION = "duplicate_position"
    MULTIPLE_BOOSTS = "multiple_boosts"
    BOOST_ALREADY_USED = "boost_already_used"
    MISSING_ODDS = "missing_odds"


class WagerRejected(PodiumError):
    """A wager failed validation and nothing was persisted."""

    def __init__(self, reason: RejectionReason, detail: str | None = None):
        self.reason = reason
        self.detail = detail
        message = reason.value if detail is None else f"{reason.value}: {detail}"
        super().__init__(message)


class PeriodNotFound(PodiumError):
    """No betting period exists with the requested id."""

    def __init__(self, period_id: int):
        self.period_id = period_id
        super().__init__(f"period {period_id} not found")


class InvalidTransition(PodiumError):
    """A period status change not allowed by the lifecycle."""

    def __init__(self, period_id: int, current: str, target: str):
        self.period_id = period_id
        self.current = current
        self.target = target
        super().__init__(f"period {period_id}: {current} -> {target} not allowed")


class PeriodAlreadyFinalized(PodiumError):
    """The period already has a confirmed podium or was cancelled."""

    def __init__(self, period_id: int):
        self.period_id = period_id
        super().__init__(f"period {period_id} is already finalized")


class SettlementPreconditionError(PodiumError):
    """Settlement cannot run yet. Not retryable without outside action."""


class DataIntegrityError(PodiumError):
    """Input references data that does not exist or is inconsistent."""


class OddsFrozen(PodiumError):
    """Odds can no longer be recomputed for the period."""

    def __init__(self, period_id: int, status: str):
        self.period_id = period_id
        self.status = status
        super().__init__(f"period {period_id} is {status}; odds are frozen")
