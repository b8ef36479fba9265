"""Unit tests for wager shape validation."""

import pytest

from podium.exceptions import RejectionReason, WagerRejected
from podium.models.domain import Position
from podium.services.ledger import PickRequest, validate_picks


def reason_for(picks) -> RejectionReason:
    with pytest.raises(WagerRejected) as exc_info:
        validate_picks(picks)
    return exc_info.value.reason


class TestValidatePicks:
    """Test validate_picks."""

    def test_valid_wager(self):
        """One pick per position, distinct competitors, one boost."""
        validate_picks(
            [
                PickRequest(1, Position.FIRST, boosted=True),
                PickRequest(2, Position.SECOND),
                PickRequest(3, Position.THIRD),
            ]
        )

    def test_too_few_picks(self):
        """Exactly three picks are required."""
        picks = [PickRequest(1, Position.FIRST), PickRequest(2, Position.SECOND)]
        assert reason_for(picks) == RejectionReason.WRONG_PICK_COUNT

    def test_too_many_picks(self):
        """A fourth pick is rejected."""
        picks = [
            PickRequest(1, Position.FIRST),
            PickRequest(2, Position.SECOND),
            PickRequest(3, Position.THIRD),
            PickRequest(4, Position.THIRD),
        ]
        assert reason_for(picks) == RejectionReason.WRONG_PICK_COUNT

    def test_duplicate_position(self):
        """Two picks for the same place."""
        picks = [
            PickRequest(1, Position.FIRST),
            PickRequest(2, Position.FIRST),
            PickRequest(3, Position.THIRD),
        ]
        assert reason_for(picks) == RejectionReason.DUPLICATE_POSITION

    def test_duplicate_competitor(self):
        """The same competitor in two places."""
        picks = [
            PickRequest(1, Position.FIRST),
            PickRequest(1, Position.SECOND),
            PickRequest(3, Position.THIRD),
        ]
        assert reason_for(picks) == RejectionReason.DUPLICATE_COMPETITOR

    def test_multiple_boosts(self):
        """Only one pick may be boosted."""
        picks = [
            PickRequest(1, Position.FIRST, boosted=True),
            PickRequest(2, Position.SECOND, boosted=True),
            PickRequest(3, Position.THIRD),
        ]
        assert reason_for(picks) == RejectionReason.MULTIPLE_BOOSTS

    def test_positions_given_as_strings(self):
        """Positions parsed from requests may be plain strings."""
        validate_picks(
            [
                PickRequest(1, "FIRST"),
                PickRequest(2, "SECOND"),
                PickRequest(3, "THIRD"),
            ]
        )

    def test_unknown_position(self):
        """A position outside the podium is a rejection, not a crash."""
        picks = [
            PickRequest(1, "FIRST"),
            PickRequest(2, "SECOND"),
            PickRequest(3, "FOURTH"),
        ]
        assert reason_for(picks) == RejectionReason.INVALID_POSITION
