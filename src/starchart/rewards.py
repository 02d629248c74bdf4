"""Reward-threshold accounting derived from ledger and payout totals.

Every figure here is computed from lifetime totals rather than stored, so the
functions are pure and can be called on every request.  Reward counts use
floor division and the progress remainder uses floor-mod, which keeps
``stars_toward_next`` inside ``[0, threshold)`` even when payouts have pushed
the outstanding balance below zero.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from .models import RewardSummary, RewardThreshold
from .money import to_decimal


def outstanding_stars(total_stars: int, total_paid_stars: int) -> int:
    """Return lifetime stars minus the stars consumed by payouts."""

    return int(total_stars) - int(total_paid_stars)


def stars_toward_next(outstanding: int, threshold: RewardThreshold) -> int:
    # Python's % already floors, so negative balances stay in range.
    return outstanding % threshold.stars


def progress_percent(toward_next: int, threshold: RewardThreshold) -> int:
    ratio = Decimal(toward_next) / Decimal(threshold.stars) * 100
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def summarize(total_stars: int, total_paid_stars: int, threshold: RewardThreshold) -> RewardSummary:
    """Build a :class:`RewardSummary` from lifetime totals."""

    outstanding = outstanding_stars(total_stars, total_paid_stars)
    rewards_earned = int(total_stars) // threshold.stars
    rewards_paid = int(total_paid_stars) // threshold.stars
    toward_next = stars_toward_next(outstanding, threshold)
    earned_amount = to_decimal(threshold.amount * rewards_earned)
    paid_amount = to_decimal(threshold.amount * rewards_paid)
    return RewardSummary(
        total_stars=int(total_stars),
        total_paid_stars=int(total_paid_stars),
        outstanding_stars=outstanding,
        stars_toward_next=toward_next,
        threshold_stars=threshold.stars,
        threshold_amount=threshold.amount,
        rewards_earned=rewards_earned,
        rewards_paid=rewards_paid,
        total_earned_amount=earned_amount,
        total_paid_amount=paid_amount,
        unpaid_amount=earned_amount - paid_amount,
        progress_percent=progress_percent(toward_next, threshold),
    )


def threshold_crossed(outstanding: int, stars_awarded: int, threshold: RewardThreshold) -> bool:
    """Return ``True`` when an award moved the balance past a threshold multiple.

    Crossing several multiples in one award still reports a single ``True``.
    """

    previous = outstanding - stars_awarded
    return outstanding // threshold.stars > previous // threshold.stars


def stars_for_payout(amount: Decimal | int | float | str, threshold: RewardThreshold) -> int:
    """Convert a dollar payout into the stars it consumes.

    Uses the current threshold ratio, so payouts for stars earned under an
    older threshold drift from the original star-for-dollar rate.
    """

    value = to_decimal(amount)
    if threshold.amount <= 0:
        return 1
    stars = (value / threshold.amount * threshold.stars).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(int(stars), 1)


__all__ = [
    "outstanding_stars",
    "progress_percent",
    "stars_for_payout",
    "stars_toward_next",
    "summarize",
    "threshold_crossed",
]
