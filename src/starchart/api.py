"""Convert Star Chart results to JSON friendly dictionaries."""

from __future__ import annotations

from typing import Dict, Optional

from .models import (
    AwardResult,
    HomeworkWeekView,
    LedgerEntry,
    PayoutRecord,
    RewardSummary,
    StarInsights,
    TaskBreakdown,
    WeekRollup,
)


class ApiExporter:
    """Serialise domain results for the HTTP layer."""

    def ledger_entry(self, entry: LedgerEntry) -> Dict[str, object]:
        return {
            "id": entry.id,
            "child_id": entry.child_id,
            "task_id": entry.task_id,
            "stars": entry.stars,
            "note": entry.note,
            "created_at": entry.created_at.isoformat(),
            "undone_at": entry.undone_at.isoformat() if entry.undone_at else None,
            "undone": entry.is_undone,
            "task_name": entry.task_name,
            "task_icon": entry.task_icon,
        }

    def award_result(self, result: AwardResult) -> Dict[str, object]:
        return {
            "log": self.ledger_entry(result.entry),
            "newTotal": result.new_total,
            "outstanding": result.outstanding,
            "starsAwarded": result.stars_awarded,
            "thresholdReached": result.threshold_reached,
            "thresholdStars": result.threshold_stars,
        }

    def reward_summary(self, summary: RewardSummary) -> Dict[str, object]:
        return {
            "total_stars": summary.total_stars,
            "total_paid_stars": summary.total_paid_stars,
            "outstanding_stars": summary.outstanding_stars,
            "stars_toward_next": summary.stars_toward_next,
            "threshold_stars": summary.threshold_stars,
            "threshold_amount": float(summary.threshold_amount),
            "rewards_earned": summary.rewards_earned,
            "rewards_paid": summary.rewards_paid,
            "total_earned_amount": float(summary.total_earned_amount),
            "total_paid_amount": float(summary.total_paid_amount),
            "unpaid_amount": float(summary.unpaid_amount),
            "progress_percent": summary.progress_percent,
        }

    def insights(self, insights: StarInsights) -> Dict[str, object]:
        rewards = insights.rewards
        return {
            "total_stars": insights.total_stars,
            "stars_this_week": insights.stars_this_week,
            "stars_this_month": insights.stars_this_month,
            "avg_stars_per_day": insights.avg_stars_per_day,
            "active_days": insights.active_days,
            "current_streak": insights.current_streak,
            "best_streak": insights.best_streak,
            "days_since_first": insights.days_since_first,
            "most_completed_task": self._task(insights.most_completed_task),
            "highest_earning_task": self._task(insights.highest_earning_task),
            "task_breakdown": [self._task(item) for item in insights.task_breakdown],
            "total_earned_amount": float(rewards.total_earned_amount),
            "total_paid_amount": float(rewards.total_paid_amount),
            "unpaid_amount": float(rewards.unpaid_amount),
            "rewards_earned": rewards.rewards_earned,
            "progress_percent": rewards.progress_percent,
            "stars_toward_next": rewards.stars_toward_next,
            "threshold_stars": rewards.threshold_stars,
            "rank": insights.rank,
        }

    def payout(self, payout: PayoutRecord) -> Dict[str, object]:
        return {
            "id": payout.id,
            "child_id": payout.child_id,
            "stars_spent": payout.stars_spent,
            "amount": float(payout.amount),
            "note": payout.note,
            "created_at": payout.created_at.isoformat(),
        }

    def week_view(self, view: HomeworkWeekView) -> Dict[str, object]:
        summary = view.summary
        return {
            "week_start": view.week_start.isoformat(),
            "week_end": view.week_end.isoformat(),
            "days": [
                {
                    "date": day.date.isoformat(),
                    "day_name": day.day_name,
                    "status": day.status.value,
                    "is_today": day.is_today,
                    "is_past": day.is_past,
                    "is_future": day.is_future,
                }
                for day in view.days
            ],
            "summary": {
                "done": summary.done,
                "not_done": summary.not_done,
                "day_off": summary.day_off,
                "pending": summary.pending,
                "total_school_days": summary.total_school_days,
                "required": summary.required,
                "earned": summary.earned,
                "still_possible": summary.still_possible,
                "lost": summary.lost,
            },
        }

    def week_rollup(self, rollup: WeekRollup) -> Dict[str, object]:
        return {
            "week_start": rollup.week_start.isoformat(),
            "done": rollup.done,
            "not_done": rollup.not_done,
            "day_off": rollup.day_off,
            "total_school_days": rollup.total_school_days,
            "required": rollup.required,
            "earned": rollup.earned,
        }

    def _task(self, item: Optional[TaskBreakdown]) -> Optional[Dict[str, object]]:
        if item is None:
            return None
        return {
            "id": item.task_id,
            "name": item.name,
            "icon": item.icon,
            "completions": item.completions,
            "total_stars": item.total_stars,
        }


__all__ = ["ApiExporter"]
