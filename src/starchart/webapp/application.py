"""FastAPI backend for the Star Chart household reward tracker.

Children earn stars for tasks and accrue toward a cash reward threshold, and
optionally track homework against a weekly quota.  Mutating parent actions are
gated by a single shared PIN sent in the ``X-Parent-Pin`` header.  Run with
``uvicorn starchart.webapp:app``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import OperationalError

from .. import homework
from ..api import ApiExporter
from ..exceptions import StarChartError, UnauthorizedError, ValidationError
from ..money import format_currency
from ..ops import HealthMonitor, StructuredLogger
from ..security import PinGate
from . import services
from .config import (
    DEFAULT_CHILD_COLOR,
    DEFAULT_HISTORY_WEEKS,
    DEFAULT_HOMEWORK_REQUIRED,
    DEFAULT_HOMEWORK_TOTAL_DAYS,
    EVENT_LOG_PATH,
    PIN_HEADER,
    PIN_LOCKOUT_MINUTES,
    PIN_MAX_ATTEMPTS,
)
from .persistence import APPLIED_MIGRATIONS, Child, get_session

# ---------------------------------------------------------------------------
# FastAPI application setup
# ---------------------------------------------------------------------------
app = FastAPI(title="Star Chart")

exporter = ApiExporter()
event_log = StructuredLogger(path=EVENT_LOG_PATH)
health = HealthMonitor()
pin_gate = PinGate(max_attempts=PIN_MAX_ATTEMPTS, lockout_minutes=PIN_LOCKOUT_MINUTES)

for _migration in APPLIED_MIGRATIONS:
    health.add_migration(_migration)
services.seed_settings()


@app.exception_handler(StarChartError)
async def _star_chart_error(_request: Request, exc: StarChartError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def _request_validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    fields: Dict[str, str] = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        fields[".".join(location) or "body"] = str(error.get("msg", "invalid"))
    return JSONResponse(
        status_code=ValidationError.status_code,
        content=ValidationError("Invalid request.", fields=fields).to_payload(),
    )


def require_pin(pin: Optional[str] = Header(default=None, alias=PIN_HEADER)) -> None:
    if not pin:
        raise UnauthorizedError("PIN required")
    if not pin_gate.verify(pin, services.stored_pin_hash(), at=services.now_local()):
        event_log.log("pin_rejected", locked=pin_gate.is_locked(at=services.now_local()))
        raise UnauthorizedError("Invalid PIN")


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------
class ChildIn(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    color: Optional[str] = None
    avatar_url: Optional[str] = None
    homework_tracking: bool = False
    homework_required: int = Field(default=DEFAULT_HOMEWORK_REQUIRED, ge=1, le=5)
    homework_total_days: int = Field(default=DEFAULT_HOMEWORK_TOTAL_DAYS, ge=1, le=5)


class TaskIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    star_value: int = Field(ge=1, le=100)
    icon: Optional[str] = None
    sort_order: int = 0


class AwardIn(BaseModel):
    task_id: int


class RemoveIn(BaseModel):
    stars: int = Field(ge=1)
    note: Optional[str] = Field(default=None, max_length=200)


class PayoutIn(BaseModel):
    amount: Decimal = Field(ge=0)
    stars_spent: Optional[int] = Field(default=None, ge=1)
    note: Optional[str] = Field(default=None, max_length=200)


class HomeworkIn(BaseModel):
    day: date = Field(alias="date", strict=True)
    status: str


class ThresholdIn(BaseModel):
    stars: int = Field(ge=1)
    amount: Decimal = Field(ge=0)


class PinVerifyIn(BaseModel):
    pin: Optional[str] = None


class PinChangeIn(BaseModel):
    current_pin: str = Field(min_length=4, max_length=4)
    new_pin: str = Field(min_length=4, max_length=4)


def _child_payload(child: Child, total_stars: Optional[int] = None, total_paid_stars: Optional[int] = None) -> Dict[str, Any]:
    payload = child.model_dump()
    if total_stars is not None:
        payload["total_stars"] = total_stars
        payload["total_paid_stars"] = total_paid_stars or 0
    return payload


# ---------------------------------------------------------------------------
# Health & auth
# ---------------------------------------------------------------------------
@app.get("/health")
def health_check() -> Dict[str, Any]:
    try:
        with get_session() as session:
            session.connection().exec_driver_sql("SELECT 1")
        health.database_online = True
    except OperationalError:
        health.database_online = False
    return health.status()


@app.post("/api/auth/verify")
def verify_pin(body: PinVerifyIn) -> Any:
    if not body.pin:
        raise ValidationError("PIN is required", fields={"pin": "required"})
    if pin_gate.verify(body.pin, services.stored_pin_hash(), at=services.now_local()):
        return {"valid": True}
    event_log.log("pin_rejected", locked=pin_gate.is_locked(at=services.now_local()))
    return JSONResponse(status_code=401, content={"valid": False, "error": "Invalid PIN"})


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@app.get("/api/settings/reward-threshold")
def get_reward_threshold() -> Dict[str, Any]:
    threshold = services.get_threshold()
    return {"stars": threshold.stars, "amount": float(threshold.amount)}


@app.put("/api/settings/reward-threshold", dependencies=[Depends(require_pin)])
def put_reward_threshold(body: ThresholdIn) -> Dict[str, Any]:
    threshold = services.update_threshold(body.stars, body.amount)
    event_log.log("threshold_updated", stars=threshold.stars, amount=format_currency(threshold.amount))
    return {"stars": threshold.stars, "amount": float(threshold.amount)}


@app.put("/api/settings/pin", dependencies=[Depends(require_pin)])
def put_pin(body: PinChangeIn) -> Dict[str, Any]:
    services.change_pin(body.current_pin, body.new_pin)
    event_log.log("pin_changed")
    return {"success": True}


# ---------------------------------------------------------------------------
# Children
# ---------------------------------------------------------------------------
@app.get("/api/children")
def get_children() -> List[Dict[str, Any]]:
    return [_child_payload(child, total, paid) for child, total, paid in services.list_children()]


@app.post("/api/children", status_code=201, dependencies=[Depends(require_pin)])
def post_child(body: ChildIn) -> Dict[str, Any]:
    fields = body.model_dump()
    fields["color"] = fields["color"] or DEFAULT_CHILD_COLOR
    child = services.create_child(**fields)
    return _child_payload(child)


@app.put("/api/children/{child_id}", dependencies=[Depends(require_pin)])
def put_child(child_id: int, body: ChildIn) -> Dict[str, Any]:
    fields = body.model_dump()
    fields["color"] = fields["color"] or DEFAULT_CHILD_COLOR
    child = services.update_child(child_id, **fields)
    return _child_payload(child)


@app.delete("/api/children/{child_id}", dependencies=[Depends(require_pin)])
def delete_child(child_id: int) -> Dict[str, Any]:
    services.soft_delete_child(child_id)
    return {"success": True}


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------
@app.get("/api/tasks")
def get_tasks() -> List[Dict[str, Any]]:
    return [task.model_dump() for task in services.list_tasks()]


@app.post("/api/tasks", status_code=201, dependencies=[Depends(require_pin)])
def post_task(body: TaskIn) -> Dict[str, Any]:
    return services.create_task(**body.model_dump()).model_dump()


@app.put("/api/tasks/{task_id}", dependencies=[Depends(require_pin)])
def put_task(task_id: int, body: TaskIn) -> Dict[str, Any]:
    return services.update_task(task_id, **body.model_dump()).model_dump()


@app.delete("/api/tasks/{task_id}", dependencies=[Depends(require_pin)])
def delete_task(task_id: int) -> Dict[str, Any]:
    services.soft_delete_task(task_id)
    return {"success": True}


# ---------------------------------------------------------------------------
# Stars
# ---------------------------------------------------------------------------
@app.get("/api/children/{child_id}/stars")
def get_star_history(child_id: int) -> List[Dict[str, Any]]:
    return [exporter.ledger_entry(entry) for entry in services.list_history(child_id)]


@app.get("/api/children/{child_id}/stars/summary")
def get_star_summary(child_id: int) -> Dict[str, Any]:
    return exporter.reward_summary(services.reward_summary(child_id))


@app.get("/api/children/{child_id}/stars/insights")
def get_star_insights(child_id: int) -> Dict[str, Any]:
    return exporter.insights(services.child_insights(child_id))


@app.post("/api/children/{child_id}/stars", status_code=201)
def award_stars(child_id: int, body: AwardIn) -> Dict[str, Any]:
    result = services.award_stars(child_id, body.task_id)
    event_log.log(
        "stars_awarded",
        child_id=child_id,
        task_id=body.task_id,
        stars=result.stars_awarded,
        outstanding=result.outstanding,
    )
    if result.threshold_reached:
        event_log.log("threshold_reached", child_id=child_id, outstanding=result.outstanding)
    return exporter.award_result(result)


@app.post("/api/children/{child_id}/stars/remove", dependencies=[Depends(require_pin)])
def remove_stars(child_id: int, body: RemoveIn) -> Dict[str, Any]:
    _entry, new_total = services.remove_stars(child_id, body.stars, body.note)
    event_log.log("stars_removed", child_id=child_id, stars=body.stars, new_total=new_total)
    return {"success": True, "newTotal": new_total, "starsRemoved": body.stars}


@app.post("/api/children/{child_id}/stars/{log_id}/undo", dependencies=[Depends(require_pin)])
def undo_stars(child_id: int, log_id: int) -> Dict[str, Any]:
    new_total = services.undo_entry(child_id, log_id)
    event_log.log("star_undone", child_id=child_id, log_id=log_id, new_total=new_total)
    return {"success": True, "newTotal": new_total}


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------
@app.get("/api/children/{child_id}/payouts", dependencies=[Depends(require_pin)])
def get_payouts(child_id: int) -> List[Dict[str, Any]]:
    return [exporter.payout(payout) for payout in services.list_payouts(child_id)]


@app.post("/api/children/{child_id}/payouts", status_code=201, dependencies=[Depends(require_pin)])
def post_payout(child_id: int, body: PayoutIn) -> Dict[str, Any]:
    payout = services.record_payout(child_id, body.amount, stars_spent=body.stars_spent, note=body.note)
    event_log.log(
        "payout_recorded",
        child_id=child_id,
        stars_spent=payout.stars_spent,
        amount=format_currency(payout.amount),
    )
    return exporter.payout(payout)


# ---------------------------------------------------------------------------
# Homework
# ---------------------------------------------------------------------------
@app.get("/api/children/{child_id}/homework")
def get_homework_week(child_id: int, week: Optional[date] = Query(default=None)) -> Dict[str, Any]:
    return exporter.week_view(services.load_homework_week(child_id, week))


@app.post("/api/children/{child_id}/homework")
def post_homework_day(child_id: int, body: HomeworkIn) -> Dict[str, Any]:
    status = homework.parse_status(body.status)
    services.set_homework_status(child_id, body.day, status)
    event_log.log("homework_updated", child_id=child_id, date=body.day.isoformat(), status=status.value)
    return {"success": True, "date": body.day.isoformat(), "status": status.value}


@app.get("/api/children/{child_id}/homework/history")
def get_homework_history(
    child_id: int, weeks: int = Query(default=DEFAULT_HISTORY_WEEKS, ge=1, le=104)
) -> List[Dict[str, Any]]:
    return [exporter.week_rollup(rollup) for rollup in services.homework_history(child_id, weeks)]


__all__ = ["app", "event_log", "exporter", "health", "pin_gate", "require_pin"]
