from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient
from sqlmodel import delete, select

from starchart.webapp import (
    Child,
    HomeworkLog,
    Payout,
    Setting,
    StarLog,
    Task,
    app,
    event_log,
    get_session,
    pin_gate,
    services,
    set_time_provider,
)

client = TestClient(app)


@pytest.fixture(autouse=True)
def _reset_state(clock):
    with get_session() as session:
        for model in (HomeworkLog, Payout, StarLog, Task, Child, Setting):
            session.exec(delete(model))
        session.commit()
    services.seed_settings()
    pin_gate.reset()
    event_log.clear()
    set_time_provider(clock)
    yield
    set_time_provider(None)


def _create_child(headers, **overrides) -> int:
    payload = {"name": "Ava", **overrides}
    response = client.post("/api/children", json=payload, headers=headers)
    assert response.status_code == 201
    return response.json()["id"]


def _create_task(headers, star_value: int, name: str = "Chore") -> int:
    response = client.post("/api/tasks", json={"name": name, "star_value": star_value}, headers=headers)
    assert response.status_code == 201
    return response.json()["id"]


def _award(child_id: int, task_id: int):
    return client.post(f"/api/children/{child_id}/stars", json={"task_id": task_id})


def test_health_reports_database_status() -> None:
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "ok"


def test_pin_verification(pin_headers) -> None:
    assert client.post("/api/auth/verify", json={"pin": "1234"}).json() == {"valid": True}

    rejected = client.post("/api/auth/verify", json={"pin": "0000"})
    assert rejected.status_code == 401
    assert rejected.json()["valid"] is False

    missing = client.post("/api/auth/verify", json={})
    assert missing.status_code == 400


def test_repeated_failures_lock_the_pin(clock) -> None:
    for _ in range(5):
        client.post("/api/auth/verify", json={"pin": "0000"})

    assert client.post("/api/auth/verify", json={"pin": "1234"}).status_code == 401

    clock.advance(minutes=16)
    assert client.post("/api/auth/verify", json={"pin": "1234"}).json() == {"valid": True}


def test_mutations_require_pin(pin_headers) -> None:
    missing = client.post("/api/children", json={"name": "Ava"})
    wrong = client.post("/api/children", json={"name": "Ava"}, headers={"X-Parent-Pin": "9999"})

    assert missing.status_code == 401
    assert missing.json() == {"error": "PIN required"}
    assert wrong.status_code == 401
    assert wrong.json() == {"error": "Invalid PIN"}
    assert any(entry["event"] == "pin_rejected" for entry in event_log.tail())


def test_award_reports_threshold_crossing(pin_headers) -> None:
    child_id = _create_child(pin_headers)
    nine = _create_task(pin_headers, 9, "Homework")
    four = _create_task(pin_headers, 4, "Dishes")

    assert _award(child_id, nine).json()["thresholdReached"] is False
    assert _award(child_id, nine).json()["thresholdReached"] is False
    response = _award(child_id, four)

    assert response.status_code == 201
    body = response.json()
    assert body["newTotal"] == 22
    assert body["outstanding"] == 22
    assert body["starsAwarded"] == 4
    assert body["thresholdReached"] is True
    assert body["thresholdStars"] == 20
    assert body["log"]["task_name"] == "Dishes"
    assert [entry["event"] for entry in event_log.tail(2)] == ["stars_awarded", "threshold_reached"]


def test_award_below_threshold_does_not_cross(pin_headers) -> None:
    child_id = _create_child(pin_headers)
    five = _create_task(pin_headers, 5)

    _award(child_id, five)
    body = _award(child_id, five).json()

    assert body["newTotal"] == 10
    assert body["thresholdReached"] is False


def test_award_rejects_missing_or_deleted_records(pin_headers) -> None:
    child_id = _create_child(pin_headers)
    task_id = _create_task(pin_headers, 3)

    assert _award(child_id, 9999).status_code == 404
    assert _award(9999, task_id).json() == {"error": "Child not found"}

    client.delete(f"/api/tasks/{task_id}", headers=pin_headers)
    response = _award(child_id, task_id)
    assert response.status_code == 404
    assert response.json() == {"error": "Task not found"}


def test_remove_stars_may_go_negative(pin_headers) -> None:
    child_id = _create_child(pin_headers)
    _award(child_id, _create_task(pin_headers, 4))

    unauthorised = client.post(f"/api/children/{child_id}/stars/remove", json={"stars": 10})
    response = client.post(f"/api/children/{child_id}/stars/remove", json={"stars": 10}, headers=pin_headers)

    assert unauthorised.status_code == 401
    assert response.status_code == 200
    assert response.json() == {"success": True, "newTotal": -6, "starsRemoved": 10}
    history = client.get(f"/api/children/{child_id}/stars").json()
    assert history[0]["stars"] == -10
    assert history[0]["note"] == "Stars removed"
    assert history[0]["task_id"] is None


def test_undo_only_once(pin_headers) -> None:
    child_id = _create_child(pin_headers)
    log_id = _award(child_id, _create_task(pin_headers, 6)).json()["log"]["id"]

    first = client.post(f"/api/children/{child_id}/stars/{log_id}/undo", headers=pin_headers)
    second = client.post(f"/api/children/{child_id}/stars/{log_id}/undo", headers=pin_headers)

    assert first.json() == {"success": True, "newTotal": 0}
    assert second.status_code == 404
    history = client.get(f"/api/children/{child_id}/stars").json()
    assert history[0]["undone"] is True


def test_undo_checks_owning_child(pin_headers) -> None:
    ava = _create_child(pin_headers)
    ben = _create_child(pin_headers, name="Ben")
    log_id = _award(ava, _create_task(pin_headers, 6)).json()["log"]["id"]

    response = client.post(f"/api/children/{ben}/stars/{log_id}/undo", headers=pin_headers)

    assert response.status_code == 404


def test_payout_derives_stars_and_keeps_rewards_earned(pin_headers) -> None:
    child_id = _create_child(pin_headers)
    ten = _create_task(pin_headers, 10)
    _award(child_id, ten)
    _award(child_id, ten)
    before = client.get(f"/api/children/{child_id}/stars/summary").json()

    response = client.post(f"/api/children/{child_id}/payouts", json={"amount": 10}, headers=pin_headers)

    assert response.status_code == 201
    assert response.json()["stars_spent"] == 20
    assert response.json()["amount"] == 10.0
    after = client.get(f"/api/children/{child_id}/stars/summary").json()
    assert before["rewards_earned"] == after["rewards_earned"] == 1
    assert before["unpaid_amount"] == 10.0
    assert after["unpaid_amount"] == 0.0
    assert after["outstanding_stars"] == after["total_stars"] - after["total_paid_stars"] == 0
    payouts = client.get(f"/api/children/{child_id}/payouts", headers=pin_headers).json()
    assert [payout["stars_spent"] for payout in payouts] == [20]


def test_payout_with_explicit_stars(pin_headers) -> None:
    child_id = _create_child(pin_headers)

    response = client.post(
        f"/api/children/{child_id}/payouts",
        json={"amount": "2.50", "stars_spent": 3, "note": "Ice cream"},
        headers=pin_headers,
    )

    assert response.json()["stars_spent"] == 3
    summary = client.get(f"/api/children/{child_id}/stars/summary").json()
    assert summary["outstanding_stars"] == -3
    assert summary["stars_toward_next"] == 17


def test_threshold_update_changes_crossing(pin_headers) -> None:
    response = client.put(
        "/api/settings/reward-threshold", json={"stars": 5, "amount": 2}, headers=pin_headers
    )
    child_id = _create_child(pin_headers)

    assert response.json() == {"stars": 5, "amount": 2.0}
    assert client.get("/api/settings/reward-threshold").json() == {"stars": 5, "amount": 2.0}
    assert _award(child_id, _create_task(pin_headers, 5)).json()["thresholdReached"] is True


def test_pin_change(pin_headers) -> None:
    wrong = client.put(
        "/api/settings/pin", json={"current_pin": "0000", "new_pin": "5678"}, headers=pin_headers
    )
    changed = client.put(
        "/api/settings/pin", json={"current_pin": "1234", "new_pin": "5678"}, headers=pin_headers
    )

    assert wrong.status_code == 401
    assert wrong.json() == {"error": "Current PIN is incorrect"}
    assert changed.json() == {"success": True}
    assert client.post("/api/auth/verify", json={"pin": "5678"}).json() == {"valid": True}
    assert client.post("/api/children", json={"name": "Ava"}, headers=pin_headers).status_code == 401


def test_pin_must_be_four_characters(pin_headers) -> None:
    response = client.put(
        "/api/settings/pin", json={"current_pin": "1234", "new_pin": "12345"}, headers=pin_headers
    )

    assert response.status_code == 400
    assert "new_pin" in response.json()["fields"]


def test_validation_errors_name_fields(pin_headers) -> None:
    response = client.post("/api/tasks", json={"name": "Bad", "star_value": 0}, headers=pin_headers)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request."
    assert "star_value" in body["fields"]


def test_soft_deleted_child_keeps_history(pin_headers) -> None:
    child_id = _create_child(pin_headers)
    task_id = _create_task(pin_headers, 3)
    _award(child_id, task_id)

    client.delete(f"/api/children/{child_id}", headers=pin_headers)

    assert client.get("/api/children").json() == []
    history = client.get(f"/api/children/{child_id}/stars")
    assert history.status_code == 200
    assert len(history.json()) == 1
    assert _award(child_id, task_id).status_code == 404


def test_children_list_carries_totals(pin_headers) -> None:
    child_id = _create_child(pin_headers, color="#00AAFF")
    _award(child_id, _create_task(pin_headers, 7))

    children = client.get("/api/children").json()

    assert len(children) == 1
    assert children[0]["color"] == "#00AAFF"
    assert children[0]["total_stars"] == 7
    assert children[0]["total_paid_stars"] == 0


def test_tasks_are_listed_in_sort_order(pin_headers) -> None:
    client.post("/api/tasks", json={"name": "Later", "star_value": 1, "sort_order": 2}, headers=pin_headers)
    client.post("/api/tasks", json={"name": "First", "star_value": 1, "sort_order": 1}, headers=pin_headers)

    assert [task["name"] for task in client.get("/api/tasks").json()] == ["First", "Later"]


def test_insights_track_streaks(pin_headers, clock) -> None:
    child_id = _create_child(pin_headers)
    task_id = _create_task(pin_headers, 3, "Feed cat")
    _award(child_id, task_id)
    clock.advance(days=1)
    _award(child_id, task_id)

    insights = client.get(f"/api/children/{child_id}/stars/insights").json()

    assert insights["total_stars"] == 6
    assert insights["current_streak"] == 2
    assert insights["best_streak"] == 2
    assert insights["active_days"] == 2
    assert insights["avg_stars_per_day"] == 3.0
    assert insights["most_completed_task"]["name"] == "Feed cat"
    assert insights["rank"] == "Star Starter"


def test_homework_week_settles_past_days(pin_headers) -> None:
    child_id = _create_child(pin_headers, homework_tracking=True)

    week = client.get(f"/api/children/{child_id}/homework").json()

    assert week["week_start"] == "2026-10-12"
    assert week["week_end"] == "2026-10-16"
    assert [day["status"] for day in week["days"]] == ["not_done", "not_done", "pending", "pending", "pending"]
    assert week["days"][2]["is_today"] is True
    assert week["summary"]["still_possible"] is False
    assert week["summary"]["lost"] is True
    with get_session() as session:
        stored = session.exec(select(HomeworkLog)).all()
    assert sorted(row.day for row in stored) == [date(2026, 10, 12), date(2026, 10, 13)]


def test_homework_status_overwrites_settled_day(pin_headers) -> None:
    child_id = _create_child(pin_headers, homework_tracking=True)
    client.get(f"/api/children/{child_id}/homework")

    response = client.post(
        f"/api/children/{child_id}/homework", json={"date": "2026-10-12", "status": "done"}
    )

    assert response.json() == {"success": True, "date": "2026-10-12", "status": "done"}
    week = client.get(f"/api/children/{child_id}/homework", params={"week": "2026-10-14"}).json()
    assert week["days"][0]["status"] == "done"
    assert week["summary"]["done"] == 1


def test_homework_rejects_weekends_and_unknown_statuses(pin_headers) -> None:
    child_id = _create_child(pin_headers, homework_tracking=True)

    weekend = client.post(f"/api/children/{child_id}/homework", json={"date": "2026-10-17", "status": "done"})
    unknown = client.post(f"/api/children/{child_id}/homework", json={"date": "2026-10-14", "status": "maybe"})

    assert weekend.status_code == 400
    assert weekend.json()["error"] == "Homework can only be tracked on weekdays"
    assert unknown.status_code == 400
    assert "status" in unknown.json()["fields"]


def test_homework_history_rolls_up_weeks(pin_headers) -> None:
    child_id = _create_child(pin_headers, homework_tracking=True)
    statuses = ["done", "done", "day_off", "done", "not_done"]
    for offset, status in enumerate(statuses, start=5):
        client.post(
            f"/api/children/{child_id}/homework",
            json={"date": f"2026-10-{offset:02d}", "status": status},
        )

    history = client.get(f"/api/children/{child_id}/homework/history", params={"weeks": 2}).json()

    assert history == [
        {
            "week_start": "2026-10-05",
            "done": 3,
            "not_done": 1,
            "day_off": 1,
            "total_school_days": 4,
            "required": 4,
            "earned": False,
        }
    ]


def test_homework_for_deleted_child_is_not_found(pin_headers) -> None:
    child_id = _create_child(pin_headers, homework_tracking=True)
    client.delete(f"/api/children/{child_id}", headers=pin_headers)

    assert client.get(f"/api/children/{child_id}/homework").status_code == 404


def test_time_provider_defaults_to_wall_clock() -> None:
    set_time_provider(None)

    assert abs((services.now_local() - datetime.now()).total_seconds()) < 5


def test_homework_date_must_be_an_iso_string(pin_headers) -> None:
    child_id = _create_child(pin_headers, homework_tracking=True)

    response = client.post(f"/api/children/{child_id}/homework", json={"date": 0, "status": "done"})

    assert response.status_code == 400
    assert "date" in response.json()["fields"]
    with get_session() as session:
        assert session.exec(select(HomeworkLog)).all() == []


def test_concurrent_awards_see_every_previous_award() -> None:
    child = services.create_child(name="Ava")
    task = services.create_task(name="Tidy up", star_value=2)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: services.award_stars(child.id, task.id), range(30)))

    assert sorted(result.outstanding for result in results) == list(range(2, 62, 2))
    assert sum(1 for result in results if result.threshold_reached) == 3
    assert services.reward_summary(child.id).total_stars == 60


def test_created_rows_keep_naive_local_timestamps(clock) -> None:
    child = services.create_child(name="Ava")

    with get_session() as session:
        stored = session.get(Child, child.id)

    assert stored.created_at == clock.moment
    assert stored.created_at.tzinfo is None
