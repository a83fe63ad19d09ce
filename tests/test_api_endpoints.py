"""Integration tests for API endpoints.

These tests verify API endpoints work correctly end-to-end against the test
database and the in-memory calendar.
"""

import pytest
from datetime import datetime
from fastapi.testclient import TestClient


def _create(test_client: TestClient, title: str = "Test Task", **fields) -> dict:
    response = test_client.post("/tasks", json={"title": title, **fields})
    assert response.status_code == 201
    return response.json()["task"]


class TestHealth:
    def test_health(self, test_client):
        response = test_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestTaskEndpoints:
    """Test task CRUD API endpoints."""

    def test_create_task(self, test_client):
        """Test POST /tasks endpoint."""
        response = test_client.post(
            "/tasks",
            json={
                "title": "Test Task",
                "notes": "Test notes",
                "category": "work",
                "priority": "high",
                "estimated_duration_min": 30
            }
        )

        assert response.status_code == 201
        data = response.json()
        assert "task" in data
        task = data["task"]
        assert task["title"] == "Test Task"
        assert task["notes"] == "Test notes"
        assert task["category"] == "work"
        assert task["priority"] == "high"
        assert task["status"] == "pending"
        assert task["created_at"] == "2026-03-10T09:00:00"

    def test_create_task_with_ai_exclusion_prefix(self, test_client):
        """Test that task with '.' prefix is marked as AI-excluded."""
        task = _create(test_client, ".Private Task")
        assert task["ai_excluded"] is True

    def test_create_task_requires_title(self, test_client):
        response = test_client.post("/tasks", json={"title": ""})
        assert response.status_code == 422

    def test_create_recurring_task(self, test_client):
        task = _create(
            test_client,
            "Stretch",
            recurring_rule={"frequency": "times_per_day", "times_per_day": 3},
        )
        assert task["recurring_rule"]["frequency"] == "times_per_day"

    def test_list_tasks(self, test_client):
        """Test GET /tasks endpoint."""
        _create(test_client, "Task 1")
        done = _create(test_client, "Task 2")
        test_client.post(f"/tasks/{done['id']}/complete")

        data = test_client.get("/tasks").json()
        assert data["count"] == 2

        data = test_client.get("/tasks", params={"include_completed": False}).json()
        assert [t["title"] for t in data["tasks"]] == ["Task 1"]

    def test_get_task_by_id(self, test_client):
        """Test GET /tasks/{task_id} endpoint."""
        task_id = _create(test_client, "Get Test Task")["id"]

        response = test_client.get(f"/tasks/{task_id}")

        assert response.status_code == 200
        task = response.json()["task"]
        assert task["id"] == task_id
        assert task["title"] == "Get Test Task"

    def test_get_nonexistent_task(self, test_client):
        response = test_client.get("/tasks/nonexistent-id")
        assert response.status_code == 404

    def test_update_task(self, test_client):
        """Only the fields sent are changed."""
        task_id = _create(test_client, "Original", notes="keep me")["id"]

        response = test_client.patch(
            f"/tasks/{task_id}",
            json={"title": "Renamed", "due_date": "2026-03-12", "due_time": "10:30:00"},
        )
        assert response.status_code == 200
        task = response.json()["task"]
        assert task["title"] == "Renamed"
        assert task["notes"] == "keep me"
        assert task["due_date"] == "2026-03-12"
        assert task["due_time"] == "10:30:00"

    def test_update_clears_nullable_fields(self, test_client):
        task_id = _create(test_client, "Original", notes="drop me")["id"]
        task = test_client.patch(f"/tasks/{task_id}", json={"notes": None}).json()["task"]
        assert task["notes"] is None

    def test_update_rejects_null_title(self, test_client):
        task_id = _create(test_client)["id"]
        response = test_client.patch(f"/tasks/{task_id}", json={"title": None})
        assert response.status_code == 400

    def test_update_nonexistent_task(self, test_client):
        response = test_client.patch("/tasks/nonexistent-id", json={"title": "x"})
        assert response.status_code == 404

    def test_archive(self, test_client):
        task_id = _create(test_client)["id"]
        task = test_client.post(f"/tasks/{task_id}/archive").json()["task"]
        assert task["is_archived"] is True


class TestDeleteAndUndoEndpoints:
    def test_delete_then_undo(self, test_client):
        task_id = _create(test_client, "Deletable")["id"]

        response = test_client.delete(f"/tasks/{task_id}")
        assert response.status_code == 200
        assert response.json() == {"deleted": True, "can_undo": True}
        assert test_client.get(f"/tasks/{task_id}").status_code == 404

        undo = test_client.post("/undo").json()
        assert undo["action"] == "delete"
        assert undo["can_redo"] is True
        assert test_client.get(f"/tasks/{task_id}").status_code == 200

        redo = test_client.post("/redo").json()
        assert redo["action"] == "delete"
        assert test_client.get(f"/tasks/{task_id}").status_code == 404

    def test_commit_deletes(self, test_client):
        task_id = _create(test_client)["id"]
        test_client.delete(f"/tasks/{task_id}")

        assert test_client.post("/tasks/commit-deletes").json() == {"purged": 1}
        assert test_client.post("/undo").json()["action"] is None

    def test_delete_without_undo(self, test_client):
        task_id = _create(test_client)["id"]
        response = test_client.delete(f"/tasks/{task_id}", params={"allow_undo": False})
        assert response.status_code == 200
        assert test_client.post("/tasks/commit-deletes").json() == {"purged": 0}

    def test_delete_nonexistent_task(self, test_client):
        assert test_client.delete("/tasks/nonexistent-id").status_code == 404


class TestLifecycleEndpoints:
    def test_complete_and_reopen(self, test_client):
        task_id = _create(test_client)["id"]

        task = test_client.post(f"/tasks/{task_id}/complete").json()["task"]
        assert task["status"] == "completed"
        assert task["completed_at"] == "2026-03-10T09:00:00"

        task = test_client.post(f"/tasks/{task_id}/complete").json()["task"]
        assert task["status"] == "pending"

    def test_complete_nonexistent_task(self, test_client):
        assert test_client.post("/tasks/nonexistent-id/complete").status_code == 404

    def test_intraday_increment(self, test_client):
        task_id = _create(
            test_client,
            "Drink water",
            recurring_rule={"frequency": "times_per_day", "times_per_day": 2},
        )["id"]

        task = test_client.post(f"/tasks/{task_id}/intraday").json()["task"]
        assert task["intraday_completions_today"] == 1
        assert task["status"] == "pending"

    def test_intraday_on_plain_task(self, test_client):
        task_id = _create(test_client)["id"]
        assert test_client.post(f"/tasks/{task_id}/intraday").status_code == 400

    def test_single_task_in_progress(self, test_client):
        first = _create(test_client, "First")["id"]
        second = _create(test_client, "Second")["id"]

        test_client.post(f"/tasks/{first}/start")
        test_client.post(f"/tasks/{second}/start")

        current = test_client.get("/tasks/in-progress").json()["task"]
        assert current["id"] == second
        assert test_client.get(f"/tasks/{first}").json()["task"]["status"] == "pending"

        test_client.post(f"/tasks/{second}/stop")
        assert test_client.get("/tasks/in-progress").json()["task"] is None


class TestSubtaskEndpoints:
    def test_subtask_flow(self, test_client):
        parent_id = _create(test_client, "Plan trip", priority="high")["id"]

        response = test_client.post(f"/tasks/{parent_id}/subtasks", json={"title": "Book flights"})
        assert response.status_code == 201
        flights = response.json()["task"]
        assert flights["parent_task_id"] == parent_id
        assert flights["priority"] == "high"
        hotel = test_client.post(f"/tasks/{parent_id}/subtasks", json={"title": "Book hotel"}).json()["task"]

        order = [hotel["id"], flights["id"]]
        response = test_client.put(f"/tasks/{parent_id}/subtasks/order", json={"subtask_ids": order})
        assert [t["id"] for t in response.json()["tasks"]] == order

        test_client.post(f"/tasks/{flights['id']}/complete")
        parent = test_client.get(f"/tasks/{parent_id}").json()["task"]
        assert parent["status"] == "in_progress"
        assert parent["subtasks"] == order

        promoted = test_client.post(f"/tasks/{hotel['id']}/promote").json()["task"]
        assert promoted["parent_task_id"] is None
        listed = test_client.get(f"/tasks/{parent_id}/subtasks").json()
        assert listed["count"] == 1

    def test_subtask_for_missing_parent(self, test_client):
        response = test_client.post("/tasks/nonexistent-id/subtasks", json={"title": "Orphan"})
        assert response.status_code == 404

    def test_reorder_rejects_unknown_ids(self, test_client):
        parent_id = _create(test_client)["id"]
        response = test_client.put(f"/tasks/{parent_id}/subtasks/order", json={"subtask_ids": ["bogus"]})
        assert response.status_code == 400


class TestSuggestionEndpoints:
    def test_next_suggestion(self, test_client):
        _create(test_client, "Someday")
        urgent = _create(test_client, "Renew passport", priority="urgent", due_date="2026-03-10", due_time="10:00:00")

        suggestion = test_client.get("/suggestions/next", params={"refresh": True}).json()["suggestion"]
        assert suggestion["task"]["id"] == urgent["id"]
        assert suggestion["confidence"] == "recommended"
        assert "Marked as urgent" in suggestion["reasons"]

    def test_no_tasks_no_suggestion(self, test_client):
        assert test_client.get("/suggestions/next").json()["suggestion"] is None

    def test_top_and_ranking(self, test_client):
        for title, category in [("A", "work"), ("B", "work"), ("C", "health")]:
            _create(test_client, title, category=category)

        top = test_client.get("/suggestions/top", params={"refresh": True}).json()["suggestions"]
        assert len(top) == 3

        ranking = test_client.get("/suggestions/ranking").json()
        assert len(ranking["ranked"]) == 3
        assert ranking["computed_at"] == "2026-03-10T09:00:00"
        scores = [r["score"] for r in ranking["ranked"]]
        assert scores == sorted(scores, reverse=True)

    def test_snooze_feedback_reranks(self, test_client):
        first = _create(test_client, "Urgent thing", priority="urgent")
        second = _create(test_client, "Other thing")
        test_client.get("/suggestions/next", params={"refresh": True})

        response = test_client.post(f"/tasks/{first['id']}/feedback", json={"action": "snoozed_1_hour"})
        assert response.status_code == 200
        assert [s["task"]["id"] for s in response.json()["suggestions"]] == [second["id"]]

    def test_feedback_validation(self, test_client):
        task_id = _create(test_client)["id"]
        assert test_client.post(f"/tasks/{task_id}/feedback", json={"action": "meh"}).status_code == 422
        assert test_client.post("/tasks/missing/feedback", json={"action": "viewed_details"}).status_code == 404

    def test_insights_empty_without_history(self, test_client):
        assert test_client.get("/insights").json() == {"insights": []}


class TestCalendarEndpoints:
    def test_conflict_scan(self, test_client, calendar_store):
        calendar_store.create_event("Dentist", datetime(2026, 3, 10, 15, 10), datetime(2026, 3, 10, 16, 0))
        task = _create(test_client, "Deep work", due_date="2026-03-10", due_time="15:00:00", estimated_duration_min=30)

        data = test_client.post("/conflicts/scan").json()
        assert len(data["conflicts"]) == 1
        conflict = data["conflicts"][0]
        assert conflict["task"]["id"] == task["id"]
        assert conflict["type"] == "calendar_event"
        assert conflict["overlap_duration_sec"] == 1200

        listed = test_client.get("/conflicts").json()
        assert listed["last_scan_date"] == "2026-03-10T09:00:00"
        assert len(listed["conflicts"]) == 1

    def test_forward_sync_creates_event(self, test_client, calendar_store):
        task = _create(test_client, "Deep work", due_date="2026-03-10", due_time="15:00:00", estimated_duration_min=45)

        data = test_client.post("/sync/forward").json()
        assert data["ran"] is True
        assert data["created"] == 1

        event = calendar_store.events[0]
        assert event.end == datetime(2026, 3, 10, 15, 45)
        linked = test_client.get(f"/tasks/{task['id']}").json()["task"]
        assert linked["linked_event_id"] == event.event_id

    def test_external_delete_raises_notice(self, test_client, calendar_store, clock):
        task = _create(test_client, "Deep work", due_date="2026-03-10", due_time="15:00:00", estimated_duration_min=45)
        test_client.post("/sync/forward")
        calendar_store.delete_event(calendar_store.events[0])
        clock.advance(seconds=11)

        data = test_client.post("/sync/reverse").json()
        assert data["unlinked"] == 1

        notices = test_client.get("/sync/notices").json()["notices"]
        assert len(notices) == 1
        assert notices[0]["type"] == "linked_event_deleted_externally"
        assert notices[0]["task_id"] == task["id"]
        assert test_client.get(f"/tasks/{task['id']}").json()["task"]["linked_event_id"] is None

    def test_sync_without_access(self, test_client, calendar_store):
        calendar_store.set_access(False)
        assert test_client.post("/sync/forward").json()["ran"] is False
        assert test_client.post("/conflicts/scan").json()["conflicts"] == []
