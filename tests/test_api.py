"""HTTP tests through the FastAPI application."""
import json

import pytest
from fastapi.testclient import TestClient

from taskhub.main import create_app

API = "/api/v1"


def _task_data(seed, **overrides):
    data = {
        "project_id": seed.apollo,
        "title": "Prepare demo",
        "description": "Slides and script",
        "priority_bucket": 6,
        "status": "To Do",
        "assignee_ids": ["u-alice", "u-bob"],
        "deadline": "2030-05-01T18:00:00",
        "tags": ["demo"],
    }
    data.update(overrides)
    return data


@pytest.fixture
def created_task(client, auth_headers, seed):
    response = client.post(
        f"{API}/tasks",
        data={"taskData": json.dumps(_task_data(seed))},
        headers=auth_headers("u-alice"),
    )
    assert response.status_code == 201
    return response.json()["taskId"]


class TestServiceEndpoints:

    def test_root(self, client):
        assert client.get("/").json()["status"] == "running"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["database"] == "connected"

    def test_health_reports_database_outage(self):
        def broken_factory():
            raise RuntimeError("database down")

        client = TestClient(create_app(session_factory=broken_factory))
        response = client.get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"


class TestAuthentication:

    def test_login(self, client):
        response = client.post(f"{API}/auth/login", json={"email": "maya@acme.com", "password": "secret123"})
        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == "u-maya"
        assert body["roles"] == ["manager"]
        assert body["redirect_path"] == "/schedule"
        assert body["token_type"] == "bearer"

    def test_staff_redirected_to_report(self, client):
        response = client.post(f"{API}/auth/login", json={"email": "alice@acme.com", "password": "secret123"})
        assert response.json()["redirect_path"] == "/report"

    def test_bad_credentials(self, client):
        response = client.post(f"{API}/auth/login", json={"email": "alice@acme.com", "password": "nope"})
        assert response.status_code == 401
        assert response.json() == {
            "error": "Invalid login credentials",
            "status_code": 401,
            "path": f"{API}/auth/login",
        }

    def test_login_token_works(self, client):
        token = client.post(
            f"{API}/auth/login", json={"email": "alice@acme.com", "password": "secret123"}
        ).json()["access_token"]
        response = client.get(f"{API}/user/role", headers={"Authorization": f"Bearer {token}"})
        assert response.json() == {"roles": ["staff"]}

    def test_missing_token(self, client):
        response = client.get(f"{API}/tasks")
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized", "status_code": 401, "path": f"{API}/tasks"}

    def test_invalid_token(self, client):
        response = client.get(f"{API}/tasks", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_token_for_deleted_user(self, client, auth_headers):
        response = client.get(f"{API}/tasks", headers=auth_headers("u-ghost"))
        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized"

    def test_process_time_header(self, client, auth_headers):
        response = client.get(f"{API}/user/role", headers=auth_headers("u-alice"))
        assert "X-Process-Time" in response.headers

    def test_unknown_route_uses_error_body(self, client, auth_headers):
        response = client.get(f"{API}/nothing-here", headers=auth_headers("u-alice"))
        assert response.status_code == 404
        assert response.json()["path"] == f"{API}/nothing-here"


class TestReportsGate:

    def test_staff_forbidden(self, client, auth_headers):
        response = client.get(f"{API}/reports", headers=auth_headers("u-alice"))
        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden: Admin access required"

    def test_admin_allowed(self, client, auth_headers):
        response = client.get(f"{API}/reports", headers=auth_headers("u-adam"))
        assert response.status_code == 200
        assert response.json()["kind"] == "task"

    def test_admin_filter_options(self, client, auth_headers):
        response = client.get(f"{API}/reports?action=projects", headers=auth_headers("u-adam"))
        assert response.status_code == 200
        assert response.json() == []

    def test_invalid_action(self, client, auth_headers):
        response = client.get(f"{API}/reports?action=bogus", headers=auth_headers("u-adam"))
        assert response.status_code == 400

    def test_role_lookup_failure(self, auth_headers):
        def broken_factory():
            raise RuntimeError("database down")

        client = TestClient(create_app(session_factory=broken_factory))
        response = client.get(f"{API}/reports", headers=auth_headers("u-adam"))
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to verify permissions"


class TestTaskRoutes:

    def test_create_with_attachment(self, client, auth_headers, seed, storage):
        response = client.post(
            f"{API}/tasks",
            data={"taskData": json.dumps(_task_data(seed))},
            files={"file_0": ("agenda.txt", b"1. intro", "text/plain")},
            headers=auth_headers("u-alice"),
        )
        assert response.status_code == 201
        assert response.json()["success"] is True
        task_id = response.json()["taskId"]

        task = client.get(f"{API}/tasks/{task_id}", headers=auth_headers("u-alice")).json()
        [attachment] = task["attachments"]
        assert attachment["public_url"].endswith(f"{API}/tasks/{task_id}/attachments/{attachment['id']}")
        assert storage.exists(attachment["storage_path"])

    def test_download_attachment(self, client, auth_headers, seed):
        task_id = client.post(
            f"{API}/tasks",
            data={"taskData": json.dumps(_task_data(seed))},
            files={"file_0": ("agenda.txt", b"1. intro", "text/plain")},
            headers=auth_headers("u-alice"),
        ).json()["taskId"]
        [attachment] = client.get(f"{API}/tasks/{task_id}", headers=auth_headers("u-alice")).json()["attachments"]
        url = f"{API}/tasks/{task_id}/attachments/{attachment['id']}"

        response = client.get(url, headers=auth_headers("u-bob"))
        assert response.status_code == 200
        assert response.content == b"1. intro"
        assert response.headers["content-type"].startswith("text/plain")
        assert 'filename="agenda.txt"' in response.headers["content-disposition"]

        assert client.get(url).status_code == 401
        hidden = client.get(url, headers=auth_headers("u-sam"))
        assert hidden.status_code == 404
        assert hidden.json()["error"] == "Task not found"

        missing = client.get(f"{API}/tasks/{task_id}/attachments/999", headers=auth_headers("u-alice"))
        assert missing.status_code == 404
        assert missing.json()["error"] == "Attachment not found"

    def test_create_missing_task_data(self, client, auth_headers):
        response = client.post(f"{API}/tasks", data={"other": "x"}, headers=auth_headers("u-alice"))
        assert response.status_code == 400
        assert response.json()["error"] == "Missing task data"

    def test_create_invalid_json(self, client, auth_headers):
        response = client.post(f"{API}/tasks", data={"taskData": "{oops"}, headers=auth_headers("u-alice"))
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid task data format"

    def test_create_validation_error(self, client, auth_headers, seed):
        data = _task_data(seed, assignee_ids=[])
        response = client.post(f"{API}/tasks", data={"taskData": json.dumps(data)}, headers=auth_headers("u-alice"))
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required field: assignee_ids"

    def test_list_tasks(self, client, auth_headers, created_task):
        body = client.get(f"{API}/tasks", headers=auth_headers("u-bob")).json()
        assert body["total"] == 1
        task = body["tasks"][0]
        assert task["id"] == created_task
        assert task["deadline"] == "2030-05-01T18:00:00+08:00"
        assert task["tags"] == ["demo"]
        assert task["creator"]["creator_id"] == "u-alice"

    def test_list_helpers(self, client, auth_headers):
        users = client.get(f"{API}/tasks?action=users", headers=auth_headers("u-alice")).json()["users"]
        assert len(users) == 6
        projects = client.get(f"{API}/tasks?action=projects", headers=auth_headers("u-alice")).json()["projects"]
        assert [p["name"] for p in projects] == ["Apollo", "Zephyr"]

        response = client.get(f"{API}/tasks?action=bogus", headers=auth_headers("u-alice"))
        assert response.status_code == 400

    def test_get_task_not_visible(self, client, auth_headers, created_task):
        response = client.get(f"{API}/tasks/{created_task}", headers=auth_headers("u-sam"))
        assert response.status_code == 404
        assert response.json()["error"] == "Task not found"

    def test_create_subtask(self, client, auth_headers, seed, created_task):
        response = client.post(
            f"{API}/tasks/{created_task}/subtasks",
            data={"taskData": json.dumps(_task_data(seed, title="Book room"))},
            headers=auth_headers("u-alice"),
        )
        assert response.status_code == 201
        parent = client.get(f"{API}/tasks/{created_task}", headers=auth_headers("u-alice")).json()
        assert [s["title"] for s in parent["subtasks"]] == ["Book room"]

    def test_export_ics(self, client, auth_headers, created_task):
        response = client.get(f"{API}/tasks/export.ics", headers=auth_headers("u-alice"))
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/calendar")
        assert f"UID:task-{created_task}@taskhub" in response.text


class TestTaskPatch:

    def _patch(self, client, headers, task_id, **body):
        return client.patch(f"{API}/tasks/{task_id}", json=body, headers=headers)

    def test_update_title(self, client, auth_headers, created_task):
        response = self._patch(client, auth_headers("u-bob"), created_task, action="updateTitle", title="Demo v2")
        assert response.status_code == 200
        assert response.json() == {"id": created_task, "title": "Demo v2"}

    def test_permission_denied(self, client, auth_headers, created_task):
        response = self._patch(client, auth_headers("u-sam"), created_task, action="updateNotes", notes="x")
        assert response.status_code == 403

    def test_unknown_action(self, client, auth_headers, created_task):
        response = self._patch(client, auth_headers("u-alice"), created_task, action="explode")
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid action"

    def test_invalid_content_type(self, client, auth_headers, created_task):
        headers = {**auth_headers("u-alice"), "Content-Type": "text/plain"}
        response = client.patch(f"{API}/tasks/{created_task}", content=b"hello", headers=headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid content type"

    def test_update_priority_from_string(self, client, auth_headers, created_task):
        response = self._patch(
            client, auth_headers("u-alice"), created_task, action="updatePriority", priority_bucket="8"
        )
        assert response.json()["priority_bucket"] == 8

    def test_tags_and_comments(self, client, auth_headers, created_task):
        headers = auth_headers("u-alice")
        assert self._patch(client, headers, created_task, action="addTag", tag_name="urgent").json()["tag"] == "urgent"
        comment = self._patch(client, headers, created_task, action="addComment", content="On it").json()["comment"]

        edited = self._patch(
            client, headers, created_task, action="updateComment", commentId=comment["id"], content="Done"
        )
        assert edited.json()["comment"]["content"] == "Done"

        forbidden = self._patch(client, headers, created_task, action="deleteComment", commentId=comment["id"])
        assert forbidden.status_code == 403
        deleted = self._patch(
            client, auth_headers("u-adam"), created_task, action="deleteComment", commentId=comment["id"]
        )
        assert deleted.json()["message"] == "Comment deleted successfully"

    def test_comment_from_another_task(self, client, auth_headers, seed, created_task):
        headers = auth_headers("u-alice")
        other = client.post(
            f"{API}/tasks", data={"taskData": json.dumps(_task_data(seed, title="Other"))}, headers=headers
        ).json()["taskId"]
        comment = self._patch(client, headers, created_task, action="addComment", content="On it").json()["comment"]

        edited = self._patch(client, headers, other, action="updateComment", commentId=comment["id"], content="x")
        assert edited.status_code == 404
        assert edited.json()["error"] == "Comment not found"
        deleted = self._patch(
            client, auth_headers("u-adam"), other, action="deleteComment", commentId=comment["id"]
        )
        assert deleted.status_code == 404

    def test_recurrence(self, client, auth_headers, created_task):
        response = self._patch(
            client, auth_headers("u-alice"), created_task,
            action="updateRecurrence", recurrenceInterval=30, recurrenceDate="2030-01-01T09:00:00",
        )
        assert response.json()["recurrence"]["recurrence_interval"] == 30

    def test_update_multiple(self, client, auth_headers, created_task):
        response = self._patch(
            client, auth_headers("u-alice"), created_task,
            action="updateMultiple", updates={"status": "Completed", "notes": "wrapped up"},
        )
        assert set(response.json()["results"]) == {"status", "notes"}

    def test_attachments_via_multipart(self, client, auth_headers, created_task):
        headers = auth_headers("u-alice")
        response = client.patch(
            f"{API}/tasks/{created_task}",
            data={"action": "addAttachments"},
            files={"file_0": ("plan.pdf", b"%PDF-1.4", "application/pdf")},
            headers=headers,
        )
        assert response.status_code == 200
        [attachment] = response.json()["attachments"]

        removed = self._patch(
            client, headers, created_task, action="removeAttachment", attachment_id=attachment["id"]
        )
        assert removed.json()["removed_path"] == attachment["storage_path"]

    def test_manager_removes_assignee(self, client, auth_headers, created_task):
        response = self._patch(
            client, auth_headers("u-maya"), created_task, action="removeAssignee", assignee_id="u-bob"
        )
        assert response.json() == {"success": True, "assignee_id": "u-bob"}

    def test_link_subtask(self, client, auth_headers, seed, created_task):
        other = client.post(
            f"{API}/tasks",
            data={"taskData": json.dumps(_task_data(seed, title="Loose end"))},
            headers=auth_headers("u-alice"),
        ).json()["taskId"]
        response = self._patch(client, auth_headers("u-alice"), created_task, action="linkSubtask", subtaskId=other)
        assert response.json()["message"] == "Subtask linked successfully"

    def test_outsider_cannot_link_subtask(self, client, auth_headers, seed, created_task):
        own = client.post(
            f"{API}/tasks",
            data={"taskData": json.dumps(_task_data(seed, title="Side quest", assignee_ids=["u-sam"]))},
            headers=auth_headers("u-sam"),
        ).json()["taskId"]

        response = self._patch(client, auth_headers("u-sam"), created_task, action="linkSubtask", subtaskId=own)
        assert response.status_code == 403
        moved = self._patch(client, auth_headers("u-sam"), own, action="linkSubtask", subtaskId=created_task)
        assert moved.status_code == 403

        parent = client.get(f"{API}/tasks/{created_task}", headers=auth_headers("u-alice")).json()
        assert parent["subtasks"] == []


class TestArchiveRoute:

    def test_manager_archives(self, client, auth_headers, created_task):
        response = client.patch(
            f"{API}/tasks/{created_task}/archive", json={"is_archived": True}, headers=auth_headers("u-maya")
        )
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "taskId": created_task,
            "affectedCount": 1,
            "message": "Task and 0 subtask(s) archived successfully",
        }
        assert client.get(f"{API}/tasks", headers=auth_headers("u-alice")).json()["total"] == 0

    def test_staff_cannot_archive(self, client, auth_headers, created_task):
        response = client.patch(
            f"{API}/tasks/{created_task}/archive", json={"is_archived": True}, headers=auth_headers("u-alice")
        )
        assert response.status_code == 403

    def test_flag_must_be_boolean(self, client, auth_headers, created_task):
        response = client.patch(
            f"{API}/tasks/{created_task}/archive", json={"is_archived": "yes"}, headers=auth_headers("u-maya")
        )
        assert response.status_code == 400
        assert response.json()["error"] == "is_archived must be a boolean"

    def test_bad_json(self, client, auth_headers, created_task):
        headers = {**auth_headers("u-maya"), "Content-Type": "application/json"}
        response = client.patch(f"{API}/tasks/{created_task}/archive", content=b"{bad", headers=headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid JSON in request body"

    def test_unknown_task(self, client, auth_headers):
        response = client.patch(f"{API}/tasks/999/archive", json={"is_archived": True}, headers=auth_headers("u-maya"))
        assert response.status_code == 404


class TestNotificationRoutes:

    def test_flow(self, client, auth_headers, created_task):
        headers = auth_headers("u-bob")
        listing = client.get(f"{API}/notifications", headers=headers).json()
        assert listing["total"] == 1
        notification = listing["notifications"][0]
        assert notification["title"] == "New Task Assignment"

        assert client.get(f"{API}/notifications/unread-count", headers=headers).json() == {"count": 1}
        read = client.patch(f"{API}/notifications/{notification['id']}/read", headers=headers).json()
        assert read["read"] is True

        archived = client.patch(f"{API}/notifications/{notification['id']}/archive", headers=headers).json()
        assert archived["is_archived"] is True
        assert client.get(f"{API}/notifications", headers=headers).json()["total"] == 0

    def test_read_all(self, client, auth_headers, created_task):
        response = client.patch(f"{API}/notifications/read-all", headers=auth_headers("u-bob"))
        assert response.json() == {"success": True, "updated": 1}

    def test_other_users_notification(self, client, auth_headers, created_task):
        notification_id = client.get(
            f"{API}/notifications", headers=auth_headers("u-bob")
        ).json()["notifications"][0]["id"]
        response = client.patch(f"{API}/notifications/{notification_id}/read", headers=auth_headers("u-sam"))
        assert response.status_code == 404


class TestScheduleRoutes:

    def test_schedule_window(self, client, auth_headers, created_task):
        response = client.get(
            f"{API}/schedule?startDate=2030-01-01T00:00:00Z&endDate=2031-01-01T00:00:00Z",
            headers=auth_headers("u-alice"),
        )
        assert [t["id"] for t in response.json()] == [created_task]

    def test_update_deadline(self, client, auth_headers, created_task):
        response = client.patch(
            f"{API}/schedule",
            json={"taskId": created_task, "deadline": "2030-06-01T09:00:00+08:00"},
            headers=auth_headers("u-alice"),
        )
        assert response.json() == {
            "success": True, "taskId": created_task, "deadline": "2030-06-01T09:00:00+08:00"
        }

    def test_update_deadline_missing_fields(self, client, auth_headers):
        response = client.patch(f"{API}/schedule", json={"taskId": 1}, headers=auth_headers("u-alice"))
        assert response.status_code == 400
        assert response.json()["error"] == "Missing taskId or deadline"

    def test_projects_and_staff(self, client, auth_headers, seed, created_task):
        headers = auth_headers("u-maya")
        projects = client.get(f"{API}/schedule/projects", headers=headers).json()
        assert [p["name"] for p in projects] == ["Apollo", "Zephyr"]

        staff = client.get(f"{API}/schedule/staff?projectIds={seed.apollo}", headers=headers).json()
        assert {s["id"] for s in staff} == {"u-alice", "u-bob"}
        assert client.get(f"{API}/schedule/staff", headers=headers).json() == []

