from datetime import datetime, timedelta, timezone


def iso_in(days=0, hours=0):
    return (datetime.now(timezone.utc) + timedelta(days=days, hours=hours)).isoformat()


def create_assignment_payload(
    title="Lab report",
    description="Write up the titration experiment",
    subject="Chemistry",
    due_date=None,
    priority="medium",
):
    payload = {
        "title": title,
        "description": description,
        "subject": subject,
        "due_date": due_date or iso_in(days=10),
        "priority": priority,
    }
    return payload


def assert_assignment_shape(assignment: dict):
    for key in [
        "id",
        "user_id",
        "title",
        "description",
        "subject",
        "due_date",
        "status",
        "priority",
        "google_event_id",
        "sync_with_calendar",
        "created_at",
        "updated_at",
    ]:
        assert key in assignment
    assert isinstance(assignment["id"], str)
    assert assignment["status"] in ("not-started", "in-progress", "completed")
    assert assignment["priority"] in ("low", "medium", "high")
    datetime.fromisoformat(assignment["due_date"].replace("Z", "+00:00"))
    datetime.fromisoformat(assignment["created_at"].replace("Z", "+00:00"))


class TestHealth:
    def test_health_check(self, client):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] in ("memory", "sqlite")


class TestAuthentication:
    def test_missing_identity_is_unauthorized(self, client):
        assert client.get("/api/v1/assignments/").status_code == 401
        assert client.post("/api/v1/assignments/", json=create_assignment_payload()).status_code == 401
        assert client.get("/api/v1/notifications/").status_code == 401
        assert client.get("/api/v1/calendar/status").status_code == 401

    def test_blank_identity_is_unauthorized(self, client):
        res = client.get("/api/v1/assignments/", headers={"X-User-Id": "  "})
        assert res.status_code == 401
        assert res.json()["detail"] == "Not authenticated"


class TestAssignmentsCRUD:
    def test_create_assignment(self, client, auth_headers):
        res = client.post("/api/v1/assignments/", json=create_assignment_payload(priority="high"), headers=auth_headers)
        assert res.status_code == 201
        assignment = res.json()
        assert_assignment_shape(assignment)
        assert assignment["user_id"] == "student-1"
        assert assignment["status"] == "not-started"
        assert assignment["priority"] == "high"
        assert assignment["google_event_id"] is None

    def test_create_minimal_defaults(self, client, auth_headers):
        payload = {"title": "  Read chapter 3  ", "due_date": "2099-12-25"}
        res = client.post("/api/v1/assignments/", json=payload, headers=auth_headers)
        assert res.status_code == 201
        assignment = res.json()
        assert assignment["title"] == "Read chapter 3"
        assert assignment["description"] == ""
        assert assignment["subject"] == ""
        assert assignment["priority"] == "medium"
        # Dates are promoted to midnight UTC
        assert assignment["due_date"].startswith("2099-12-25T00:00:00")

    def test_create_requires_title_and_due_date(self, client, auth_headers):
        res = client.post("/api/v1/assignments/", json={"title": "No date"}, headers=auth_headers)
        assert res.status_code == 422
        assert res.json()["error"] == "ValidationError"
        res = client.post("/api/v1/assignments/", json={"due_date": "2099-01-01"}, headers=auth_headers)
        assert res.status_code == 422

    def test_create_rejects_unknown_priority(self, client, auth_headers):
        res = client.post(
            "/api/v1/assignments/", json=create_assignment_payload(priority="urgent"), headers=auth_headers
        )
        assert res.status_code == 422

    def test_bad_due_date_and_blank_title_are_validation_errors(self, client, auth_headers):
        for payload in (
            create_assignment_payload(due_date="not-a-date"),
            create_assignment_payload(title="   "),
        ):
            res = client.post("/api/v1/assignments/", json=payload, headers=auth_headers)
            assert res.status_code == 422, payload
            body = res.json()
            assert body["error"] == "ValidationError"
            assert body["message"] == "Request validation failed"
            assert body["detail"][0]["loc"][-1] in ("due_date", "title")

    def test_get_assignment_not_found_and_forbidden(self, client, auth_headers, other_headers):
        created = client.post("/api/v1/assignments/", json=create_assignment_payload(), headers=auth_headers).json()

        res = client.get(f"/api/v1/assignments/{created['id']}", headers=auth_headers)
        assert res.status_code == 200
        assert res.json()["title"] == "Lab report"

        res_404 = client.get("/api/v1/assignments/does-not-exist", headers=auth_headers)
        assert res_404.status_code == 404
        assert res_404.json()["message"] == "Assignment not found"

        res_403 = client.get(f"/api/v1/assignments/{created['id']}", headers=other_headers)
        assert res_403.status_code == 403

    def test_patch_partial_update(self, client, auth_headers):
        created = client.post("/api/v1/assignments/", json=create_assignment_payload(), headers=auth_headers).json()

        res = client.patch(
            f"/api/v1/assignments/{created['id']}",
            json={"status": "in-progress", "title": "Lab report v2"},
            headers=auth_headers,
        )
        assert res.status_code == 200
        patched = res.json()
        assert patched["status"] == "in-progress"
        assert patched["title"] == "Lab report v2"
        # untouched fields keep their values
        assert patched["description"] == "Write up the titration experiment"
        assert patched["subject"] == "Chemistry"
        assert patched["due_date"] == created["due_date"]

    def test_patch_null_clears_optional_text(self, client, auth_headers):
        created = client.post("/api/v1/assignments/", json=create_assignment_payload(), headers=auth_headers).json()
        res = client.patch(f"/api/v1/assignments/{created['id']}", json={"subject": None}, headers=auth_headers)
        assert res.status_code == 200
        assert res.json()["subject"] == ""
        assert res.json()["description"] == "Write up the titration experiment"

    def test_patch_null_required_field_rejected(self, client, auth_headers):
        created = client.post("/api/v1/assignments/", json=create_assignment_payload(), headers=auth_headers).json()
        for body in ({"title": None}, {"due_date": None}, {"status": None}, {"priority": None}):
            res = client.patch(f"/api/v1/assignments/{created['id']}", json=body, headers=auth_headers)
            assert res.status_code == 422, body
            assert res.json()["error"] == "ValidationError"

    def test_patch_not_found_and_forbidden(self, client, auth_headers, other_headers):
        created = client.post("/api/v1/assignments/", json=create_assignment_payload(), headers=auth_headers).json()
        res = client.patch("/api/v1/assignments/nope", json={"title": "x"}, headers=auth_headers)
        assert res.status_code == 404
        res = client.patch(f"/api/v1/assignments/{created['id']}", json={"title": "x"}, headers=other_headers)
        assert res.status_code == 403
        # unchanged for the owner
        assert client.get(f"/api/v1/assignments/{created['id']}", headers=auth_headers).json()["title"] == "Lab report"

    def test_delete_assignment(self, client, auth_headers, other_headers):
        created = client.post("/api/v1/assignments/", json=create_assignment_payload(), headers=auth_headers).json()
        aid = created["id"]

        assert client.delete(f"/api/v1/assignments/{aid}", headers=other_headers).status_code == 403

        res = client.delete(f"/api/v1/assignments/{aid}", headers=auth_headers)
        assert res.status_code == 200
        assert res.json()["message"] == "Assignment deleted successfully"

        assert client.get(f"/api/v1/assignments/{aid}", headers=auth_headers).status_code == 404
        assert client.delete(f"/api/v1/assignments/{aid}", headers=auth_headers).status_code == 404


class TestListFilteringAndSummary:
    def seed(self, client, headers):
        rows = [
            ("Essay", "English", -2, "not-started", "high"),
            ("Old quiz", "Math", -1, "completed", "low"),
            ("Worksheet", "Math", 0, "in-progress", "medium"),
            ("Project", "Computer Science", 5, "not-started", "high"),
            ("Thesis", "English", 40, "not-started", "low"),
        ]
        ids = {}
        for title, subject, days, status, priority in rows:
            due = datetime.now(timezone.utc).replace(hour=12, minute=0, second=0, microsecond=0) + timedelta(days=days)
            res = client.post(
                "/api/v1/assignments/",
                json=create_assignment_payload(
                    title=title, subject=subject, due_date=due.isoformat(), priority=priority
                ),
                headers=headers,
            )
            assert res.status_code == 201
            ids[title] = res.json()["id"]
            if status != "not-started":
                client.patch(f"/api/v1/assignments/{ids[title]}", json={"status": status}, headers=headers)
        return ids

    def titles(self, res):
        assert res.status_code == 200
        return [item["title"] for item in res.json()["items"]]

    def test_list_ordered_by_due_date_and_scoped_to_user(self, client, auth_headers, other_headers):
        self.seed(client, auth_headers)
        client.post("/api/v1/assignments/", json=create_assignment_payload(title="Not mine"), headers=other_headers)

        res = client.get("/api/v1/assignments/", headers=auth_headers)
        assert self.titles(res) == ["Essay", "Old quiz", "Worksheet", "Project", "Thesis"]
        assert res.json()["total"] == 5

    def test_pagination(self, client, auth_headers):
        self.seed(client, auth_headers)
        page = client.get("/api/v1/assignments/?limit=2&offset=2", headers=auth_headers).json()
        assert page["limit"] == 2
        assert page["offset"] == 2
        assert page["total"] == 5
        assert [i["title"] for i in page["items"]] == ["Worksheet", "Project"]

    def test_filters(self, client, auth_headers):
        self.seed(client, auth_headers)
        get = lambda q: self.titles(client.get(f"/api/v1/assignments/?{q}", headers=auth_headers))  # noqa: E731

        assert get("status=completed") == ["Old quiz"]
        assert get("priority=high") == ["Essay", "Project"]
        assert get("subject=math") == ["Old quiz", "Worksheet"]
        assert get("due=today") == ["Worksheet"]
        assert get("due=this-week") == ["Worksheet", "Project"]
        assert get("due=overdue") == ["Essay"]

    def test_invalid_filter_rejected(self, client, auth_headers):
        assert client.get("/api/v1/assignments/?due=someday", headers=auth_headers).status_code == 422
        assert client.get("/api/v1/assignments/?status=done", headers=auth_headers).status_code == 422

    def test_summary(self, client, auth_headers):
        self.seed(client, auth_headers)
        res = client.get("/api/v1/assignments/summary", headers=auth_headers)
        assert res.status_code == 200
        summary = res.json()
        assert summary["total"] == 5
        assert summary["by_status"] == {"not_started": 3, "in_progress": 1, "completed": 1}
        assert summary["overdue"] == 1
        assert summary["due_today"] == 1
        assert summary["due_this_week"] == 2
        assert [u["title"] for u in summary["upcoming"]] == ["Worksheet", "Project", "Thesis"]

    def test_summary_empty(self, client, auth_headers):
        summary = client.get("/api/v1/assignments/summary", headers=auth_headers).json()
        assert summary["total"] == 0
        assert summary["upcoming"] == []
