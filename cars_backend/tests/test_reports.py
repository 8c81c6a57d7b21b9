"""
Report Lifecycle Tests
======================

Creation, access control, status updates and the one-time resolution reward,
assignment, priority and proof images.
"""

import random
from datetime import datetime

import pytest
from sqlalchemy.exc import SQLAlchemyError

from cars_backend.auth import AuthContext
from cars_backend.config import Settings
from cars_backend.db.models import Role, Report, ReportStatus, PointsLedgerEntry, UserProfile
from cars_backend.db.session import SessionLocal
from cars_backend.errors import InvalidInput, Internal
from cars_backend.reports import (
    CASE_NUMBER_PATTERN,
    ReportService,
    generate_case_number,
    status_transition_allowed,
)


@pytest.fixture
def people(make_user):
    """Owner, outsider, two patrols and an admin."""
    make_user("alice")
    make_user("bob")
    make_user("carol", role="patrol")
    make_user("dave", role="patrol")
    make_user("boss", role="admin")
    make_user("root", role="superAdmin")


@pytest.fixture
def report_id(client, people, auth_header, report_payload):
    resp = client.post("/api/reports", json=report_payload(), headers=auth_header("alice"))
    assert resp.status_code == 201
    return resp.json()["id"]


def _assign(client, auth_header, report_id, patrol="carol"):
    resp = client.put(
        f"/api/reports/{report_id}/assign",
        json={"patrolUserId": patrol},
        headers=auth_header("boss"),
    )
    assert resp.status_code == 200


def _set_status(client, auth_header, report_id, status, as_user="alice"):
    return client.put(
        f"/api/reports/{report_id}/status",
        json={"status": status},
        headers=auth_header(as_user),
    )


def _points(client, auth_header, user_id):
    return client.get("/api/auth/points", headers=auth_header(user_id)).json()["points"]


# =============================================================================
# Case numbers & transitions
# =============================================================================

class TestCaseNumber:

    def test_format(self):
        assert CASE_NUMBER_PATTERN.match(generate_case_number())

    def test_uses_last_six_millis_digits(self):
        now = datetime(2024, 3, 1, 12, 0, 0)
        millis = str(int(now.timestamp() * 1000))
        number = generate_case_number(now, rng=random.Random(7))
        assert number.startswith(f"CARS-{millis[-6:]}-")

    def test_random_suffix_is_zero_padded(self):
        class Zero:
            def randint(self, a, b):
                return 5
        assert generate_case_number(datetime(2024, 1, 1), rng=Zero()).endswith("-005")


class TestStatusTransitions:

    def test_free_by_default(self):
        assert status_transition_allowed(ReportStatus.CLOSED, ReportStatus.VERIFYING)

    def test_strict_table(self):
        assert status_transition_allowed(ReportStatus.VERIFYING, ReportStatus.PENDING, strict=True)
        assert not status_transition_allowed(ReportStatus.VERIFYING, ReportStatus.RESOLVED, strict=True)
        assert status_transition_allowed(ReportStatus.RESOLVED, ReportStatus.RESOLVED, strict=True)

    def test_strict_mode_in_service(self, db, people, context_for):
        service = ReportService(db, Settings(strict_status_transitions=True))
        report = service.create(
            context_for("alice"), title="t", description="d", category="Theft",
            location={"lat": 1.0, "lng": 2.0},
        )
        with pytest.raises(InvalidInput):
            service.update_status(context_for("boss"), report.id, "resolved")
        updated = service.update_status(context_for("boss"), report.id, "pending")
        assert updated.status == ReportStatus.PENDING


# =============================================================================
# Create
# =============================================================================

class TestCreateReport:

    def test_create_sets_defaults(self, client, people, auth_header, report_payload):
        resp = client.post("/api/reports", json=report_payload(), headers=auth_header("alice"))
        assert resp.status_code == 201
        data = resp.json()
        assert data["message"] == "Report created successfully"
        assert CASE_NUMBER_PATTERN.match(data["caseNumber"])
        assert data["status"] == "verifying"
        assert data["priorityLevel"] == 1
        assert data["userId"] == "alice"
        assert data["patrolUserId"] is None
        assert data["proofImages"] == []
        assert data["imageUrls"] == ["https://img.example.com/a.jpg"]
        assert data["location"] == {"lat": 14.5995, "lng": 120.9842}

    @pytest.mark.parametrize("field", ["title", "description", "category"])
    def test_missing_required_text(self, client, people, auth_header, report_payload, field):
        body = report_payload()
        del body[field]
        resp = client.post("/api/reports", json=body, headers=auth_header("alice"))
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == f"Missing required field: {field}"

    def test_blank_title_rejected(self, client, people, auth_header, report_payload):
        resp = client.post("/api/reports", json=report_payload(title="   "), headers=auth_header("alice"))
        assert resp.status_code == 400

    def test_missing_location(self, client, people, auth_header, report_payload):
        body = report_payload()
        del body["location"]
        resp = client.post("/api/reports", json=body, headers=auth_header("alice"))
        assert resp.status_code == 400

    def test_location_out_of_range(self, client, people, auth_header, report_payload):
        resp = client.post(
            "/api/reports",
            json=report_payload(location={"lat": 91, "lng": 0}),
            headers=auth_header("alice"),
        )
        assert resp.status_code == 400

    def test_banned_user_cannot_create(self, client, make_user, auth_header, report_payload):
        make_user("mallory", is_banned=True)
        resp = client.post("/api/reports", json=report_payload(), headers=auth_header("mallory"))
        assert resp.status_code == 403
        assert resp.json()["error"]["message"] == "Account is banned"


# =============================================================================
# Read access
# =============================================================================

class TestReadReport:

    @pytest.mark.parametrize("caller,expected", [
        ("alice", 200),
        ("bob", 403),
        ("dave", 403),
        ("boss", 200),
        ("root", 200),
    ])
    def test_get_by_role(self, client, auth_header, report_id, caller, expected):
        resp = client.get(f"/api/reports/{report_id}", headers=auth_header(caller))
        assert resp.status_code == expected

    def test_assigned_patrol_can_read(self, client, auth_header, report_id):
        _assign(client, auth_header, report_id)
        resp = client.get(f"/api/reports/{report_id}", headers=auth_header("carol"))
        assert resp.status_code == 200
        assert resp.json()["patrolUserId"] == "carol"

    def test_missing_report(self, client, people, auth_header):
        resp = client.get("/api/reports/does-not-exist", headers=auth_header("boss"))
        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "Report not found"

    def test_my_reports_only_own(self, client, auth_header, report_id, report_payload):
        client.post("/api/reports", json=report_payload(title="Other"), headers=auth_header("bob"))
        mine = client.get("/api/reports/my-reports", headers=auth_header("alice")).json()["reports"]
        assert [r["id"] for r in mine] == [report_id]

    def test_list_all_requires_admin(self, client, auth_header, report_id):
        assert client.get("/api/reports", headers=auth_header("alice")).status_code == 403
        assert client.get("/api/reports", headers=auth_header("carol")).status_code == 403

    def test_list_all_with_status_filter(self, client, auth_header, report_id, report_payload):
        other = client.post("/api/reports", json=report_payload(), headers=auth_header("bob")).json()["id"]
        _set_status(client, auth_header, other, "pending", as_user="boss")

        all_reports = client.get("/api/reports", headers=auth_header("boss")).json()
        assert all_reports["total"] == 2

        pending = client.get("/api/reports?status=pending", headers=auth_header("boss")).json()
        assert [r["id"] for r in pending["reports"]] == [other]

    def test_list_all_pagination(self, client, auth_header, report_id, report_payload):
        for title in ("Second", "Third"):
            client.post("/api/reports", json=report_payload(title=title), headers=auth_header("alice"))

        page = client.get("/api/reports?limit=2", headers=auth_header("boss")).json()
        assert page["total"] == 3
        assert len(page["reports"]) == 2

        rest = client.get("/api/reports?limit=2&offset=2", headers=auth_header("boss")).json()
        assert rest["total"] == 3
        assert len(rest["reports"]) == 1

        seen = {r["id"] for r in page["reports"]} | {r["id"] for r in rest["reports"]}
        assert len(seen) == 3

    def test_list_all_rejects_zero_limit(self, client, auth_header, report_id):
        assert client.get("/api/reports?limit=0", headers=auth_header("boss")).status_code == 400

    def test_list_all_invalid_status_filter(self, client, auth_header, report_id):
        resp = client.get("/api/reports?status=lost", headers=auth_header("boss"))
        assert resp.status_code == 400

    def test_assigned_list(self, client, auth_header, report_id):
        _assign(client, auth_header, report_id)
        assigned = client.get("/api/reports/assigned", headers=auth_header("carol")).json()["reports"]
        assert [r["id"] for r in assigned] == [report_id]
        assert client.get("/api/reports/assigned", headers=auth_header("dave")).json()["reports"] == []

    def test_assigned_list_requires_patrol(self, client, auth_header, report_id):
        resp = client.get("/api/reports/assigned", headers=auth_header("alice"))
        assert resp.status_code == 403


# =============================================================================
# Status & reward
# =============================================================================

class TestStatusUpdate:

    def test_status_required(self, client, auth_header, report_id):
        resp = client.put(f"/api/reports/{report_id}/status", json={}, headers=auth_header("boss"))
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Status is required"

    def test_unknown_status(self, client, auth_header, report_id):
        resp = _set_status(client, auth_header, report_id, "teleported", as_user="boss")
        assert resp.status_code == 400

    def test_outsider_cannot_update(self, client, auth_header, report_id):
        resp = _set_status(client, auth_header, report_id, "pending", as_user="bob")
        assert resp.status_code == 403

    def test_assigned_patrol_updates(self, client, auth_header, report_id):
        _assign(client, auth_header, report_id)
        resp = _set_status(client, auth_header, report_id, "in_progress", as_user="carol")
        assert resp.status_code == 200
        assert resp.json()["message"] == "Report status updated successfully"

    def test_resolution_awards_owner_once(self, client, auth_header, report_id):
        resp = _set_status(client, auth_header, report_id, "resolved", as_user="boss")
        assert resp.status_code == 200
        assert _points(client, auth_header, "alice") == 10

        _set_status(client, auth_header, report_id, "resolved", as_user="boss")
        assert _points(client, auth_header, "alice") == 10

        _set_status(client, auth_header, report_id, "in_progress", as_user="boss")
        _set_status(client, auth_header, report_id, "resolved", as_user="boss")
        assert _points(client, auth_header, "alice") == 10

        report = client.get(f"/api/reports/{report_id}", headers=auth_header("alice")).json()
        assert report["pointsAwarded"] is True

    def test_resolution_writes_ledger_entry(self, client, db, auth_header, report_id):
        _set_status(client, auth_header, report_id, "resolved", as_user="boss")
        entries = db.query(PointsLedgerEntry).filter(PointsLedgerEntry.user_id == "alice").all()
        assert len(entries) == 1
        assert entries[0].points == 10
        assert entries[0].balance_after == 10
        assert entries[0].report_id == report_id
        assert entries[0].added_by == "boss"

    def test_reward_goes_to_owner_not_caller(self, client, auth_header, report_id):
        _assign(client, auth_header, report_id)
        _set_status(client, auth_header, report_id, "resolved", as_user="carol")
        assert _points(client, auth_header, "alice") == 10
        assert _points(client, auth_header, "carol") == 0


class TestAwardConsistency:

    BOSS = AuthContext(user_id="boss", role=Role.ADMIN, display_name="Boss", email=None)

    def test_interleaved_sessions_award_once(self, db, report_id):
        first, second = SessionLocal(), SessionLocal()
        try:
            # both writers see the report as not yet rewarded
            for session in (first, second):
                loaded = session.query(Report).filter(Report.id == report_id).one()
                assert loaded.points_awarded is False

            ReportService(first).update_status(self.BOSS, report_id, "resolved")
            ReportService(second).update_status(self.BOSS, report_id, "resolved")
        finally:
            first.close()
            second.close()

        assert db.query(UserProfile).filter(UserProfile.id == "alice").one().points == 10
        assert db.query(PointsLedgerEntry).filter(PointsLedgerEntry.user_id == "alice").count() == 1

    def test_failed_ledger_write_rolls_back_resolution(self, db, report_id, monkeypatch):
        import cars_backend.users as users_module

        def broken_entry(**kwargs):
            raise SQLAlchemyError("ledger write failed")

        monkeypatch.setattr(users_module, "PointsLedgerEntry", broken_entry)
        with pytest.raises(Internal):
            ReportService(db).update_status(self.BOSS, report_id, "resolved")

        db.expire_all()
        report = db.query(Report).filter(Report.id == report_id).one()
        assert report.status == ReportStatus.VERIFYING
        assert report.points_awarded is False
        assert db.query(UserProfile).filter(UserProfile.id == "alice").one().points == 0

        # a later attempt still pays out
        monkeypatch.undo()
        ReportService(db).update_status(self.BOSS, report_id, "resolved")
        assert db.query(UserProfile).filter(UserProfile.id == "alice").one().points == 10


# =============================================================================
# Assignment, priority, proof
# =============================================================================

class TestAssign:

    def test_non_admin_forbidden(self, client, auth_header, report_id):
        resp = client.put(
            f"/api/reports/{report_id}/assign",
            json={"patrolUserId": "carol"},
            headers=auth_header("carol"),
        )
        assert resp.status_code == 403

    def test_patrol_id_required(self, client, auth_header, report_id):
        resp = client.put(f"/api/reports/{report_id}/assign", json={}, headers=auth_header("boss"))
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Patrol user ID is required"

    @pytest.mark.parametrize("target", ["bob", "boss", "nobody"])
    def test_target_must_be_patrol(self, client, auth_header, report_id, target):
        resp = client.put(
            f"/api/reports/{report_id}/assign",
            json={"patrolUserId": target},
            headers=auth_header("boss"),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Invalid patrol user"

    def test_missing_report(self, client, people, auth_header):
        resp = client.put(
            "/api/reports/nope/assign",
            json={"patrolUserId": "carol"},
            headers=auth_header("boss"),
        )
        assert resp.status_code == 404

    def test_reassignment_replaces_patrol(self, client, auth_header, report_id):
        _assign(client, auth_header, report_id, "carol")
        _assign(client, auth_header, report_id, "dave")
        assert client.get(f"/api/reports/{report_id}", headers=auth_header("carol")).status_code == 403
        assert client.get(f"/api/reports/{report_id}", headers=auth_header("dave")).status_code == 200


class TestPriority:

    @pytest.mark.parametrize("level", [0, 6, -1])
    def test_out_of_range(self, client, auth_header, report_id, level):
        resp = client.put(
            f"/api/reports/{report_id}/priority",
            json={"priorityLevel": level},
            headers=auth_header("boss"),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Priority level must be between 1 and 5"

    def test_string_rejected(self, client, auth_header, report_id):
        resp = client.put(
            f"/api/reports/{report_id}/priority",
            json={"priorityLevel": "3"},
            headers=auth_header("boss"),
        )
        assert resp.status_code == 400

    def test_valid_priority(self, client, auth_header, report_id):
        resp = client.put(
            f"/api/reports/{report_id}/priority",
            json={"priorityLevel": 4},
            headers=auth_header("boss"),
        )
        assert resp.status_code == 200
        report = client.get(f"/api/reports/{report_id}", headers=auth_header("boss")).json()
        assert report["priorityLevel"] == 4

    def test_owner_cannot_prioritize(self, client, auth_header, report_id):
        resp = client.put(
            f"/api/reports/{report_id}/priority",
            json={"priorityLevel": 5},
            headers=auth_header("alice"),
        )
        assert resp.status_code == 403


class TestProofImages:

    def test_assigned_patrol_uploads(self, client, auth_header, report_id):
        _assign(client, auth_header, report_id)
        resp = client.put(
            f"/api/reports/{report_id}/proof",
            json={"proofImages": ["https://img.example.com/proof1.jpg"]},
            headers=auth_header("carol"),
        )
        assert resp.status_code == 200
        assert resp.json()["proofImages"] == ["https://img.example.com/proof1.jpg"]

    def test_owner_cannot_upload_proof(self, client, auth_header, report_id):
        resp = client.put(
            f"/api/reports/{report_id}/proof",
            json={"proofImages": ["https://img.example.com/fake.jpg"]},
            headers=auth_header("alice"),
        )
        assert resp.status_code == 403

    def test_admin_appends(self, client, auth_header, report_id):
        for url in ("https://img.example.com/1.jpg", "https://img.example.com/2.jpg"):
            client.put(
                f"/api/reports/{report_id}/proof",
                json={"proofImages": [url]},
                headers=auth_header("boss"),
            )
        report = client.get(f"/api/reports/{report_id}", headers=auth_header("boss")).json()
        assert len(report["proofImages"]) == 2

    def test_patrol_assigned_to_own_report_uploads(self, client, people, auth_header, report_payload):
        own = client.post("/api/reports", json=report_payload(), headers=auth_header("carol")).json()["id"]
        _assign(client, auth_header, own, "carol")
        resp = client.put(
            f"/api/reports/{own}/proof",
            json={"proofImages": ["https://img.example.com/own.jpg"]},
            headers=auth_header("carol"),
        )
        assert resp.status_code == 200

    def test_empty_list_rejected(self, client, auth_header, report_id):
        resp = client.put(
            f"/api/reports/{report_id}/proof",
            json={"proofImages": []},
            headers=auth_header("boss"),
        )
        assert resp.status_code == 400
