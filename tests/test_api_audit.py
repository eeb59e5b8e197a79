"""End-to-end tests for the audit query and export routes."""

import csv
import io
import logging

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from core.logging_config import AUDIT_ALERT_LOGGER
from models.audit_log import AuditLogModel
from utils.audit_manager import CSV_COLUMNS
from utils.rate_limiter import RateLimiter

RANGE = {"from": "2026-01-01T00:00:00Z", "to": "2026-01-02T00:00:00Z"}


def _rows(resp):
    return list(csv.reader(io.StringIO(resp.text)))


@pytest.fixture
def populated(client, as_user, make_class, rotate_invite):
    """One class with a rotation, a join and a failed join; a second class untouched."""
    class_id = make_class("Physics 101")
    code = rotate_invite(class_id, {"usageLimit": 3})["code"]
    client.post("/api/student/join", json={"code": code}, headers=as_user("s1", "student"))
    client.post("/api/student/join", json={"code": "BADBAD"}, headers=as_user("s2", "student"))
    other_id = make_class("Chemistry", headers=as_user("t2", "teacher"))
    return {"class_id": class_id, "code": code, "other_id": other_id}


def _admin_query(client, admin_headers, **params):
    resp = client.get("/api/admin/audit", params=params, headers=admin_headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_every_operation_is_audited(client, populated, admin_headers):
    body = _admin_query(client, admin_headers, order="asc")
    actions = [(i["action"], i["result"]) for i in body["items"]]
    assert actions == [
        ("CREATE_CLASS", "success"),
        ("ROTATE_INVITE", "success"),
        ("JOIN_CLASS", "success"),
        ("JOIN_CLASS", "fail"),
        ("CREATE_CLASS", "success"),
    ]
    join = body["items"][2]
    assert join["target"] == f"{populated['class_id']}/{populated['code']}"
    assert join["actor_role"] == "student"
    assert join["origin"] == "testclient"
    failed = body["items"][3]
    assert failed["target"] == "BADBAD"
    assert failed["reason"] == "Invalid/expired/limit code"


def test_teacher_class_audit(client, populated, teacher_headers):
    resp = client.get(
        "/api/teacher/audit",
        params={"classId": populated["class_id"]},
        headers=teacher_headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 3
    assert body["limit"] == 100 and body["offset"] == 0
    # Newest first by default
    assert [i["action"] for i in body["items"]] == ["JOIN_CLASS", "ROTATE_INVITE", "CREATE_CLASS"]


def test_teacher_audit_pagination(client, populated, teacher_headers):
    resp = client.get(
        "/api/teacher/audit",
        params={"classId": populated["class_id"], "limit": 1, "offset": 1, "order": "asc"},
        headers=teacher_headers,
    )
    body = resp.json()
    assert body["total"] == 3
    assert [i["action"] for i in body["items"]] == ["ROTATE_INVITE"]


def test_teacher_audit_requires_class(client, teacher_headers):
    assert client.get("/api/teacher/audit", headers=teacher_headers).status_code == 400


def test_teacher_audit_of_foreign_class_is_denied_and_recorded(
    client, populated, teacher_headers, admin_headers
):
    resp = client.get(
        "/api/teacher/audit",
        params={"classId": populated["other_id"]},
        headers=teacher_headers,
    )
    assert resp.status_code == 403

    denied = _admin_query(client, admin_headers, action="ACCESS_DENIED")["items"]
    assert len(denied) == 1
    assert denied[0]["actor_id"] == "t1"
    assert denied[0]["target"] == f"audit/{populated['other_id']}"
    assert denied[0]["result"] == "fail"


def test_non_admin_global_audit_is_denied_and_recorded(client, populated, teacher_headers, admin_headers):
    assert client.get("/api/admin/audit", headers=teacher_headers).status_code == 403
    assert client.get("/api/admin/audit/export", headers=teacher_headers).status_code == 403

    denied = _admin_query(client, admin_headers, action="ACCESS_DENIED", order="asc")["items"]
    assert [d["reason"] for d in denied] == ["QUERY_AUDIT forbidden", "EXPORT_AUDIT forbidden"]


def test_admin_filters(client, populated, admin_headers):
    assert _admin_query(client, admin_headers, actor_role="student")["total"] == 2
    assert _admin_query(client, admin_headers, actor_id="t2")["total"] == 1
    assert _admin_query(client, admin_headers, classId=populated["other_id"])["total"] == 1
    assert _admin_query(client, admin_headers, **RANGE)["total"] == 5
    assert _admin_query(client, admin_headers, **{"from": "2026-01-02T00:00:00Z"})["total"] == 0


def test_admin_query_rejects_bad_limit(client, admin_headers):
    resp = client.get("/api/admin/audit", params={"limit": 5000}, headers=admin_headers)
    assert resp.status_code == 422


def test_export_page(client, populated, teacher_headers):
    resp = client.get(
        "/api/teacher/audit/export",
        params={"classId": populated["class_id"], "order": "asc"},
        headers=teacher_headers,
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "attachment" in resp.headers["content-disposition"]
    rows = _rows(resp)
    assert rows[0] == CSV_COLUMNS
    assert [r[CSV_COLUMNS.index("action")] for r in rows[1:]] == [
        "CREATE_CLASS",
        "ROTATE_INVITE",
        "JOIN_CLASS",
    ]


def test_export_all_requires_range(client, populated, teacher_headers, admin_headers):
    resp = client.get(
        "/api/teacher/audit/export",
        params={"classId": populated["class_id"], "mode": "all"},
        headers=teacher_headers,
    )
    assert resp.status_code == 400
    resp = client.get(
        "/api/admin/audit/export",
        params={"mode": "all", "from": RANGE["from"]},
        headers=admin_headers,
    )
    assert resp.status_code == 400


def test_export_all_streams_every_match(client, populated, admin_headers):
    resp = client.get(
        "/api/admin/audit/export",
        params={"mode": "all", "order": "asc", **RANGE},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    rows = _rows(resp)
    assert rows[0] == CSV_COLUMNS
    # The export records itself before the rows are read
    assert len(rows) == 1 + 6
    assert rows[-1][CSV_COLUMNS.index("action")] == "EXPORT_AUDIT"

    exports = _admin_query(client, admin_headers, action="EXPORT_AUDIT")["items"]
    assert len(exports) == 1
    assert exports[0]["reason"] == "mode=all"
    assert exports[0]["actor_role"] == "admin"


def test_export_is_audited_for_teacher(client, populated, teacher_headers, admin_headers):
    client.get(
        "/api/teacher/audit/export",
        params={"classId": populated["class_id"]},
        headers=teacher_headers,
    )
    exports = _admin_query(client, admin_headers, action="EXPORT_AUDIT")["items"]
    assert exports[0]["target"] == f"audit/{populated['class_id']}"
    assert exports[0]["reason"] == "mode=page"


def test_admin_audit_rate_limit(app, client, clock, admin_headers):
    app.state.audit_rate_limiter = RateLimiter(2, 60, name="audit", clock=clock)
    assert client.get("/api/admin/audit", headers=admin_headers).status_code == 200
    assert client.get("/api/admin/audit", headers=admin_headers).status_code == 200
    assert client.get("/api/admin/audit", headers=admin_headers).status_code == 429

    clock.advance(61)
    body = _admin_query(client, admin_headers, action="QUERY_AUDIT")
    assert body["total"] == 1
    assert body["items"][0]["reason"] == "Rate limit exceeded"


def test_failed_audit_write_does_not_fail_request(client, teacher_headers, caplog):
    def reject_audit_rows(session, flush_context, instances):
        if any(isinstance(obj, AuditLogModel) for obj in session.new):
            raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk I/O error"))

    event.listen(Session, "before_flush", reject_audit_rows)
    try:
        with caplog.at_level(logging.CRITICAL, logger=AUDIT_ALERT_LOGGER):
            resp = client.post("/api/teacher/classes", json={"name": "A"}, headers=teacher_headers)
    finally:
        event.remove(Session, "before_flush", reject_audit_rows)

    assert resp.status_code == 200
    alerts = [r for r in caplog.records if r.name == AUDIT_ALERT_LOGGER]
    assert len(alerts) == 1
    assert "CREATE_CLASS" in alerts[0].getMessage()

    listed = client.get("/api/teacher/classes", headers=teacher_headers).json()
    assert [c["class_id"] for c in listed] == [resp.json()["class_id"]]
