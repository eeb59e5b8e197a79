"""End-to-end tests for the teacher and student routes."""

from datetime import timedelta

from core.exceptions import InvalidInviteError


def _join(client, as_user, code, student_id="s1"):
    return client.post(
        "/api/student/join", json={"code": code}, headers=as_user(student_id, "student")
    )


def _members(client, class_id, teacher_headers):
    resp = client.get(f"/api/teacher/classes/{class_id}/members", headers=teacher_headers)
    assert resp.status_code == 200
    return [m["student_id"] for m in resp.json()]


def test_physics_101_walkthrough(client, as_user, teacher_headers, make_class, rotate_invite):
    class_id = make_class("Physics 101")
    code_a = rotate_invite(class_id, {"usageLimit": 2})["code"]

    first = _join(client, as_user, code_a, "s1")
    assert first.status_code == 200
    assert first.json() == {"success": True, "classId": class_id}
    assert _join(client, as_user, code_a.lower(), "s2").status_code == 200

    third = _join(client, as_user, code_a, "s3")
    assert third.status_code == 404
    assert third.json()["detail"] == InvalidInviteError.MESSAGE

    audit = client.get(
        "/api/teacher/audit", params={"classId": class_id, "order": "asc"}, headers=teacher_headers
    ).json()
    assert audit["total"] == 4
    assert [i["action"] for i in audit["items"]] == [
        "CREATE_CLASS",
        "ROTATE_INVITE",
        "JOIN_CLASS",
        "JOIN_CLASS",
    ]

    code_b = rotate_invite(class_id)["code"]
    assert code_b != code_a
    # A revoked code fails exactly like an exhausted one
    assert _join(client, as_user, code_a, "s3").json()["detail"] == InvalidInviteError.MESSAGE
    assert _join(client, as_user, code_b, "s3").status_code == 200

    assert _members(client, class_id, teacher_headers) == ["s1", "s2", "s3"]

    resp = client.get("/api/student/classes", headers=as_user("s3", "student"))
    assert resp.json() == {"class_ids": [class_id]}


def test_create_class_requires_name(client, teacher_headers):
    for body in ({}, {"name": "   "}):
        resp = client.post("/api/teacher/classes", json=body, headers=teacher_headers)
        assert resp.status_code == 400


def test_list_my_classes(client, as_user, make_class):
    a = make_class("A")
    make_class("B", headers=as_user("t2", "teacher"))
    resp = client.get("/api/teacher/classes", headers=as_user("t1", "teacher"))
    assert [c["class_id"] for c in resp.json()] == [a]


def test_students_cannot_use_teacher_routes(client, student_headers, make_class):
    class_id = make_class()
    assert client.post(
        "/api/teacher/classes", json={"name": "X"}, headers=student_headers
    ).status_code == 403
    assert client.post(
        f"/api/teacher/classes/{class_id}/invite", headers=student_headers
    ).status_code == 403


def test_teachers_cannot_join(client, teacher_headers, make_class, rotate_invite):
    code = rotate_invite(make_class())["code"]
    resp = client.post("/api/student/join", json={"code": code}, headers=teacher_headers)
    assert resp.status_code == 403


def test_other_teacher_cannot_touch_class(client, as_user, make_class):
    class_id = make_class()
    other = as_user("t2", "teacher")
    assert client.post(f"/api/teacher/classes/{class_id}/invite", headers=other).status_code == 403
    assert client.get(f"/api/teacher/classes/{class_id}/members", headers=other).status_code == 403
    assert client.delete(
        f"/api/teacher/classes/{class_id}/members/s1", headers=other
    ).status_code == 403


def test_unknown_class_is_404(client, teacher_headers):
    resp = client.post("/api/teacher/classes/missing/invite", headers=teacher_headers)
    assert resp.status_code == 404


def test_invite_options(client, teacher_headers, clock, make_class, rotate_invite):
    class_id = make_class()

    default = rotate_invite(class_id)
    assert default["usage_limit"] == 30
    assert default["status"] == "active"

    unlimited = rotate_invite(class_id, {"usageLimit": None})
    assert unlimited["usage_limit"] is None

    expiry = (clock.now() + timedelta(hours=1)).isoformat()
    expiring = rotate_invite(class_id, {"usageLimit": 5, "expiresAt": expiry})
    assert expiring["usage_limit"] == 5
    assert expiring["expires_at"].startswith("2026-01-01T10:00:00")

    current = client.get(f"/api/teacher/classes/{class_id}/invite", headers=teacher_headers)
    assert current.json()["code"] == expiring["code"]

    history = client.get(f"/api/teacher/classes/{class_id}/invites", headers=teacher_headers)
    statuses = [i["status"] for i in history.json()["invitation_codes"]]
    assert statuses.count("active") == 1
    assert statuses.count("revoked") == 2


def test_invite_validation(client, teacher_headers, clock, make_class):
    class_id = make_class()
    url = f"/api/teacher/classes/{class_id}/invite"
    assert client.post(url, json={"usageLimit": 0}, headers=teacher_headers).status_code == 400
    past = (clock.now() - timedelta(minutes=1)).isoformat()
    assert client.post(url, json={"expiresAt": past}, headers=teacher_headers).status_code == 400


def test_no_active_invite_is_404(client, teacher_headers, make_class):
    class_id = make_class()
    resp = client.get(f"/api/teacher/classes/{class_id}/invite", headers=teacher_headers)
    assert resp.status_code == 404


def test_expired_code_is_rejected(client, as_user, clock, make_class, rotate_invite):
    class_id = make_class()
    expiry = (clock.now() + timedelta(minutes=10)).isoformat()
    code = rotate_invite(class_id, {"expiresAt": expiry})["code"]
    clock.advance(10 * 60 + 1)
    resp = _join(client, as_user, code)
    assert resp.status_code == 404
    assert resp.json()["detail"] == InvalidInviteError.MESSAGE


def test_join_requires_code(client, student_headers):
    for body in ({}, {"code": ""}, {"code": "  "}):
        resp = client.post("/api/student/join", json=body, headers=student_headers)
        assert resp.status_code == 400


def test_join_rate_limit(client, as_user, clock, make_class, rotate_invite):
    code = rotate_invite(make_class())["code"]
    for _ in range(5):
        assert _join(client, as_user, "WRONG2").status_code == 404

    limited = _join(client, as_user, code)
    assert limited.status_code == 429

    # Other students are not affected
    assert _join(client, as_user, code, "s2").status_code == 200

    clock.advance(61)
    assert _join(client, as_user, code).status_code == 200


def test_add_and_kick_member(client, teacher_headers, make_class):
    class_id = make_class()
    url = f"/api/teacher/classes/{class_id}/members"

    added = client.post(url, json={"studentId": "s5"}, headers=teacher_headers)
    assert added.json() == {"success": True, "changed": True}
    again = client.post(url, json={"studentId": "s5"}, headers=teacher_headers)
    assert again.json() == {"success": True, "changed": False}
    assert client.post(url, json={}, headers=teacher_headers).status_code == 400

    kicked = client.delete(f"{url}/s5", headers=teacher_headers)
    assert kicked.json() == {"success": True, "changed": True}
    assert client.delete(f"{url}/s5", headers=teacher_headers).json()["changed"] is False
    assert _members(client, class_id, teacher_headers) == []


def test_leave_class(client, as_user, student_headers, teacher_headers, make_class):
    class_id = make_class()
    client.post(
        f"/api/teacher/classes/{class_id}/members",
        json={"studentId": "s1"},
        headers=teacher_headers,
    )

    left = client.post("/api/student/leave", json={"classId": class_id}, headers=student_headers)
    assert left.json() == {"success": True, "changed": True}
    again = client.post("/api/student/leave", json={"classId": class_id}, headers=student_headers)
    assert again.json() == {"success": True, "changed": False}
    assert client.post("/api/student/leave", json={}, headers=student_headers).status_code == 400


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}
    assert client.get("/").json()["health"] == "/api/health"
