from sqlalchemy import text

from helpers import fetch_audit, seed_assignment, seed_rep, sign_in


def rep_form(**overrides):
    form = {
        "first_name": "Mary",
        "last_name": "Watson",
        "email": "mary@example.com",
        "phone": "5551234567",
        "agency": "",
        "channel": "Golf",
    }
    form.update(overrides)
    return form


def test_admin_forms_redirect_without_session(client_and_engine):
    client, engine = client_and_engine
    seed_rep(engine, 1, "Mary", "Watson", "mary@example.com", "Golf")

    responses = [
        client.post("/admin/reps", data=rep_form(email="new@example.com"), follow_redirects=False),
        client.post("/admin/reps/1", data=rep_form(), follow_redirects=False),
        client.post("/admin/reps/1/delete", follow_redirects=False),
        client.post(
            "/admin/assignments",
            data={"zip_code": "12345", "channel": "Golf", "rep_id": "1"},
            follow_redirects=False,
        ),
        client.post("/admin/assignments/delete", data={"zip_code": "12345", "channel": "Golf"}, follow_redirects=False),
    ]

    assert [r.status_code for r in responses] == [303] * len(responses)
    assert {r.headers["location"] for r in responses} == {"/login?from=/admin"}
    with engine.begin() as conn:
        assert conn.execute(text("SELECT COUNT(*) FROM reps")).scalar_one() == 1


def test_admin_create_rep_form(client_and_engine):
    client, engine = client_and_engine
    sign_in(client)

    response = client.post("/admin/reps", data=rep_form(email=" Mary@Example.com "), follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/admin"
    with engine.begin() as conn:
        row = conn.execute(text("SELECT email, agency, channel FROM reps")).mappings().one()
    assert dict(row) == {"email": "mary@example.com", "agency": None, "channel": "Golf"}
    assert fetch_audit(engine)[-1]["description"] == "Created rep: Mary Watson (mary@example.com) - Golf"

    page = client.get("/admin")
    assert "(555) 123-4567" in page.text


def test_admin_create_rep_form_keeps_values_on_error(client_and_engine):
    client, engine = client_and_engine
    seed_rep(engine, 1, "Mary", "Watson", "mary@example.com", "Golf")
    sign_in(client)

    invalid = client.post("/admin/reps", data=rep_form(first_name="Ann", email="ann-at-example"), follow_redirects=False)
    duplicate = client.post("/admin/reps", data=rep_form(first_name="Ann"), follow_redirects=False)

    assert invalid.status_code == 400
    assert "Invalid email: ann-at-example" in invalid.text
    assert 'value="ann-at-example"' in invalid.text
    assert duplicate.status_code == 409
    assert "A rep with this email already exists" in duplicate.text
    with engine.begin() as conn:
        assert conn.execute(text("SELECT COUNT(*) FROM reps")).scalar_one() == 1


def test_admin_edit_rep_form(client_and_engine):
    client, engine = client_and_engine
    seed_rep(engine, 1, "Mary", "Watson", "mary@example.com", "Golf", agency="Schauben and Co.")
    sign_in(client)

    edit_page = client.get("/admin", params={"edit": 1})
    response = client.post("/admin/reps/1", data=rep_form(last_name="Holmes"), follow_redirects=False)

    assert edit_page.status_code == 200
    assert "Edit Rep" in edit_page.text
    assert 'action="/admin/reps/1"' in edit_page.text
    assert 'value="Schauben and Co."' in edit_page.text
    assert response.status_code == 303
    with engine.begin() as conn:
        assert conn.execute(text("SELECT last_name FROM reps WHERE id = 1")).scalar_one() == "Holmes"
    assert fetch_audit(engine)[-1]["action"] == "update"


def test_admin_edit_rep_form_refuses_channel_change_with_assignments(client_and_engine):
    client, engine = client_and_engine
    seed_rep(engine, 1, "Mary", "Watson", "mary@example.com", "Golf")
    seed_assignment(engine, "12345", "Golf", 1)
    sign_in(client)

    response = client.post("/admin/reps/1", data=rep_form(channel="Outdoor"), follow_redirects=False)
    missing = client.post("/admin/reps/999", data=rep_form(), follow_redirects=False)

    assert response.status_code == 400
    assert "Rep holds 1 assignment(s) in the Golf channel." in response.text
    assert "Edit Rep" in response.text
    assert missing.status_code == 404
    assert "Rep not found" in missing.text
    with engine.begin() as conn:
        assert conn.execute(text("SELECT channel FROM reps WHERE id = 1")).scalar_one() == "Golf"


def test_admin_delete_rep_form_removes_assignments(client_and_engine):
    client, engine = client_and_engine
    seed_rep(engine, 1, "Mary", "Watson", "mary@example.com", "Golf")
    seed_assignment(engine, "12345", "Golf", 1)
    sign_in(client)

    page = client.get("/admin")
    response = client.post("/admin/reps/1/delete", follow_redirects=False)
    again = client.post("/admin/reps/1/delete", follow_redirects=False)

    assert 'action="/admin/reps/1/delete"' in page.text
    assert "This also removes their 1 zip code assignment(s)." in page.text
    assert response.status_code == 303
    assert response.headers["location"] == "/admin"
    assert again.status_code == 404
    with engine.begin() as conn:
        assert conn.execute(text("SELECT COUNT(*) FROM reps")).scalar_one() == 0
        assert conn.execute(text("SELECT COUNT(*) FROM assignments")).scalar_one() == 0
    assert fetch_audit(engine)[-1]["description"] == "Deleted rep: Mary Watson (mary@example.com) and 1 assignment(s)"


def test_admin_zip_search_lists_every_channel(client_and_engine):
    client, engine = client_and_engine
    seed_rep(engine, 1, "Mary", "Watson", "mary@example.com", "Golf")
    seed_rep(engine, 2, "Greg", "Green", "greg@example.com", "Golf")
    seed_assignment(engine, "12345", "Golf", 1)
    sign_in(client)

    response = client.get("/admin", params={"zip": "12345"})
    invalid = client.get("/admin", params={"zip": "123"})

    assert response.status_code == 200
    assert "Mary Watson (mary@example.com)" in response.text
    assert "Reassign" in response.text
    assert "No Outdoor reps" in response.text
    assert 'action="/admin/assignments/delete"' in response.text
    assert "Please enter a valid 5-digit zip code." in invalid.text


def test_admin_reassign_and_remove_forms(client_and_engine):
    client, engine = client_and_engine
    seed_rep(engine, 1, "Mary", "Watson", "mary@example.com", "Golf")
    seed_rep(engine, 2, "Greg", "Green", "greg@example.com", "Golf")
    seed_assignment(engine, "12345", "Golf", 1)
    sign_in(client)

    reassigned = client.post(
        "/admin/assignments",
        data={"zip_code": "12345", "channel": "Golf", "rep_id": "2"},
        follow_redirects=False,
    )
    assert reassigned.status_code == 303
    assert reassigned.headers["location"] == "/admin?zip=12345"
    with engine.begin() as conn:
        assert conn.execute(text("SELECT rep_id FROM assignments WHERE zip_code = '12345'")).scalar_one() == 2

    removed = client.post(
        "/admin/assignments/delete",
        data={"zip_code": "12345", "channel": "Golf"},
        follow_redirects=False,
    )
    assert removed.status_code == 303
    with engine.begin() as conn:
        assert conn.execute(text("SELECT COUNT(*) FROM assignments")).scalar_one() == 0

    descriptions = [e["description"] for e in fetch_audit(engine)]
    assert descriptions == [
        "Reassigned 12345 (Golf): Mary Watson -> Greg Green",
        "Deleted assignment: 12345 (Golf) - was assigned to Greg Green",
    ]


def test_admin_assignment_form_errors_render_page(client_and_engine):
    client, engine = client_and_engine
    seed_rep(engine, 1, "Mary", "Watson", "mary@example.com", "Golf")
    sign_in(client)

    mismatch = client.post(
        "/admin/assignments",
        data={"zip_code": "12345", "channel": "Gift", "rep_id": "1"},
        follow_redirects=False,
    )
    not_found = client.post(
        "/admin/assignments/delete",
        data={"zip_code": "12345", "channel": "Golf"},
        follow_redirects=False,
    )

    assert mismatch.status_code == 400
    assert "Rep is assigned to Golf channel, not Gift" in mismatch.text
    assert not_found.status_code == 404
    assert "Assignment not found" in not_found.text
    assert fetch_audit(engine) == []


def test_admin_audit_log_paging(client_and_engine):
    client, engine = client_and_engine
    seed_rep(engine, 1, "Mary", "Watson", "mary@example.com", "Golf")
    sign_in(client)
    for zip_code in ("11111", "22222", "33333"):
        client.put("/api/assignments", json={"zip_code": zip_code, "channel": "Golf", "rep_id": 1})

    first = client.get("/admin", params={"audit_limit": 2})
    second = client.get("/admin", params={"audit_limit": 2, "audit_offset": 2})
    too_big = client.get("/admin", params={"audit_limit": 501})

    assert "Showing 1-2 of 3 entries." in first.text
    assert "Assigned 33333 (Golf) to Mary Watson" in first.text
    assert "Assigned 11111 (Golf) to Mary Watson" not in first.text
    assert "audit_offset=2" in first.text
    assert "Showing 3-3 of 3 entries." in second.text
    assert "Assigned 11111 (Golf) to Mary Watson" in second.text
    assert "audit_offset=0" in second.text
    assert too_big.status_code == 422


def test_put_assignment_accepts_rep_id_as_text(client_and_engine):
    client, engine = client_and_engine
    seed_rep(engine, 1, "Mary", "Watson", "mary@example.com", "Golf")
    sign_in(client)

    as_text = client.put("/api/assignments", json={"zip_code": "12345", "channel": "Golf", "rep_id": "1"})
    not_a_number = client.put("/api/assignments", json={"zip_code": "12345", "channel": "Golf", "rep_id": "abc"})
    blank = client.put("/api/assignments", json={"zip_code": "12345", "channel": "Golf", "rep_id": " "})

    assert as_text.status_code == 200
    assert as_text.json()["rep_id"] == 1
    assert not_a_number.status_code == 400
    assert not_a_number.json()["detail"] == "Invalid rep_id. Must be a whole number."
    assert blank.status_code == 400
    assert blank.json()["detail"] == "zip_code, channel, and rep_id are required"
