from sqlalchemy.exc import OperationalError

from conftest import login, signup
from portal import crud, models


def test_admin_api_rejects_anonymous_and_members(client):
    assert client.get("/api/admin/members").status_code == 401
    signup(client, "m@x.com")
    login(client, "m@x.com")
    for method, url in [
        ("get", "/api/admin/members"),
        ("get", "/api/admin/total-members"),
        ("get", "/api/admin/new-members-today"),
        ("get", "/api/admin/latest-members"),
        ("get", "/api/admin/members-week"),
        ("delete", "/api/admin/delete-member/1"),
    ]:
        r = getattr(client, method)(url)
        assert r.status_code == 403, url
    r = client.put("/api/admin/update-role/1", json={"role": "Admin"})
    assert r.status_code == 403


def test_admin_pages_redirect(client):
    r = client.get("/admin/dashboard", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/login"

    signup(client, "m@x.com")
    login(client, "m@x.com")
    for url in ("/admin/dashboard", "/admin/members"):
        r = client.get(url, follow_redirects=False)
        assert r.status_code == 303
        assert r.headers["location"] == "/"


def test_member_page_guard(admin_client):
    r = admin_client.get("/member", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/"


def test_dashboard_renders_aggregates(admin_client, db_session):
    crud.signup(db_session, "Zed", "Zulu", "zed@x.com", "", "pw")
    r = admin_client.get("/admin/dashboard")
    assert r.status_code == 200
    assert "zed@x.com" in r.text
    assert '<p id="total-members">2</p>' in r.text


def test_admin_aggregate_endpoints(admin_client, db_session):
    crud.signup(db_session, "Zed", "Zulu", "zed@x.com", "", "pw")
    assert admin_client.get("/api/admin/total-members").json() == {"totalMembers": 2}
    assert admin_client.get("/api/admin/new-members-today").json() == {"newMembersToday": 2}
    latest = admin_client.get("/api/admin/latest-members").json()
    assert latest[0]["email"] == "zed@x.com"
    assert set(latest[0]) == {"displayname", "surname", "email", "created_at"}
    week = admin_client.get("/api/admin/members-week").json()
    assert week["counts"] == [2]


def test_member_list_and_search(admin_client, db_session):
    crud.signup(db_session, "Alice", "", "alice@example.com", "", "pw")
    crud.signup(db_session, "Bob", "", "bob@example.com", "", "pw")

    all_members = admin_client.get("/api/admin/members").json()
    assert [m["email"] for m in all_members] == ["admin@example.com", "alice@example.com", "bob@example.com"]
    assert "password" not in all_members[0]

    found = admin_client.get("/api/admin/members", params={"search": "aLiCe"}).json()
    assert [m["displayname"] for m in found] == ["Alice"]

    r = admin_client.get("/admin/members")
    assert r.status_code == 200
    assert "bob@example.com" in r.text


def test_update_role_and_delete_member(admin_client, db_session):
    uid = crud.signup(db_session, "Bob", "", "bob@example.com", "", "pw")

    r = admin_client.put(f"/api/admin/update-role/{uid}", json={"role": "Admin"})
    assert r.json() == {"success": True}
    db_session.expire_all()
    assert db_session.get(models.User, uid).role == "Admin"

    assert admin_client.put(f"/api/admin/update-role/{uid}", json={"role": "Owner"}).status_code == 422
    assert admin_client.put("/api/admin/update-role/9999", json={"role": "Member"}).status_code == 404

    r = admin_client.delete(f"/api/admin/delete-member/{uid}")
    assert r.json() == {"success": True}
    assert admin_client.delete(f"/api/admin/delete-member/{uid}").status_code == 404


def test_create_admin_promotes_existing_user(db_session):
    from scripts.create_admin import create_admin

    uid = crud.signup(db_session, "Ann", "", "ann@x.com", "", "pw")
    assert create_admin(db_session, "ann@x.com", "ignored", "Ann") == uid
    assert db_session.get(models.User, uid).role == "Admin"
    # the existing password is kept
    assert crud.login(db_session, "ann@x.com", "pw").role == "Admin"


def test_member_search_matches_punctuation(admin_client, db_session):
    crud.signup(db_session, "AT&T Gym", "", "att@example.com", "", "pw")
    crud.signup(db_session, "Semi;Colon--Club", "", "semi@example.com", "", "pw")

    found = admin_client.get("/api/admin/members", params={"search": "at&t"}).json()
    assert [m["email"] for m in found] == ["att@example.com"]
    found = admin_client.get("/api/admin/members", params={"search": ";colon--"}).json()
    assert [m["email"] for m in found] == ["semi@example.com"]


def test_validation_errors_use_message_body(admin_client, db_session):
    uid = crud.signup(db_session, "Bob", "", "bob@example.com", "", "pw")
    r = admin_client.put(f"/api/admin/update-role/{uid}", json={"role": "Owner"})
    assert r.status_code == 422
    body = r.json()
    assert set(body) == {"message"}
    assert "role" in body["message"]


def test_dashboard_storage_error_renders_500(admin_client, monkeypatch):
    def broken(db):
        raise OperationalError("SELECT count(*) FROM users", {}, Exception("database is gone"))

    monkeypatch.setattr(crud, "count_users", broken)
    r = admin_client.get("/admin/dashboard")
    assert r.status_code == 500
    assert "could not load the dashboard" in r.text


def test_members_page_storage_error_redirects_to_dashboard(admin_client, monkeypatch):
    def broken(db, search=None):
        raise OperationalError("SELECT * FROM users", {}, Exception("database is gone"))

    monkeypatch.setattr(crud, "list_members", broken)
    r = admin_client.get("/admin/members", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/admin/dashboard"
