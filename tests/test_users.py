from bson import ObjectId

from directory import UserDirectory


def register(client, email, **fields):
    payload = {"name": "Test", "email": email}
    payload.update(fields)
    return client.post("/users", json=payload)


def test_register_assigns_defaults(client, db):
    res = register(client, "a@x.com", blood="A+", district="Dhaka")
    assert res.status_code == 200
    user = db["users"].find_one({"_id": ObjectId(res.json()["id"])})
    assert user["role"] == "donor"
    assert user["status"] == "active"
    assert user["createdAt"] is not None


def test_register_twice_conflicts(client, db):
    assert register(client, "a@x.com").status_code == 200
    res = register(client, "a@x.com", name="Other")
    assert res.status_code == 409
    assert db["users"].count_documents({"email": "a@x.com"}) == 1
    assert db["users"].find_one({"email": "a@x.com"})["name"] == "Test"


def test_self_registration_cannot_choose_role(client, db):
    register(client, "sneaky@x.com", role="admin", status="active")
    assert db["users"].find_one({"email": "sneaky@x.com"})["role"] == "donor"


def test_admin_can_register_with_role(client, db, admin):
    res = client.post("/users", json={"name": "V", "email": "v@x.com", "role": "volunteer"}, headers=admin)
    assert res.status_code == 200
    assert db["users"].find_one({"email": "v@x.com"})["role"] == "volunteer"


def test_get_user(client, make_user):
    make_user("a@x.com", blood="O+")
    res = client.get("/users/a@x.com")
    assert res.status_code == 200
    assert res.json()["blood"] == "O+"
    assert isinstance(res.json()["_id"], str)


def test_get_missing_user(client):
    assert client.get("/users/nobody@x.com").status_code == 404


def test_get_user_role(client, make_user):
    make_user("v@x.com", role="volunteer")
    assert client.get("/users/role/v@x.com").json() == {"role": "volunteer"}
    assert client.get("/users/role/nobody@x.com").json() == {"role": None}


def test_donor_search_only_returns_active(client, make_user):
    make_user("a@x.com", blood="A+", district="Dhaka")
    make_user("b@x.com", blood="A+", district="Dhaka", status="blocked")
    make_user("c@x.com", blood="B+", district="Dhaka")
    res = client.get("/users", params={"bloodGroup": "A+", "district": "Dhaka"})
    assert [u["email"] for u in res.json()] == ["a@x.com"]


def test_admin_search_ignores_status_by_default(client, make_user, admin):
    make_user("a@x.com")
    make_user("b@x.com", status="blocked")
    emails = {u["email"] for u in client.get("/admin/users", headers=admin).json()}
    assert {"a@x.com", "b@x.com"} <= emails
    emails = {u["email"] for u in client.get("/admin/users", params={"status": "all"}, headers=admin).json()}
    assert {"a@x.com", "b@x.com"} <= emails


def test_admin_search_by_status(client, make_user, admin):
    make_user("a@x.com")
    make_user("b@x.com", status="blocked")
    res = client.get("/admin/users", params={"status": "blocked"}, headers=admin)
    assert [u["email"] for u in res.json()] == ["b@x.com"]


def test_update_own_profile(client, db, make_user, bearer):
    make_user("a@x.com", district="Dhaka")
    res = client.patch("/users/a@x.com", json={"district": "Sylhet"}, headers=bearer("a@x.com"))
    assert res.json() == {"success": True, "message": "User updated successfully"}
    assert db["users"].find_one({"email": "a@x.com"})["district"] == "Sylhet"


def test_profile_patch_cannot_change_role(client, db, make_user, bearer):
    make_user("a@x.com")
    res = client.patch("/users/a@x.com", json={"role": "admin", "status": "active"}, headers=bearer("a@x.com"))
    assert res.json()["success"] is False
    assert db["users"].find_one({"email": "a@x.com"})["role"] == "donor"


def test_noop_profile_patch_reports_no_changes(client, db, make_user, bearer):
    make_user("a@x.com", district="Dhaka")
    before = db["users"].find_one({"email": "a@x.com"})

    for patch in ({}, {"district": "Dhaka"}):
        res = client.patch("/users/a@x.com", json=patch, headers=bearer("a@x.com"))
        assert res.status_code == 200
        assert res.json() == {"success": False, "message": "No changes detected or user not found"}

    assert db["users"].find_one({"email": "a@x.com"}) == before


def test_cannot_update_someone_elses_profile(client, db, make_user, bearer):
    make_user("a@x.com", district="Dhaka")
    make_user("b@x.com")
    res = client.patch("/users/a@x.com", json={"district": "Sylhet"}, headers=bearer("b@x.com"))
    assert res.status_code == 403
    assert db["users"].find_one({"email": "a@x.com"})["district"] == "Dhaka"


def test_admin_blocks_and_unblocks(client, db, make_user, admin):
    user_id = make_user("a@x.com")
    res = client.patch(f"/users/block/{user_id}", headers=admin)
    assert res.json()["success"] is True
    assert db["users"].find_one({"email": "a@x.com"})["status"] == "blocked"

    client.patch(f"/users/unblock/{user_id}", headers=admin)
    assert db["users"].find_one({"email": "a@x.com"})["status"] == "active"


def test_admin_promotes(client, db, make_user, admin):
    user_id = make_user("a@x.com")
    client.patch(f"/users/make-volunteer/{user_id}", headers=admin)
    assert db["users"].find_one({"email": "a@x.com"})["role"] == "volunteer"
    client.patch(f"/users/make-admin/{user_id}", headers=admin)
    assert db["users"].find_one({"email": "a@x.com"})["role"] == "admin"


def test_admin_action_on_missing_user_is_soft(client, admin):
    res = client.patch(f"/users/block/{ObjectId()}", headers=admin)
    assert res.status_code == 200
    assert res.json()["success"] is False


def test_admin_action_with_malformed_id(client, admin):
    assert client.patch("/users/block/not-an-id", headers=admin).status_code == 400


def test_email_is_stored_exactly_as_registered(client, db):
    assert register(client, "Bob@Example.COM").status_code == 200
    assert db["users"].find_one({"email": "Bob@Example.COM"}) is not None
    assert client.get("/users/Bob@Example.COM").status_code == 200

    assert register(client, "Bob@example.com").status_code == 200
    assert db["users"].count_documents({}) == 2


def test_register_rejects_malformed_email(client):
    assert register(client, "not-an-email").status_code == 422


def test_concurrent_duplicate_registration_conflicts(client, db, monkeypatch):
    assert register(client, "a@x.com").status_code == 200
    # both registrations passed the existence check before either inserted
    monkeypatch.setattr(UserDirectory, "lookup", lambda self, email: None)

    res = register(client, "a@x.com")
    assert res.status_code == 409
    assert res.json() == {"message": "User already exists"}
    assert db["users"].count_documents({"email": "a@x.com"}) == 1
