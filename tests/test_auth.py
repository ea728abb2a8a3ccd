from datetime import timedelta

import mongomock

import accounts
from conftest import PASSWORD, login, registration
from database import ensure_indexes
from errors import BadRequestError
from security import create_token


def test_register_creates_user_with_hashed_password(client, db, transport):
    response = client.post("/api/auth/register", json=registration(username="Ravi", email="Ravi@Example.com"))
    assert response.status_code == 201
    assert response.json()["message"] == "User registered successfully"

    user = db["user"].find_one({"username": "ravi"})
    assert user["email"] == "ravi@example.com"
    assert "password" not in user
    assert user["password_hash"] != PASSWORD
    assert user["password_hash"].startswith("$2")

    assert transport.sent[0]["to"] == ["ravi@example.com"]
    assert "Welcome" in transport.sent[0]["subject"]


def test_register_rejects_duplicate_email_in_other_case(client, db):
    assert client.post("/api/auth/register", json=registration()).status_code == 201
    response = client.post("/api/auth/register", json=registration(username="other", email="RAVI@EXAMPLE.COM"))
    assert response.status_code == 400
    assert response.json() == {"detail": "Username or email already exists"}
    assert db["user"].count_documents({}) == 1


def test_register_rejects_duplicate_username(client):
    client.post("/api/auth/register", json=registration())
    response = client.post("/api/auth/register", json=registration(username="RAVI", email="new@example.com"))
    assert response.status_code == 400


def test_register_reports_every_invalid_field(client, db):
    response = client.post(
        "/api/auth/register",
        json=registration(email="not-an-email", password="short", pincode="12", first_name=""),
    )
    assert response.status_code == 400
    body = response.json()
    assert body["detail"] == "Validation failed"
    fields = {e["field"] for e in body["errors"]}
    assert {"email", "password", "pincode", "first_name"} <= fields
    assert db["user"].count_documents({}) == 0


def test_register_missing_body_fields_is_itemized(client):
    response = client.post("/api/auth/register", json={"username": "ravi"})
    assert response.status_code == 400
    fields = {e["field"] for e in response.json()["errors"]}
    assert {"email", "password"} <= fields


def test_login_returns_token_and_records_last_login(client, db):
    client.post("/api/auth/register", json=registration())
    response = client.post("/api/auth/login", json={"username": "RAVI", "password": PASSWORD})
    assert response.status_code == 200
    body = response.json()
    assert body["token"]
    assert body["user"]["username"] == "ravi"
    assert "password_hash" not in body["user"]
    assert db["user"].find_one({"username": "ravi"})["last_login"] is not None


def test_login_failures_are_indistinguishable(client):
    client.post("/api/auth/register", json=registration())
    wrong_password = client.post("/api/auth/login", json={"username": "ravi", "password": "wrong123"})
    unknown_user = client.post("/api/auth/login", json={"username": "nobody", "password": PASSWORD})
    assert wrong_password.status_code == unknown_user.status_code == 401
    assert wrong_password.json() == unknown_user.json() == {"detail": "Invalid credentials"}


def test_protected_route_rejects_missing_invalid_and_expired_tokens(client, settings, auth):
    missing = client.get("/api/cart")
    garbage = client.get("/api/cart", headers={"Authorization": "Bearer not.a.token"})
    expired_token = create_token(
        settings, {"user_id": "abc", "username": "ravi", "type": "access"}, timedelta(seconds=-30)
    )
    expired = client.get("/api/cart", headers={"Authorization": f"Bearer {expired_token}"})
    wrong_secret = create_token(
        settings.model_copy(update={"jwt_secret": "other"}),
        {"user_id": "abc", "username": "ravi", "type": "access"},
        timedelta(hours=1),
    )
    forged = client.get("/api/cart", headers={"Authorization": f"Bearer {wrong_secret}"})

    for response in (missing, garbage, expired, forged):
        assert response.status_code == 401
        assert response.json() == {"detail": "Not authenticated"}

    assert client.get("/api/cart", headers=auth).status_code == 200


def test_reset_token_is_not_an_access_token(client, settings, auth, transport):
    client.post("/api/auth/forgot-password", json={"email": "ravi@example.com"})
    token = transport.reset_token()
    response = client.get("/api/cart", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_password_reset_flow_is_single_use(client, db, transport):
    client.post("/api/auth/register", json=registration())

    response = client.post("/api/auth/forgot-password", json={"email": "Ravi@Example.com"})
    assert response.status_code == 200
    token = transport.reset_token()
    assert token
    assert db["password_reset"].count_documents({"email": "ravi@example.com"}) == 1

    response = client.post("/api/auth/reset-password", json={"token": token, "new_password": "newpass456"})
    assert response.status_code == 200
    assert db["password_reset"].count_documents({}) == 0
    login(client, password="newpass456")

    again = client.post("/api/auth/reset-password", json={"token": token, "new_password": "another789"})
    assert again.status_code == 400
    assert again.json() == {"detail": "Invalid or expired reset token"}
    login(client, password="newpass456")


def test_new_reset_request_supersedes_the_previous_ticket(client, db, settings, transport, monkeypatch):
    client.post("/api/auth/register", json=registration())
    client.post("/api/auth/forgot-password", json={"email": "ravi@example.com"})
    first = transport.reset_token()

    # tokens signed in the same second would be identical
    monkeypatch.setattr(accounts, "create_reset_token", lambda s, email: create_token(
        s, {"email": email, "type": "password_reset", "n": 2}, timedelta(minutes=60)
    ))
    client.post("/api/auth/forgot-password", json={"email": "ravi@example.com"})
    second = transport.reset_token()
    assert first != second
    assert db["password_reset"].count_documents({}) == 1

    stale = client.post("/api/auth/reset-password", json={"token": first, "new_password": "newpass456"})
    assert stale.status_code == 400
    fresh = client.post("/api/auth/reset-password", json={"token": second, "new_password": "newpass456"})
    assert fresh.status_code == 200


def test_forgot_password_does_not_reveal_unknown_emails(client, db, transport):
    client.post("/api/auth/register", json=registration())
    transport.sent.clear()
    known = client.post("/api/auth/forgot-password", json={"email": "ravi@example.com"})
    unknown = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert len(transport.sent) == 1
    assert db["password_reset"].count_documents({}) == 1


def test_reset_rejects_weak_new_password(client, transport):
    client.post("/api/auth/register", json=registration())
    client.post("/api/auth/forgot-password", json={"email": "ravi@example.com"})
    response = client.post("/api/auth/reset-password", json={"token": transport.reset_token(), "new_password": "abc"})
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "new_password"
    login(client)


def test_registration_survives_mail_failure(client, transport):
    transport.fail = True
    response = client.post("/api/auth/register", json=registration())
    assert response.status_code == 201
    login(client)


def test_reset_ticket_cannot_be_spent_twice_concurrently(client, db, settings, transport, monkeypatch):
    client.post("/api/auth/register", json=registration())
    client.post("/api/auth/forgot-password", json={"email": "ravi@example.com"})
    token = transport.reset_token()

    # a second reset with the same token lands while the first is still hashing
    outcomes = []
    real_hash = accounts.hash_password

    def slow_hash(password, rounds):
        if not outcomes:
            try:
                accounts.reset_password(db, token, "another789", settings)
                outcomes.append("accepted")
            except BadRequestError:
                outcomes.append("rejected")
        return real_hash(password, rounds)

    monkeypatch.setattr(accounts, "hash_password", slow_hash)
    response = client.post("/api/auth/reset-password", json={"token": token, "new_password": "newpass456"})
    assert response.status_code == 200
    assert outcomes == ["rejected"]
    login(client, password="newpass456")


def test_reset_ticket_ttl_follows_settings():
    database = mongomock.MongoClient()["tailoring_ttl"]
    ensure_indexes(database, reset_ttl_minutes=90)
    ttl = [
        info.get("expireAfterSeconds")
        for info in database["password_reset"].index_information().values()
        if "expireAfterSeconds" in info
    ]
    assert ttl == [5400]
