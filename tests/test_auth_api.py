import json

from conftest import (
    ADMIN_EMAIL,
    USER_PASSWORD,
    auth_header,
    fetch_audit_rows,
    login,
    register,
    unique_email,
)


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["name"] == "HSE Security API"


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "healthy"
    assert data["audit"] == "running"


def test_security_headers(client):
    response = client.get("/", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Request-ID"] == "req-123"


# =============================================================================
# Registration and login
# =============================================================================

def test_register_returns_profile_without_hash(client):
    email = unique_email()
    data = register(client, email=email)
    assert data["email"] == email
    assert data["role"] == "USER"
    assert data["status"] is True
    assert "password" not in json.dumps(data)


def test_register_weak_password(client):
    response = client.post("/v1/auth/register", json={
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": unique_email(),
        "password": "ada12345",
    })
    assert response.status_code == 400
    issues = response.json()["issues"]
    assert "Password must contain at least one uppercase letter" in issues
    assert "Password must not contain your first name" in issues


def test_register_duplicate_email(client):
    email = unique_email()
    register(client, email=email)
    response = client.post("/v1/auth/register", json={
        "first_name": "Other",
        "last_name": "Person",
        "email": email.upper(),
        "password": USER_PASSWORD,
    })
    assert response.status_code == 409


def test_login_returns_tokens(client, user):
    assert user["token_type"] == "bearer"
    assert user["expires_in"] == 8 * 3600
    assert user["role"] == "USER"
    assert user["full_name"] == "Ada Lovelace"
    assert user["access_token"] != user["refresh_token"]


def test_login_failures_are_generic(client, user):
    wrong = client.post("/v1/auth/login", json={"email": user["email"], "password": "Wrong123!"})
    unknown = client.post("/v1/auth/login", json={"email": unique_email(), "password": USER_PASSWORD})

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json() == {"detail": "Invalid credentials"}


def test_me(client, user):
    response = client.get("/v1/auth/me", headers=auth_header(user["access_token"]))
    assert response.status_code == 200
    assert response.json() == {
        "user_id": user["user_id"],
        "email": user["email"],
        "full_name": "Ada Lovelace",
        "role": "USER",
    }


def test_me_requires_token(client):
    assert client.get("/v1/auth/me").status_code == 401
    assert client.get("/v1/auth/me", headers=auth_header("not-a-token")).status_code == 401


def test_refresh(client, user):
    response = client.post("/v1/auth/refresh", json={"refresh_token": user["refresh_token"]})
    assert response.status_code == 200
    data = response.json()
    assert data["refresh_token"] == user["refresh_token"]

    me = client.get("/v1/auth/me", headers=auth_header(data["access_token"]))
    assert me.json()["email"] == user["email"]


def test_refresh_rejects_garbage(client):
    response = client.post("/v1/auth/refresh", json={"refresh_token": "garbage"})
    assert response.status_code == 401


def test_logout_is_audited(client, user):
    response = client.post("/v1/auth/logout", headers=auth_header(user["access_token"]))
    assert response.status_code == 200

    rows = fetch_audit_rows(client, user_id=user["user_id"], action="LOGOUT")
    assert len(rows) == 1
    assert rows[0].table_name == "system"

    # Stateless tokens stay valid until they expire
    assert client.get("/v1/auth/me", headers=auth_header(user["access_token"])).status_code == 200


def test_login_and_register_are_audited(client):
    email = unique_email()
    data = register(client, email=email)
    login(client, email)

    inserts = fetch_audit_rows(client, table_name="users", record_id=data["id"], action="INSERT")
    assert len(inserts) == 1
    assert inserts[0].old_values is None
    assert json.loads(inserts[0].new_values)["email"] == email
    assert "password_hash" not in inserts[0].new_values

    logins = fetch_audit_rows(client, user_id=data["id"], action="LOGIN")
    assert len(logins) == 1
    assert logins[0].user_email == email


def test_audit_captures_forwarded_client(client, user):
    client.post(
        "/v1/auth/logout",
        headers={
            **auth_header(user["access_token"]),
            "X-Forwarded-For": "203.0.113.9, 10.0.0.1",
            "User-Agent": "audit-test",
        },
    )
    rows = fetch_audit_rows(client, user_id=user["user_id"], action="LOGOUT")
    assert rows[-1].ip_address == "203.0.113.9"
    assert rows[-1].user_agent == "audit-test"


# =============================================================================
# Password change
# =============================================================================

def test_change_password(client, user):
    headers = auth_header(user["access_token"])

    wrong = client.put("/v1/auth/change-password", headers=headers, json={
        "current_password": "Wrong123!",
        "new_password": "An0ther!Secret",
    })
    assert wrong.status_code == 400

    weak = client.put("/v1/auth/change-password", headers=headers, json={
        "current_password": USER_PASSWORD,
        "new_password": "short",
    })
    assert weak.status_code == 400
    assert weak.json()["issues"]

    ok = client.put("/v1/auth/change-password", headers=headers, json={
        "current_password": USER_PASSWORD,
        "new_password": "An0ther!Secret",
    })
    assert ok.status_code == 200

    login(client, user["email"], "An0ther!Secret")
    rows = fetch_audit_rows(client, record_id=user["user_id"], action="CHANGE_PASSWORD")
    assert len(rows) == 1
    assert rows[0].old_values is None and rows[0].new_values is None


# =============================================================================
# User profiles
# =============================================================================

def test_owner_can_read_and_update_profile(client, user):
    headers = auth_header(user["access_token"])

    response = client.get(f"/v1/users/{user['user_id']}", headers=headers)
    assert response.status_code == 200
    assert response.json()["email"] == user["email"]

    response = client.patch(f"/v1/users/{user['user_id']}", headers=headers, json={"first_name": "Augusta"})
    assert response.status_code == 200
    assert response.json()["first_name"] == "Augusta"

    rows = fetch_audit_rows(client, record_id=user["user_id"], action="UPDATE")
    assert json.loads(rows[-1].old_values)["first_name"] == "Ada"
    assert json.loads(rows[-1].new_values)["first_name"] == "Augusta"


def test_other_users_profile_is_forbidden(client, user):
    other = register(client)
    response = client.get(f"/v1/users/{other['id']}", headers=auth_header(user["access_token"]))
    assert response.status_code == 403

    response = client.patch(
        f"/v1/users/{other['id']}", headers=auth_header(user["access_token"]), json={"first_name": "X"}
    )
    assert response.status_code == 403


def test_admin_can_read_any_profile(client, user, admin):
    response = client.get(f"/v1/users/{user['user_id']}", headers=auth_header(admin["access_token"]))
    assert response.status_code == 200

    missing = client.get("/v1/users/999999", headers=auth_header(admin["access_token"]))
    assert missing.status_code == 404


def test_profiles_require_authentication(client, user):
    assert client.get(f"/v1/users/{user['user_id']}").status_code == 401


def test_user_list_is_staff_only(client, user):
    response = client.get("/v1/users/", headers=auth_header(user["access_token"]))
    assert response.status_code == 403
    assert response.json()["detail"] == "Administrator or support role required"

    assert client.get("/v1/users/").status_code == 401


def test_admin_lists_users(client, user, admin):
    headers = auth_header(admin["access_token"])

    first_page = client.get("/v1/users/", headers=headers, params={"limit": 1})
    assert first_page.status_code == 200
    assert [u["email"] for u in first_page.json()] == [ADMIN_EMAIL]

    response = client.get("/v1/users/", headers=headers, params={"limit": 500})
    assert response.status_code == 200
    listed = {u["email"] for u in response.json()}
    assert user["email"] in listed
    assert all("password_hash" not in u for u in response.json())


# =============================================================================
# Administration
# =============================================================================

def test_disable_requires_admin(client, user):
    other = register(client)
    response = client.patch(
        f"/v1/admin/users/{other['id']}/disable", headers=auth_header(user["access_token"])
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Administrator role required"


def test_disabled_account_token_stops_working(client, user, admin):
    headers = auth_header(user["access_token"])
    assert client.get("/v1/auth/me", headers=headers).status_code == 200

    response = client.patch(
        f"/v1/admin/users/{user['user_id']}/disable", headers=auth_header(admin["access_token"])
    )
    assert response.status_code == 200
    assert response.json()["status"] is False

    response = client.get("/v1/auth/me", headers=headers)
    assert response.status_code == 401
    assert response.json() == {"detail": "Account is disabled"}

    refresh = client.post("/v1/auth/refresh", json={"refresh_token": user["refresh_token"]})
    assert refresh.status_code == 401

    login_attempt = client.post("/v1/auth/login", json={"email": user["email"], "password": USER_PASSWORD})
    assert login_attempt.status_code == 401

    rows = fetch_audit_rows(client, record_id=user["user_id"], action="DISABLE")
    assert len(rows) == 1
    assert rows[0].user_email == ADMIN_EMAIL
    assert json.loads(rows[0].old_values)["status"] is True
    assert json.loads(rows[0].new_values)["status"] is False

    # Re-enabling restores the same token
    response = client.patch(
        f"/v1/admin/users/{user['user_id']}/enable", headers=auth_header(admin["access_token"])
    )
    assert response.status_code == 200
    assert client.get("/v1/auth/me", headers=headers).status_code == 200


def test_admin_cannot_disable_self(client, admin):
    response = client.patch(
        f"/v1/admin/users/{admin['user_id']}/disable", headers=auth_header(admin["access_token"])
    )
    assert response.status_code == 400


def test_preflight_is_not_authenticated(client):
    response = client.options(
        "/v1/auth/me",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "GET",
            "Authorization": "Bearer garbage",
        },
    )
    assert response.status_code == 200
