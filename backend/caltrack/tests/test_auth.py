from caltrack import auth, models


def test_register_and_login(client, db):
    resp = client.post(
        "/api/auth/register",
        json={"email": "test@example.com", "password": "secret", "full_name": "Test User", "employee_code": "E-100"},
    )
    assert resp.status_code == 200
    token = resp.json()["access_token"]
    assert token
    me = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["role"] == models.ROLE_EMPLOYEE
    assert me.json()["is_admin"] is False

    resp2 = client.post("/api/auth/login", json={"email": "test@example.com", "password": "secret"})
    assert resp2.status_code == 200
    bad = client.post("/api/auth/login", json={"email": "test@example.com", "password": "wrong"})
    assert bad.status_code == 401


def test_register_rejects_duplicates(client, factory):
    production = factory.department("Production")
    body = {"email": "dup@example.com", "password": "secret", "employee_code": "E-1", "department_id": str(production.id)}
    assert client.post("/api/auth/register", json=body).status_code == 200
    assert client.post("/api/auth/register", json=body).status_code == 400

    other = dict(body, email="other@example.com")
    taken = client.post("/api/auth/register", json=other)
    assert taken.status_code == 400
    assert taken.json()["detail"] == "Employee code already registered"


def test_inactive_users_cannot_log_in(client, db, factory):
    user = factory.user(password="secret")
    user.is_active = False
    db.commit()
    resp = client.post("/api/auth/login", json={"email": user.email, "password": "secret"})
    assert resp.status_code == 401


def test_set_pin_requires_current_password(client, db, factory):
    user = factory.user(pin=None, password="secret")
    headers = factory.headers(user)

    wrong = client.put("/api/users/me/pin", json={"current_password": "nope", "pin": "2468"}, headers=headers)
    assert wrong.status_code == 400
    short = client.put("/api/users/me/pin", json={"current_password": "secret", "pin": "12"}, headers=headers)
    assert short.status_code == 422

    ok = client.put("/api/users/me/pin", json={"current_password": "secret", "pin": "2468"}, headers=headers)
    assert ok.status_code == 200
    db.refresh(user)
    assert auth.check_pin("2468", user.pin_hash)
    assert not auth.check_pin("8642", user.pin_hash)


def test_malformed_hash_does_not_verify():
    assert auth.verify_password("secret", "not-a-bcrypt-hash") is False
