from datetime import datetime, timedelta, timezone

from app.auth import create_access_token, verify_password
from app.models import Role, User
from conftest import TEST_PASSWORD, login_as, make_user


def reload_user(db, email):
    db.expire_all()
    return db.query(User).filter_by(email=email).one()


def test_sign_up_creates_user_and_sends_verification(client, db, mocker):
    send = mocker.patch("app.mailer.send_email", return_value=True)

    response = client.post(
        "/v1/api/auth/sign-up",
        json={"email": "new@example.com", "password": "Secret123", "name": "New User"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["data"]["user"]["email"] == "new@example.com"
    assert "password_hash" not in body["data"]["user"]
    assert "token" in response.cookies

    user = reload_user(db, "new@example.com")
    assert user.role == Role.USER
    assert not user.is_verified
    assert verify_password("Secret123", user.password_hash)
    assert send.call_args.args[0] == "new@example.com"
    assert user.verification_token in send.call_args.args[2]


def test_sign_up_duplicate_email(client, user):
    response = client.post(
        "/v1/api/auth/sign-up",
        json={"email": user.email, "password": "Secret123", "name": "Again"},
    )

    assert response.status_code == 409
    assert response.json() == {"success": False, "message": "User already exists"}


def test_sign_up_weak_password(client):
    response = client.post(
        "/v1/api/auth/sign-up",
        json={"email": "weak@example.com", "password": "alllowercase", "name": "Weak"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert body["error"][0]["loc"] == ["body", "password"]


def test_sign_up_survives_email_failure(client, mocker):
    mocker.patch("resend.Emails.send", side_effect=RuntimeError("smtp down"))
    mocker.patch.dict("os.environ", {"RESEND_API_KEY": "re_test"})

    response = client.post(
        "/v1/api/auth/sign-up",
        json={"email": "robust@example.com", "password": "Secret123", "name": "Robust"},
    )

    assert response.status_code == 201


def test_login_and_check_auth(client, user):
    response = client.post("/v1/api/auth/login", json={"email": user.email, "password": TEST_PASSWORD})

    assert response.status_code == 200
    assert "token" in response.cookies

    response = client.get("/v1/api/auth/check-auth", headers={"Authorization": f"Bearer {response.cookies['token']}"})
    assert response.status_code == 200
    assert response.json()["data"]["user"]["email"] == user.email


def test_login_wrong_password(client, user):
    response = client.post("/v1/api/auth/login", json={"email": user.email, "password": "Wrongpass1"})

    assert response.status_code == 400
    assert response.json()["message"] == "Incorrect email or password"


def test_logout_clears_cookie(client):
    response = client.post("/v1/api/auth/logout")

    assert response.status_code == 200
    assert 'token=""' in response.headers["set-cookie"] or "Max-Age=0" in response.headers["set-cookie"]


def test_protected_route_rejects_bad_token(client):
    response = client.get("/v1/api/auth/check-auth", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_stale_cookie_falls_back_to_bearer_header(client, user):
    token = create_access_token(user.id)

    response = client.get(
        "/v1/api/auth/check-auth",
        headers={"Cookie": "token=stale-value", "Authorization": f"Bearer {token}"},
    )

    assert response.status_code == 200
    assert response.json()["data"]["user"]["email"] == user.email


def test_token_for_deleted_user_rejected(client, db, user):
    token = create_access_token(user.id)
    db.delete(user)
    db.commit()

    response = client.get("/v1/api/auth/check-auth", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_verify_email_is_single_use(client, db, mocker):
    mocker.patch("app.mailer.send_email", return_value=True)
    user = make_user(db, email="verify@example.com", verified=False)
    user.verification_token = "abc123"
    user.verification_token_expires_at = datetime.now(timezone.utc) + timedelta(hours=1)
    db.commit()

    response = client.get("/v1/api/auth/verify-email/abc123")
    assert response.status_code == 200
    assert response.json()["data"]["user"]["is_verified"] is True

    response = client.get("/v1/api/auth/verify-email/abc123")
    assert response.status_code == 400


def test_verify_email_expired_token(client, db):
    user = make_user(db, email="late@example.com", verified=False)
    user.verification_token = "expired"
    user.verification_token_expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    db.commit()

    response = client.get("/v1/api/auth/verify-email/expired")

    assert response.status_code == 400
    assert not reload_user(db, "late@example.com").is_verified


def test_resend_verification_for_verified_user(client, user):
    response = client.post("/v1/api/auth/resend-verify-email", json={"email": user.email})

    assert response.status_code == 400
    assert response.json()["message"] == "User is already verified"


def test_forgot_and_reset_password(client, db, user, mocker):
    send = mocker.patch("app.mailer.send_email", return_value=True)

    response = client.post("/v1/api/auth/forgot-password", json={"email": user.email})
    assert response.status_code == 200
    token = reload_user(db, user.email).password_reset_token
    assert token and token in send.call_args.args[2]

    response = client.post(f"/v1/api/auth/reset-password/{token}", json={"new_password": "Brandnew99"})
    assert response.status_code == 200

    refreshed = reload_user(db, "user@example.com")
    assert refreshed.password_reset_token is None
    assert verify_password("Brandnew99", refreshed.password_hash)

    response = client.post(f"/v1/api/auth/reset-password/{token}", json={"new_password": "Another123"})
    assert response.status_code == 400


def test_forgot_password_unknown_email_gives_same_answer(client, mocker):
    send = mocker.patch("app.mailer.send_email")

    response = client.post("/v1/api/auth/forgot-password", json={"email": "ghost@example.com"})

    assert response.status_code == 200
    assert response.json()["message"].startswith("If an account exists")
    send.assert_not_called()


def test_reset_password_must_change_password(client, db, user):
    user.password_reset_token = "reset-me"
    user.password_reset_token_expires_at = datetime.now(timezone.utc) + timedelta(minutes=5)
    db.commit()

    response = client.post("/v1/api/auth/reset-password/reset-me", json={"new_password": TEST_PASSWORD})

    assert response.status_code == 400
    assert response.json()["message"] == "New password must be different from current password"


def test_change_password(client, db, user, mocker):
    mocker.patch("app.mailer.send_email", return_value=True)
    login_as(client, user)

    response = client.post(
        "/v1/api/auth/change-password",
        json={"current_password": "Wrongpass1", "new_password": "Changed123"},
    )
    assert response.status_code == 400

    response = client.post(
        "/v1/api/auth/change-password",
        json={"current_password": TEST_PASSWORD, "new_password": "Changed123"},
    )
    assert response.status_code == 200
    assert verify_password("Changed123", reload_user(db, user.email).password_hash)


def test_shipping_address_upsert(client, db, mocker):
    user = make_user(db, email="mover@example.com", with_address=False)
    login_as(client, user)
    address = {"address": "1 First Avenue", "state": "Oyo", "country": "Nigeria", "postal_code": "200001"}

    response = client.post("/v1/api/user/me/shipping-address", json=address)
    assert response.status_code == 201
    first_id = response.json()["data"]["shipping_address"]["id"]

    response = client.post("/v1/api/user/me/shipping-address", json={**address, "address": "2 Second Avenue"})
    assert response.status_code == 201
    assert response.json()["data"]["shipping_address"]["id"] == first_id

    me = client.get("/v1/api/user/me").json()["data"]["user"]
    assert me["shipping_address"]["address"] == "2 Second Avenue"

    assert client.delete("/v1/api/user/me/shipping-address").status_code == 200
    assert client.delete("/v1/api/user/me/shipping-address").status_code == 404


def test_user_admin_routes_require_admin(client, user, admin):
    login_as(client, user)
    assert client.get("/v1/api/user").status_code == 403

    login_as(client, admin)
    response = client.get("/v1/api/user", params={"page_size": 1})
    assert response.status_code == 200
    assert response.json()["data"]["paging_info"] == {"total": 2, "page": 1, "pages": 2}


def test_admin_can_promote_user(client, db, user, admin):
    login_as(client, admin)

    response = client.patch(f"/v1/api/user/{user.id}", json={"role": "ADMIN"})

    assert response.status_code == 200
    assert reload_user(db, user.email).role == Role.ADMIN
