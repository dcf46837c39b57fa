from datetime import datetime, timedelta, timezone

import jwt as pyjwt
from flask_jwt_extended import create_access_token

from plantnet import create_app


def token_cookie_header(response):
    return next(
        header
        for header in response.headers.getlist("Set-Cookie")
        if header.startswith("token=")
    )


def test_issue_token_sets_http_only_cookie(client):
    response = client.post("/jwt", json={"email": "fern@example.com"})

    assert response.status_code == 200
    assert response.get_json() == {"success": True}
    cookie = token_cookie_header(response)
    assert "HttpOnly" in cookie
    assert "SameSite=Strict" in cookie
    assert "Secure" not in cookie
    assert "Max-Age=31536000" in cookie


def test_production_cookie_is_secure_and_cross_site(db, payment_processor):
    app = create_app(
        {"TESTING": True, "APP_ENV": "production", "JWT_SECRET_KEY": "test-secret"},
        db=db,
        payment_processor=payment_processor,
    )
    response = app.test_client().post("/jwt", json={"email": "fern@example.com"})

    cookie = token_cookie_header(response)
    assert "Secure" in cookie
    assert "SameSite=None" in cookie


def test_token_embeds_caller_payload(app, client):
    response = client.post("/jwt", json={"email": "fern@example.com", "name": "Fern"})
    token = token_cookie_header(response).split(";")[0].split("=", 1)[1]

    claims = pyjwt.decode(token, "test-secret", algorithms=["HS256"])
    assert claims["email"] == "fern@example.com"
    assert claims["name"] == "Fern"


def test_issue_token_requires_email(client):
    assert client.post("/jwt", json={"name": "Fern"}).status_code == 400
    assert client.post("/jwt", data="not json").status_code == 400


def test_logout_expires_cookie(client, login):
    login("fern@example.com")
    response = client.get("/logout")

    assert response.status_code == 200
    assert response.get_json() == {"success": True}
    cookie = token_cookie_header(response)
    assert cookie.startswith("token=;")
    assert "Max-Age=0" in cookie


def test_protected_route_rejects_missing_cookie(client):
    response = client.patch("/user/become-seller/fern@example.com")

    assert response.status_code == 401
    assert response.get_json() == {"message": "unauthorized access"}


def test_protected_route_rejects_bad_signature(client):
    forged = pyjwt.encode(
        {
            "email": "fern@example.com",
            "type": "access",
            "jti": "forged",
            "exp": datetime.now(timezone.utc) + timedelta(days=1),
        },
        "some-other-secret",
        algorithm="HS256",
    )
    client.set_cookie("token", forged)

    response = client.patch("/user/become-seller/fern@example.com")
    assert response.status_code == 401
    assert response.get_json() == {"message": "unauthorized access"}


def test_protected_route_rejects_expired_token(app, client):
    with app.app_context():
        expired = create_access_token(
            identity="fern@example.com", expires_delta=timedelta(seconds=-60)
        )
    client.set_cookie("token", expired)

    response = client.patch("/user/become-seller/fern@example.com")
    assert response.status_code == 401


def test_admin_routes_refuse_non_admins(client, db, login):
    db.users.insert_one({"email": "fern@example.com", "role": "customer"})
    login("fern@example.com")

    for response in (
        client.get("/admin-state"),
        client.get("/manage_user"),
        client.patch("/user/role/update/ivy@example.com", json={"role": "seller"}),
    ):
        assert response.status_code == 403
        assert response.get_json() == {"message": "Only admin can action"}


def test_admin_routes_refuse_unknown_callers(client, login):
    login("ghost@example.com")
    assert client.get("/manage_user").status_code == 403
