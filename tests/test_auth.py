import pytest

import roles
from roles import Role, ROLE_MENUS, check_role_tables, menu_for, parse_role


def test_missing_token_is_unauthorized(client):
    res = client.get("/cart")

    assert res.status_code == 401
    assert res.json() == {"success": False, "error": "No valid authorization token provided"}
    assert "set-cookie" not in res.headers


def test_invalid_token_clears_auth_cookie(client):
    res = client.get("/cart", headers={"Authorization": "Bearer forged"})

    assert res.status_code == 401
    assert res.json()["error"] == "Invalid or expired token"
    cookie = res.headers["set-cookie"].lower()
    assert cookie.startswith("authtoken=")
    assert "max-age=0" in cookie


def test_cookie_token_wins_over_header(client, login):
    login("buyer@oshudh.test")
    client.cookies.set("authToken", "token-buyer")

    res = client.get("/cart", headers={"Authorization": "Bearer forged"})
    assert res.status_code == 200


def test_session_sets_cookie_and_logout_clears_it(client, login):
    headers = login("buyer@oshudh.test")

    res = client.post("/auth/session", headers=headers)
    assert res.status_code == 200
    cookie = res.headers["set-cookie"].lower()
    assert "authtoken=token-buyer" in cookie
    assert "httponly" in cookie

    res = client.post("/auth/logout")
    assert res.json()["success"] is True
    assert "max-age=0" in res.headers["set-cookie"].lower()


def test_new_user_may_choose_seller(client, login, db):
    headers = login("shop@oshudh.test", stored=False)

    res = client.post("/auth/register", json={"username": "Shop", "role": "seller"}, headers=headers)

    assert res.status_code == 200
    assert res.json()["data"]["role"] == "seller"
    assert db["users"].find_one({"email": "shop@oshudh.test"})["username"] == "Shop"


def test_new_user_cannot_self_assign_admin(client, login):
    headers = login("sneaky@oshudh.test", stored=False)
    res = client.post("/auth/users", json={"role": "admin"}, headers=headers)
    assert res.json()["data"]["role"] == "user"


def test_existing_user_keeps_role_on_login(client, login, db):
    headers = login("buyer@oshudh.test", role="user")

    res = client.post("/auth/google-login", json={"role": "seller", "photoURL": "p.png"}, headers=headers)

    assert res.json()["data"]["role"] == "user"
    assert res.json()["data"]["photoURL"] == "p.png"
    assert db["users"].count_documents({"email": "buyer@oshudh.test"}) == 1


def test_stored_email_comes_from_token(client, login, db):
    headers = login("real@oshudh.test", stored=False)

    client.post("/auth/users", json={"email": "other@example.com"}, headers=headers)

    assert db["users"].find_one({"email": "real@oshudh.test"}) is not None
    assert db["users"].find_one({"email": "other@example.com"}) is None


def test_profile_without_registration_asks_to_register(client, login):
    headers = login("new@oshudh.test", stored=False)

    res = client.get("/auth/profile", headers=headers)

    assert res.status_code == 404
    assert res.json()["shouldRegister"] is True


def test_update_profile(client, login):
    headers = login("buyer@oshudh.test")

    res = client.put("/user/profile", json={"username": "Rahim"}, headers=headers)
    assert res.json()["data"]["username"] == "Rahim"

    profile = client.get("/user/profile", headers=headers).json()["data"]
    assert profile["username"] == "Rahim"
    assert profile["role"] == "user"


def test_role_gate_reports_required_and_current_role(client, login):
    user_headers = login("buyer@oshudh.test", role="user")
    ghost_headers = login("ghost@oshudh.test", stored=False)

    res = client.get("/admin/stats", headers=user_headers)
    assert res.status_code == 403
    assert res.json()["error"] == "Access denied. Requires admin role, current role: user"

    res = client.get("/seller/dashboard", headers=ghost_headers)
    assert res.status_code == 403
    assert res.json()["error"] == "Access denied. Requires seller role, current role: none"


def test_menu_follows_stored_role(client, login):
    seller_headers = login("seller@oshudh.test", role="seller")

    data = client.get("/user/menu", headers=seller_headers).json()["data"]

    assert data["role"] == "seller"
    assert data["label"] == "Seller"
    assert [i["path"] for i in data["items"]] == [i["path"] for i in ROLE_MENUS[Role.SELLER]]


def test_menu_requires_a_role(client, login):
    headers = login("ghost@oshudh.test", stored=False)
    assert client.get("/user/menu", headers=headers).status_code == 403


def test_every_role_menu_starts_with_dashboard_and_profile():
    for role in Role:
        items = menu_for(role)["items"]
        assert items[0]["label"] == "Dashboard"
        assert items[1]["label"] == "My Profile"
        assert all(i["path"].startswith(f"/dashboard/{role.value}") for i in items)


def test_parse_role():
    assert parse_role("Admin") is Role.ADMIN
    assert parse_role(" seller ") is Role.SELLER
    assert parse_role("superuser") is None
    assert parse_role(None) is None


def test_payment_config_is_public(client):
    res = client.get("/payment/config")
    assert res.status_code == 200
    assert set(res.json()["data"]) == {"publishableKey", "currency"}


def test_role_tables_cover_every_role(monkeypatch):
    check_role_tables()

    monkeypatch.setattr(roles, "ROLE_LABELS", {Role.ADMIN: "Admin", Role.USER: "User"})
    with pytest.raises(RuntimeError, match="seller"):
        check_role_tables()
