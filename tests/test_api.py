"""HTTP surface: auth flow, gates, current-user and admin endpoints."""

import pytest

from ims_backend.core.security import PolicyMode, create_access_token

from conftest import auth_headers, login


def test_login_refresh_logout(client, cashier):
    tokens = login(client, "CASHIER1")
    assert tokens["user"]["username"] == "cashier1"
    assert tokens["evicted_sessions"] == []

    me = client.get("/api/auth/me", headers=auth_headers(tokens))
    assert me.status_code == 200
    assert me.json()["user_id"] == cashier.user_id

    refreshed = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200
    headers = {"Authorization": f"Bearer {refreshed.json()['access_token']}"}

    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    again = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert again.status_code == 401
    assert client.get("/api/user/permissions", headers=headers).status_code == 401


def test_logged_out_token_rejected_by_gates(client, cashier, admin):
    headers = auth_headers(login(client, "admin1"))
    assert client.post("/api/auth/logout", headers=headers).status_code == 200

    resp = client.put(
        f"/api/admin/users/{cashier.user_id}/overrides",
        json={"overrides": {"sales.view": "deny"}},
        headers=headers,
    )
    assert resp.status_code == 401
    assert client.get("/api/auth/me", headers=headers).status_code == 401
    assert client.put(
        f"/api/user/session-limit/{cashier.user_id}", json={"max_sessions": 3}, headers=headers,
    ).status_code == 401


def test_bad_credentials(client, cashier):
    resp = client.post("/api/auth/login", json={"username": "cashier1", "password": "wrong-pass"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Incorrect username or password"


def test_inactive_user_cannot_login(client, db, cashier_role):
    from conftest import make_user
    make_user(db, "gone", cashier_role, is_active=False)
    resp = client.post("/api/auth/login", json={"username": "gone", "password": "secret-pass"})
    assert resp.status_code == 401


def test_missing_token_is_401(client):
    assert client.get("/api/user/permissions").status_code == 401
    assert client.put("/api/admin/users/1/role", json={"role_id": 1}).status_code == 401


def test_access_token_rejected_as_refresh_token(client, cashier):
    tokens = login(client, "cashier1")
    resp = client.post("/api/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert resp.status_code == 401


def test_permissions_and_check(client, cashier):
    headers = auth_headers(login(client, "cashier1"))
    first = client.get("/api/user/permissions", headers=headers).json()
    second = client.get("/api/user/permissions", headers=headers).json()
    assert first == {"permissions": ["dashboard.view", "sales.view"], "cached": False}
    assert second["cached"] is True

    check = client.get("/api/user/check-permission/sales.view", headers=headers).json()
    assert check == {"permission": "sales.view", "granted": True}
    denied = client.get("/api/user/check-permission/purchases.view", headers=headers).json()
    assert denied["granted"] is False


def test_check_permission_is_exact_match(client, db):
    from conftest import make_role, make_user
    make_user(db, "catalog1", make_role(db, "catalog", ["products.view"]))
    headers = auth_headers(login(client, "catalog1"))
    exact = client.get("/api/user/check-permission/products.view", headers=headers).json()
    alias = client.get("/api/user/check-permission/items.view", headers=headers).json()
    assert exact["granted"] is True
    assert alias["granted"] is False


def test_sidebar(client, cashier):
    headers = auth_headers(login(client, "cashier1"))
    body = client.get("/api/user/sidebar", headers=headers).json()
    assert [m["id"] for m in body["modules"]] == ["dashboard", "returns", "sales"]
    assert body["cached"] is False
    assert client.get("/api/user/sidebar", headers=headers).json()["cached"] is True


def test_third_login_evicts_first_session(client, clock, cashier):
    first = login(client, "cashier1", user_agent="Mozilla/5.0 (Windows NT 10.0) Chrome/120.0")
    clock.advance(minutes=1)
    login(client, "cashier1", user_agent="Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) Mobile")
    clock.advance(minutes=1)
    third = login(client, "cashier1", user_agent="Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0")

    assert third["evicted_sessions"] == [first["session_id"]]
    assert client.get("/api/user/sessions", headers=auth_headers(first)).status_code == 401

    sessions = client.get("/api/user/sessions", headers=auth_headers(third)).json()
    assert len(sessions) == 2
    assert sessions[0]["session_id"] == third["session_id"]
    assert sessions[0]["is_current"] is True


def test_logout_other_sessions(client, cashier):
    first = login(client, "cashier1")
    second = login(client, "cashier1")

    resp = client.post("/api/user/logout-other-sessions", headers=auth_headers(second))
    assert resp.json()["logged_out"] == 1
    assert client.get("/api/user/permissions", headers=auth_headers(first)).status_code == 401


def test_delete_other_users_session_is_404(client, db, cashier, admin):
    theirs = login(client, "admin1")
    mine = login(client, "cashier1")

    resp = client.delete(f"/api/user/sessions/{theirs['session_id']}", headers=auth_headers(mine))
    assert resp.status_code == 404
    assert client.get("/api/auth/me", headers=auth_headers(theirs)).status_code == 200
    assert client.delete(f"/api/user/sessions/{mine['session_id']}", headers=auth_headers(mine)).status_code == 200


def test_session_limit_requires_permission(client, cashier, admin):
    cashier_headers = auth_headers(login(client, "cashier1"))
    body = {"max_sessions": 3}
    assert client.put(f"/api/user/session-limit/{cashier.user_id}", json=body, headers=cashier_headers).status_code == 403

    admin_headers = auth_headers(login(client, "admin1"))
    assert client.put(f"/api/user/session-limit/{cashier.user_id}", json=body, headers=admin_headers).status_code == 200
    too_many = client.put(f"/api/user/session-limit/{cashier.user_id}", json={"max_sessions": 11}, headers=admin_headers)
    assert too_many.status_code == 422
    missing = client.put("/api/user/session-limit/9999", json=body, headers=admin_headers)
    assert missing.status_code == 404


def test_admin_replace_role_permissions_invalidates_cache(client, cashier, cashier_role, admin):
    cashier_headers = auth_headers(login(client, "cashier1"))
    admin_headers = auth_headers(login(client, "admin1"))
    client.get("/api/user/permissions", headers=cashier_headers)

    resp = client.put(
        f"/api/admin/roles/{cashier_role.role_id}/permissions",
        json={"perm_keys": ["purchases.view"]},
        headers=admin_headers,
    )
    assert resp.status_code == 200

    after = client.get("/api/user/permissions", headers=cashier_headers).json()
    assert after == {"permissions": ["purchases.view"], "cached": False}


def test_admin_overrides_and_effective_permissions(client, cashier, admin):
    admin_headers = auth_headers(login(client, "admin1"))
    resp = client.put(
        f"/api/admin/users/{cashier.user_id}/overrides",
        json={"overrides": {"sales.view": "deny", "reports.view": "allow"}},
        headers=admin_headers,
    )
    assert resp.json()["overrides"] == {"reports.view": "allow", "sales.view": "deny"}

    effective = client.get(f"/api/admin/users/{cashier.user_id}/effective-permissions", headers=admin_headers)
    assert effective.json()["permissions"] == ["dashboard.view", "reports.view"]

    bad = client.put(
        f"/api/admin/users/{cashier.user_id}/overrides",
        json={"overrides": {"sales.view": "maybe"}},
        headers=admin_headers,
    )
    assert bad.status_code == 422


def test_admin_role_reassign(client, cashier, admin_role, admin):
    admin_headers = auth_headers(login(client, "admin1"))
    resp = client.put(
        f"/api/admin/users/{cashier.user_id}/role", json={"role_id": admin_role.role_id}, headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["role_id"] == admin_role.role_id
    missing = client.put(f"/api/admin/users/{cashier.user_id}/role", json={"role_id": 999}, headers=admin_headers)
    assert missing.status_code == 404


def test_admin_endpoints_forbidden_for_cashier(client, cashier, cashier_role):
    headers = auth_headers(login(client, "cashier1"))
    assert client.put(
        f"/api/admin/roles/{cashier_role.role_id}/permissions", json={"perm_keys": []}, headers=headers,
    ).status_code == 403
    assert client.get("/api/admin/audit", headers=headers).status_code == 403
    assert client.post("/api/admin/sessions/sweep", headers=headers).status_code == 403


def test_audit_listing_and_clear(client, cashier, admin):
    admin_headers = auth_headers(login(client, "admin1"))
    client.put(f"/api/user/session-limit/{cashier.user_id}", json={"max_sessions": 4}, headers=admin_headers)

    listing = client.get("/api/admin/audit", params={"action": "session_limit"}, headers=admin_headers).json()
    assert listing["total"] == 1
    assert listing["logs"][0]["actor_user_id"] == admin.user_id

    assert client.delete("/api/admin/audit", headers=admin_headers).status_code == 200
    remaining = client.get("/api/admin/audit", headers=admin_headers).json()
    assert [log["action"] for log in remaining["logs"]] == ["audit_logs.clear"]


def test_sweep_endpoint(client, admin):
    admin_headers = auth_headers(login(client, "admin1"))
    resp = client.post("/api/admin/sessions/sweep", headers=admin_headers)
    assert resp.json() == {"expired": 0, "inactive": 0, "deleted": 0}


def test_token_without_session_still_passes_gate(client, admin):
    token = create_access_token({"sub": str(admin.user_id), "role_id": admin.role_id, "username": "admin1"})
    resp = client.post("/api/admin/sessions/sweep", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok", "cache": True}


class TestBypassMode:
    @pytest.fixture
    def policy_mode(self):
        return PolicyMode.bypass_for_testing

    def test_gate_passes_without_permission(self, client, cashier):
        headers = auth_headers(login(client, "cashier1"))
        assert client.post("/api/admin/sessions/sweep", headers=headers).status_code == 200

    def test_identity_still_required(self, client):
        assert client.post("/api/admin/sessions/sweep").status_code == 401
