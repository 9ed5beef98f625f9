from datetime import timedelta

import pytest

from claimlink.admins import service as admins
from claimlink.common.clock import utcnow
from claimlink.common.config import settings
from claimlink.common.errors import AuthenticationError

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin-pass-123"


async def _login(client, username=ADMIN_USERNAME, password=ADMIN_PASSWORD):
    resp = await client.post("/api/auth/login", json={"username": username, "password": password})
    return resp, await resp.get_json()


async def test_login_me_logout(client):
    resp, body = await _login(client)
    assert resp.status_code == 200
    assert body["username"] == ADMIN_USERNAME
    assert body["mustChangePassword"] is True
    assert body["expiresAt"]
    headers = {"Authorization": f"Bearer {body['token']}"}

    resp = await client.get("/api/admin/me", headers=headers)
    me = await resp.get_json()
    assert resp.status_code == 200
    assert me["username"] == ADMIN_USERNAME
    assert me["mustChangePassword"] is True

    resp = await client.post("/api/auth/logout", headers=headers)
    assert resp.status_code == 200

    resp = await client.get("/api/admin/me", headers=headers)
    assert resp.status_code == 401


async def test_wrong_password_is_rejected(client):
    resp, body = await _login(client, password="not-the-password")

    assert resp.status_code == 401
    assert body["message"] == "Invalid credentials"
    assert body["code"] == "AUTHENTICATION_ERROR"


async def test_unknown_user_gets_the_same_message(client):
    resp, body = await _login(client, username="nobody")

    assert resp.status_code == 401
    assert body["message"] == "Invalid credentials"


async def test_account_locks_after_repeated_failures(client):
    for _ in range(settings.MAX_FAILED_LOGINS):
        resp, _ = await _login(client, password="wrong-password")
        assert resp.status_code == 401

    resp, body = await _login(client)

    assert resp.status_code == 401
    assert "locked" in body["message"]


async def test_lock_expires(client):
    for _ in range(settings.MAX_FAILED_LOGINS):
        await _login(client, password="wrong-password")

    later = utcnow() + timedelta(minutes=settings.LOCKOUT_MINUTES + 1)
    token, admin, _ = await admins.authenticate(ADMIN_USERNAME, ADMIN_PASSWORD, clock=lambda: later)

    assert token
    assert admin.failed_login_attempts == 0


async def test_expired_session_token_is_refused(admin_token):
    assert await admins.resolve_token(admin_token) is not None

    later = utcnow() + timedelta(hours=settings.SESSION_TIMEOUT_HOURS + 1)
    assert await admins.resolve_token(admin_token, clock=lambda: later) is None


async def test_change_password(client, auth):
    payload = {"currentPassword": ADMIN_PASSWORD, "newPassword": "brand-new-pass", "confirmPassword": "brand-new-pass"}

    resp = await client.post("/api/auth/change-password", json=payload, headers=auth)
    body = await resp.get_json()

    assert resp.status_code == 200
    assert body["mustChangePassword"] is False
    resp, _ = await _login(client)
    assert resp.status_code == 401
    resp, body = await _login(client, password="brand-new-pass")
    assert resp.status_code == 200
    assert body["mustChangePassword"] is False


async def test_change_password_validation(client, auth):
    payload = {"currentPassword": ADMIN_PASSWORD, "newPassword": "short", "confirmPassword": "other"}

    resp = await client.post("/api/auth/change-password", json=payload, headers=auth)
    body = await resp.get_json()

    assert resp.status_code == 400
    assert body["details"] == [
        "New password must be at least 8 characters long",
        "New password and confirmation do not match",
    ]


async def test_change_password_with_wrong_current_password(client, auth):
    payload = {"currentPassword": "not-it-at-all", "newPassword": "brand-new-pass", "confirmPassword": "brand-new-pass"}

    resp = await client.post("/api/auth/change-password", json=payload, headers=auth)

    assert resp.status_code == 401
    assert (await resp.get_json())["message"] == "Current password is incorrect"


async def test_get_settings_lists_policy_and_admins(client, auth):
    resp = await client.get("/api/settings", headers=auth)
    body = await resp.get_json()

    assert body["settings"] == {"default_expiration_days": "30", "one_time_use_enabled": "true"}
    assert [a["username"] for a in body["admins"]] == [ADMIN_USERNAME]
    assert "password_hash" not in body["admins"][0]


async def test_update_settings_action(client, auth):
    resp = await client.put(
        "/api/settings",
        json={"action": "update_settings", "settings": {"default_expiration_days": 14, "one_time_use_enabled": False}},
        headers=auth,
    )
    body = await resp.get_json()

    assert resp.status_code == 200
    assert body["settings"]["default_expiration_days"] == "14"
    assert body["settings"]["one_time_use_enabled"] == "false"


async def test_update_settings_rejects_out_of_range_days(client, auth):
    resp = await client.put(
        "/api/settings",
        json={"action": "update_settings", "settings": {"default_expiration_days": 500}},
        headers=auth,
    )

    assert resp.status_code == 400


async def test_admin_management_actions(client, auth):
    resp = await client.put(
        "/api/settings",
        json={"action": "create_admin", "username": "second_admin", "password": "second-pass-1"},
        headers=auth,
    )
    assert resp.status_code == 200
    second_id = (await resp.get_json())["adminId"]

    resp = await client.put(
        "/api/settings",
        json={"action": "create_admin", "username": "second_admin", "password": "second-pass-1"},
        headers=auth,
    )
    assert resp.status_code == 409

    resp, body = await _login(client, "second_admin", "second-pass-1")
    assert resp.status_code == 200
    second_headers = {"Authorization": f"Bearer {body['token']}"}

    resp = await client.put(
        "/api/settings",
        json={"action": "update_admin_password", "adminId": second_id, "newPassword": "second-pass-2"},
        headers=auth,
    )
    assert resp.status_code == 200
    # a reset revokes the account's open sessions
    resp = await client.get("/api/admin/me", headers=second_headers)
    assert resp.status_code == 401
    resp, _ = await _login(client, "second_admin", "second-pass-2")
    assert resp.status_code == 200

    resp = await client.put("/api/settings", json={"action": "delete_admin", "adminId": second_id}, headers=auth)
    body = await resp.get_json()
    assert resp.status_code == 200
    assert body["selfDeletion"] is False


async def test_last_admin_cannot_be_deleted(client, auth):
    me = await (await client.get("/api/admin/me", headers=auth)).get_json()

    resp = await client.put("/api/settings", json={"action": "delete_admin", "adminId": me["userId"]}, headers=auth)
    body = await resp.get_json()

    assert resp.status_code == 409
    assert body["message"] == "Cannot delete the last admin account"


async def test_new_admin_password_must_be_long_enough(client, auth):
    resp = await client.put(
        "/api/settings",
        json={"action": "create_admin", "username": "third_admin", "password": "short"},
        headers=auth,
    )
    body = await resp.get_json()

    assert resp.status_code == 400
    assert body["details"] == ["Password must be at least 8 characters long"]


async def test_unknown_settings_action(client, auth):
    resp = await client.put("/api/settings", json={"action": "reboot"}, headers=auth)
    body = await resp.get_json()

    assert resp.status_code == 400
    assert body["details"] == ["Invalid action"]


async def test_authenticate_raises_for_bad_password():
    with pytest.raises(AuthenticationError):
        await admins.authenticate(ADMIN_USERNAME, "wrong-password")
