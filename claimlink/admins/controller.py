from quart import Blueprint, g, jsonify, request

from . import service
from .guard import require_admin
from ..common.clock import isoformat
from ..common.config import settings
from ..common.ratelimit import rate_limited
from ..common.validation import validate_admin_credentials, validate_password_change

bp = Blueprint("admins", __name__)


@bp.post("/api/auth/login")
@rate_limited("auth", settings.strict_rate_limit)
async def login():
    creds = validate_admin_credentials(await request.get_json(silent=True))
    token, admin, expires_at = await service.authenticate(creds["username"], creds["password"])
    return jsonify({
        "token": token,
        "username": admin.username,
        "mustChangePassword": admin.must_change_password,
        "expiresAt": isoformat(expires_at),
    })


@bp.post("/api/auth/logout")
@require_admin
async def logout():
    await service.revoke_token(g.admin_token)
    return jsonify({"success": True, "message": "Logged out"})


@bp.post("/api/auth/change-password")
@rate_limited("auth", settings.strict_rate_limit)
@require_admin
async def change_password():
    data = validate_password_change(await request.get_json(silent=True))
    await service.change_password(g.admin.id, data["current_password"], data["new_password"])
    return jsonify({"success": True, "message": "Password changed successfully", "mustChangePassword": False})


@bp.get("/api/admin/me")
@require_admin
async def me():
    return jsonify(service.describe(g.admin))
