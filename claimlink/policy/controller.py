import logging

from quart import Blueprint, g, jsonify, request

from . import service
from ..admins import service as admins
from ..admins.guard import require_admin
from ..common.errors import ValidationError
from ..common.validation import (
    check_new_password,
    validate_admin_credentials,
    validate_id,
    validate_settings_data,
)

_logger = logging.getLogger(__name__)

bp = Blueprint("policy", __name__)


@bp.get("/api/settings")
@require_admin
async def settings_get():
    return jsonify({"settings": await service.get_settings(), "admins": await admins.list_admins()})


async def _update_settings(data: dict):
    values = validate_settings_data(data.get("settings"))
    stored = await service.update_settings(values)
    return jsonify({"success": True, "message": "Settings updated successfully", "settings": stored})


async def _create_admin(data: dict):
    creds = validate_admin_credentials(data)
    errors = []
    check_new_password(creds["password"], errors, label="Password")
    if errors:
        raise ValidationError(errors)
    admin = await admins.create_admin(creds["username"], creds["password"])
    return jsonify({"success": True, "message": "Admin created successfully", "adminId": admin["id"]})


async def _update_admin_password(data: dict):
    admin_id = validate_id(data.get("adminId"), "Admin ID")
    errors = []
    check_new_password(data.get("newPassword"), errors)
    if errors:
        raise ValidationError(errors)
    await admins.set_admin_password(admin_id, data["newPassword"])
    return jsonify({"success": True, "message": "Password updated successfully"})


async def _delete_admin(data: dict):
    admin_id = validate_id(data.get("adminId"), "Admin ID")
    await admins.delete_admin(admin_id)
    return jsonify({
        "success": True,
        "message": "Admin deleted successfully",
        "selfDeletion": admin_id == g.admin.id,
    })


ACTIONS = {
    "update_settings": _update_settings,
    "create_admin": _create_admin,
    "update_admin_password": _update_admin_password,
    "delete_admin": _delete_admin,
}


@bp.put("/api/settings")
@require_admin
async def settings_put():
    data = await request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError(["Request body must be a JSON object"])
    handler = ACTIONS.get(data.get("action"))
    if handler is None:
        raise ValidationError(["Invalid action"])
    _logger.info("Settings action | action=%s by=%s", data["action"], g.admin.username)
    return await handler(data)
