from quart import Blueprint, g, jsonify, request

from . import service
from ..admins.guard import require_admin
from ..common.validation import validate_id, validate_order_data

bp = Blueprint("orders", __name__)


@bp.get("/api/orders")
@require_admin
async def orders_list():
    order_pk = request.args.get("id")
    if order_pk:
        return jsonify(await service.get_order(validate_id(order_pk, "Order ID")))
    return jsonify(await service.list_orders())


@bp.post("/api/orders")
@require_admin
async def orders_create():
    data = validate_order_data(await request.get_json(silent=True))
    order = await service.create_order(
        data["order_id"],
        data["product_ids"],
        expiration_days=data.get("expiration_days"),
        expiration_date=data.get("expiration_date"),
        one_time_use=data.get("one_time_use"),
        created_by=g.admin.username,
    )
    return jsonify(order), 201


@bp.put("/api/orders")
@require_admin
async def orders_update():
    data = validate_order_data(await request.get_json(silent=True), editing=True)
    order = await service.update_order(
        data["id"],
        data["product_ids"],
        expiration_days=data.get("expiration_days"),
        expiration_date=data.get("expiration_date"),
        one_time_use=data.get("one_time_use"),
        reset_claim_count=data.get("reset_claim_count"),
    )
    return jsonify(order)


@bp.delete("/api/orders")
@require_admin
async def orders_delete():
    order_pk = validate_id(request.args.get("id"), "Order ID")
    await service.delete_order(order_pk)
    return jsonify({"success": True, "message": "Order deleted successfully"})
