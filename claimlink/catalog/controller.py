from quart import Blueprint, jsonify, request

from . import service
from ..admins.guard import require_admin
from ..common.validation import validate_id, validate_product_data

bp = Blueprint("catalog", __name__)


@bp.get("/api/products")
@require_admin
async def products_list():
    product_id = request.args.get("id")
    if product_id:
        return jsonify(await service.get_product(validate_id(product_id, "Product ID")))
    return jsonify(await service.list_products())


@bp.post("/api/products")
@require_admin
async def products_create():
    data = validate_product_data(await request.get_json(silent=True))
    product = await service.create_product(
        data["name"],
        data["download_link"],
        description=data.get("description"),
        image_url=data.get("image_url"),
    )
    return jsonify(product), 201


@bp.put("/api/products")
@require_admin
async def products_update():
    data = validate_product_data(await request.get_json(silent=True), editing=True)
    product = await service.update_product(
        data["id"],
        data["name"],
        data["download_link"],
        description=data.get("description"),
        image_url=data.get("image_url"),
    )
    return jsonify(product)


@bp.delete("/api/products")
@require_admin
async def products_delete():
    product_id = validate_id(request.args.get("id"), "Product ID")
    force = request.args.get("force", "").strip().lower() in {"1", "true", "yes"}
    detached = await service.delete_product(product_id, force=force)
    return jsonify({"success": True, "message": "Product deleted successfully", "detached_orders": detached})
