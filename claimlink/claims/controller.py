import logging

from quart import Blueprint, jsonify, request

from .service import attempt_claim
from ..common.metrics import CLAIM_OUTCOMES
from ..common.ratelimit import rate_limited
from ..common.config import settings
from ..common.validation import validate_order_id

_logger = logging.getLogger(__name__)

bp = Blueprint("claims", __name__)


@bp.post("/api/claim")
@rate_limited("claim", settings.api_rate_limit)
async def claim_post():
    data = await request.get_json(silent=True) or {}
    order_id = validate_order_id(data.get("orderId") if isinstance(data, dict) else None)
    _logger.info("Claim attempt started | order_id=%s", order_id)

    result = await attempt_claim(order_id)
    CLAIM_OUTCOMES.labels(outcome=result.outcome.value).inc()
    if result.success:
        _logger.info(
            "Claim succeeded | order_id=%s claim_count=%s products=%s",
            order_id, result.claim_count, len(result.products),
        )
    else:
        _logger.info("Claim rejected | order_id=%s outcome=%s", order_id, result.outcome.value)
    return jsonify(result.to_dict()), result.http_status
