from datetime import timedelta

from redis.exceptions import ConnectionError as RedisConnectionError

from claimlink.common.clock import utcnow
from claimlink.common.config import settings
from claimlink.common.redis_client import set_redis


async def _claim(client, order_id):
    resp = await client.post("/api/claim", json={"orderId": order_id})
    return resp, await resp.get_json()


async def test_successful_claim_response_shape(client, make_order):
    await make_order("ABC123", one_time_use=True, expiration_days=7)

    resp, body = await _claim(client, "ABC123")

    assert resp.status_code == 200
    assert body["success"] is True
    assert body["message"] == "Products claimed successfully!"
    assert body["download_links"] == ["https://x/y"]
    assert body["claim_count"] == 1
    assert body["products"] == [
        {"id": body["products"][0]["id"], "name": "Widget", "description": None, "image_url": None}
    ]
    assert body["claimed_at"]


async def test_second_claim_of_one_time_order_is_a_400(client, make_order):
    await make_order("ABC123", one_time_use=True)
    await _claim(client, "ABC123")

    resp, body = await _claim(client, "ABC123")

    assert resp.status_code == 400
    assert body == {"success": False, "message": "This order has already been claimed (one-time use only)"}


async def test_expired_claim_is_a_400(client, make_order):
    await make_order("OLD-1", expiration_date=utcnow() - timedelta(days=1))

    resp, body = await _claim(client, "OLD-1")

    assert resp.status_code == 400
    assert body == {"success": False, "message": "This order has expired"}


async def test_unknown_order_is_a_404(client):
    resp, body = await _claim(client, "does-not-exist")

    assert resp.status_code == 404
    assert body == {"success": False, "message": "Order not found"}


async def test_malformed_order_id_is_rejected_before_lookup(client):
    resp, body = await _claim(client, "a!")

    assert resp.status_code == 400
    assert body["success"] is False
    assert body["code"] == "VALIDATION_ERROR"
    assert "Order ID must be at least 3 characters long" in body["details"]
    assert "Order ID can only contain letters, numbers, hyphens, and underscores" in body["details"]


async def test_missing_body_is_rejected(client):
    resp = await client.post("/api/claim", data="not json", headers={"Content-Type": "application/json"})
    body = await resp.get_json()

    assert resp.status_code == 400
    assert body["details"] == ["Order ID is required"]


async def test_responses_carry_tracing_and_rate_limit_headers(client, make_order):
    await make_order("ABC123")

    resp, _ = await _claim(client, "ABC123")

    assert resp.headers["X-Request-ID"]
    assert resp.headers["X-RateLimit-Limit"] == str(settings.api_rate_limit()["max"])
    assert resp.headers["X-RateLimit-Remaining"] == str(settings.api_rate_limit()["max"] - 1)


async def test_claims_past_the_limit_get_429(client, monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_MAX_REQUESTS", 10)  # claim budget is half: 5

    statuses = []
    for _ in range(6):
        resp, _ = await _claim(client, "does-not-exist")
        statuses.append(resp.status_code)

    assert statuses == [404] * 5 + [429]
    assert int(resp.headers["Retry-After"]) > 0


async def test_rate_limiter_fails_open_when_redis_is_down(client):
    class BrokenRedis:
        async def incr(self, key):
            raise RedisConnectionError("redis down")

    set_redis(BrokenRedis())

    resp, body = await _claim(client, "does-not-exist")

    assert resp.status_code == 404
    assert body["message"] == "Order not found"
