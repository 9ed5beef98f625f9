from claimlink.claims.service import attempt_claim


async def test_liveness(client):
    resp = await client.get("/health")

    assert resp.status_code == 200
    assert (await resp.get_json()) == {"status": "ok"}


async def test_detailed_health(client):
    resp = await client.get("/api/health")
    body = await resp.get_json()

    assert resp.status_code == 200
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["status"] == "healthy"
    assert body["checks"]["redis"]["status"] == "healthy"


async def test_metrics_expose_claims_and_gauges(client, make_order):
    await make_order("METRIC-1")
    await client.post("/api/claim", json={"orderId": "METRIC-1"})
    await attempt_claim("METRIC-1")

    resp = await client.get("/metrics")
    text = (await resp.get_data()).decode()

    assert resp.status_code == 200
    assert 'claim_attempts_total{outcome="success"}' in text
    assert "claimlink_orders 1.0" in text
    assert "claimlink_claimed_orders 1.0" in text


async def test_unexpected_errors_render_as_json(app):
    @app.get("/api/explode")
    async def explode():
        raise RuntimeError("boom")

    resp = await app.test_client().get("/api/explode", headers={"X-Request-ID": "req-42"})
    body = await resp.get_json()

    assert resp.status_code == 500
    assert body == {
        "success": False,
        "message": "Internal server error",
        "code": "INTERNAL_ERROR",
        "request_id": "req-42",
    }


async def test_unknown_routes_are_still_404(client):
    resp = await client.get("/api/nowhere")

    assert resp.status_code == 404
