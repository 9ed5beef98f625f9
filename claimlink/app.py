import logging
import os
import time
import uuid

from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from quart import Quart, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .admins.controller import bp as admins_bp
from .admins.service import ensure_default_admin
from .catalog.controller import bp as catalog_bp
from .claims.controller import bp as claims_bp
from .common.config import settings
from .common.database import check_database, count_rows, engine, init_db
from .common.errors import AppError, ErrorCode, RateLimitError
from .common.metrics import (
    CLAIMED_ORDERS_TOTAL,
    ORDERS_TOTAL,
    PRODUCTS_TOTAL,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    normalize_endpoint,
)
from .common.ratelimit import apply_headers
from .common.redis_client import close_redis, get_redis
from .orders.controller import bp as orders_bp
from .policy.controller import bp as policy_bp
from .policy.service import ensure_defaults

log = logging.getLogger(__name__)

# Get instance ID from environment
INSTANCE_ID = os.getenv("INSTANCE_ID", "unknown")
STARTED_AT = time.time()


async def bootstrap() -> None:
    """Create the schema and the rows the service cannot run without."""
    await init_db()
    await ensure_defaults()
    await ensure_default_admin()


def create_app() -> Quart:
    settings.validate()

    app = Quart(__name__)

    # Blueprints
    app.register_blueprint(claims_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(policy_bp)
    app.register_blueprint(admins_bp)

    @app.before_request
    async def before_request():
        g.start_time = time.time()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        log.debug("[Instance %s] %s %s request_id=%s", INSTANCE_ID, request.method, request.path, g.request_id)

    @app.after_request
    async def after_request(response):
        try:
            duration = time.time() - g.get("start_time", time.time())
            endpoint = normalize_endpoint(request.path)

            REQUEST_LATENCY.labels(endpoint=endpoint).observe(duration)
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status=str(response.status_code)
            ).inc()

            response.headers["X-Instance-ID"] = INSTANCE_ID
            response.headers["X-Request-ID"] = g.get("request_id", "")
            apply_headers(response)
            log.info(
                "%s %s -> %s in %.1fms request_id=%s",
                request.method, request.path, response.status_code, duration * 1000, g.get("request_id"),
            )
        except Exception as e:
            log.error("Error recording metrics: %s", e)
        return response

    @app.errorhandler(AppError)
    async def handle_app_error(err: AppError):
        body = err.to_dict()
        body["request_id"] = g.get("request_id")
        if err.status_code >= 500:
            log.error("Application error | code=%s message=%s", err.code, err.message)
        else:
            log.warning("Request rejected | code=%s status=%s message=%s", err.code, err.status_code, err.message)
        headers = {}
        if isinstance(err, RateLimitError):
            headers["Retry-After"] = str(err.retry_after)
        return jsonify(body), err.status_code, headers

    @app.errorhandler(SQLAlchemyError)
    async def handle_database_error(err: SQLAlchemyError):
        log.exception("Database error | request_id=%s", g.get("request_id"))
        return jsonify({
            "success": False,
            "message": "Database operation failed",
            "code": ErrorCode.DATABASE_ERROR,
            "request_id": g.get("request_id"),
        }), 500

    @app.errorhandler(Exception)
    async def handle_unexpected_error(err: Exception):
        # 404/405 and friends keep their own responses
        if isinstance(err, HTTPException):
            return err
        log.exception("Unhandled error | request_id=%s", g.get("request_id"))
        return jsonify({
            "success": False,
            "message": "Internal server error",
            "code": ErrorCode.INTERNAL_ERROR,
            "request_id": g.get("request_id"),
        }), 500

    @app.get("/metrics")
    async def metrics():
        try:
            counts = await count_rows()
            ORDERS_TOTAL.set(counts["orders"])
            PRODUCTS_TOTAL.set(counts["products"])
            CLAIMED_ORDERS_TOTAL.set(counts["claimed_orders"])
        except SQLAlchemyError as e:
            log.error("Failed to refresh business gauges: %s", e)
        data = generate_latest()
        return app.response_class(data, mimetype=CONTENT_TYPE_LATEST)

    @app.get("/health")
    async def health():
        return jsonify({"status": "ok"})

    @app.get("/api/health")
    async def health_detail():
        status = "healthy"
        checks = {"uptime": {"status": "healthy", "seconds": int(time.time() - STARTED_AT)}}
        try:
            checks["database"] = await check_database()
        except Exception as e:
            log.error("Database health check failed: %s", e)
            checks["database"] = {"status": "unhealthy", "error": str(e)}
            status = "unhealthy"
        try:
            r = await get_redis()
            await r.ping()
            checks["redis"] = {"status": "healthy"}
        except Exception as e:
            # rate limiting fails open, so Redis being down is degraded, not fatal
            log.warning("Redis health check failed: %s", e)
            checks["redis"] = {"status": "unhealthy", "error": str(e)}
        body = {
            "status": status,
            "version": settings.APP_VERSION,
            "environment": settings.APP_ENV,
            "checks": checks,
        }
        return jsonify(body), 200 if status == "healthy" else 503

    @app.before_serving
    async def startup():
        logging.basicConfig(
            level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        log.info("Initializing database...")
        await bootstrap()
        log.info("Database ready.")

    @app.after_serving
    async def shutdown():
        await close_redis()
        await engine.dispose()
        log.info("Shutdown complete.")

    return app
