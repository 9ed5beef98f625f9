import os
import tempfile

# Configuration is read from the environment at import time
_TMP_DIR = tempfile.mkdtemp(prefix="claimlink-tests-")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'claimlink.db')}"
os.environ["APP_ENV"] = "test"
os.environ["BCRYPT_ROUNDS"] = "10"
os.environ["DEFAULT_ADMIN_USERNAME"] = "admin"
os.environ["DEFAULT_ADMIN_PASSWORD"] = "admin-pass-123"
os.environ["DEFAULT_EXPIRATION_DAYS"] = "30"
os.environ["DEFAULT_ONE_TIME_USE"] = "true"
os.environ["RATE_LIMIT_MAX_REQUESTS"] = "1000"
os.environ["STRICT_RATE_LIMIT_MAX_REQUESTS"] = "100"

import pytest  # noqa: E402
from fakeredis import FakeAsyncRedis  # noqa: E402

from claimlink.app import bootstrap, create_app  # noqa: E402
from claimlink.catalog import service as catalog  # noqa: E402
from claimlink.common.database import drop_db, engine  # noqa: E402
from claimlink.common.redis_client import set_redis  # noqa: E402
from claimlink.orders import service as orders  # noqa: E402

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin-pass-123"


@pytest.fixture(autouse=True)
async def database():
    await drop_db()
    await bootstrap()
    yield
    # pooled aiosqlite connections must not outlive the test's event loop
    await engine.dispose()


@pytest.fixture(autouse=True)
async def redis():
    client = FakeAsyncRedis(decode_responses=True)
    await client.flushall()
    set_redis(client)
    yield client
    set_redis(None)


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
async def admin_token(client):
    resp = await client.post("/api/auth/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return (await resp.get_json())["token"]


@pytest.fixture
def auth(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def make_product():
    async def _make(name="Widget", download_link="https://x/y", description=None, image_url=None):
        return await catalog.create_product(name, download_link, description=description, image_url=image_url)

    return _make


@pytest.fixture
def make_order(make_product):
    async def _make(order_id="ABC123", product_ids=None, **kwargs):
        if product_ids is None:
            product_ids = [(await make_product())["id"]]
        return await orders.create_order(order_id, product_ids, **kwargs)

    return _make
