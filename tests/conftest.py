import os

# the module-level engine in storefront.data.database is built at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import uuid

import fakeredis
import pytest
from sqlalchemy.orm import sessionmaker

from storefront.celery_worker import celery_app
from storefront.data.database import init_db, make_engine
from storefront.data.models.product import ProductModel
from storefront.domain.schemas import TokenInfo
from storefront.repos.product_repo import ProductRepo
from storefront.tasks import cache_purge, cart_backup


# =====================================================
# storage
# =====================================================
@pytest.fixture()
def engine(tmp_path):
    # a file database so background tasks open their own connections
    eng = make_engine(f"sqlite:///{tmp_path / 'storefront.db'}")
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture()
def redis_client(redis_server):
    client = fakeredis.FakeRedis(server=redis_server, decode_responses=True)
    yield client
    redis_server.connected = True
    client.flushall()


@pytest.fixture(autouse=True)
def eager_tasks():
    # .delay() runs the task inline so its effects are visible on return
    celery_app.conf.task_always_eager = True
    yield
    celery_app.conf.task_always_eager = False


@pytest.fixture()
def task_stores(monkeypatch, session_factory, redis_client):
    """Point the background tasks at the test database and redis."""
    monkeypatch.setattr(cart_backup, "SessionLocal", session_factory)
    monkeypatch.setattr(cache_purge, "purge_client", lambda: redis_client)


# =====================================================
# collaborators
# =====================================================
class FakeAccounts:
    """In-memory stand-in for AccountClient."""

    def __init__(self):
        self.sellers = {}
        self.tokens = {}
        self.seller_calls = []

    def add_seller(self, name: str) -> uuid.UUID:
        seller_id = uuid.uuid4()
        self.sellers[seller_id] = name
        return seller_id

    def add_token(self, token: str, user_id: uuid.UUID, role: str = "user") -> None:
        self.tokens[token] = TokenInfo(valid=True, user_id=user_id, username=token, role=role)

    def get_sellers(self, ids):
        ids = list(ids)
        self.seller_calls.append(ids)
        return {i: self.sellers[i] for i in ids if i in self.sellers}

    def validate_token(self, token: str) -> TokenInfo:
        return self.tokens.get(token, TokenInfo(valid=False, error="unknown token"))


class FakeNotifier:
    def __init__(self):
        self.events = []
        self.fail_with = None

    def publish_order_created(self, event) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.events.append(event)


class CountingProductRepo(ProductRepo):
    """ProductRepo that records how often the store is actually hit."""

    def __init__(self, db):
        super().__init__(db)
        self.calls = {"get_by_id": 0, "get_by_ids": 0, "list_all": 0}
        self.requested_ids = []

    def get_by_id(self, product_id):
        self.calls["get_by_id"] += 1
        return super().get_by_id(product_id)

    def get_by_ids(self, ids):
        ids = list(ids)
        self.calls["get_by_ids"] += 1
        self.requested_ids.append(ids)
        return super().get_by_ids(ids)

    def list_all(self):
        self.calls["list_all"] += 1
        return super().list_all()


@pytest.fixture()
def accounts():
    return FakeAccounts()


@pytest.fixture()
def notifier():
    return FakeNotifier()


@pytest.fixture()
def seller_id(accounts):
    return accounts.add_seller("Acme Store")


@pytest.fixture()
def make_product(db, seller_id):
    def _make(name="Widget", price=100, stock=10, seller=None, type="Gadget", **kwargs):
        return ProductRepo(db).create(
            ProductModel(
                seller_id=seller or seller_id,
                name=name,
                price=price,
                stock=stock,
                type=type,
                **kwargs,
            )
        )

    return _make
