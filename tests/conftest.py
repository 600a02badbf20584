import os

# the module-level engine must not point at a real server during tests
os.environ.setdefault("POSTGRES_DSN", "sqlite://")
os.environ.setdefault("ENV", "test")

import re
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.api.deps import get_db
from storefront.channel.port import ChannelError, ChatChannel
from storefront.db.models import Business, Customer, DeliveryPerson, ExchangeRate, Product
from storefront.db.session import Base
from storefront.main import app
from storefront.security.utils import create_access_token
from storefront.services.broadcast import EventBroadcaster
from storefront.services.cache import CatalogCacheInvalidator
from storefront.services.side_effects import InlineSideEffects, SideEffectDispatcher

RATING_BASE_URL = "http://shop.test"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------
class FakeBroadcaster(EventBroadcaster):
    def __init__(self):
        self.events = []
        self.rooms = {}
        self.joined = []

    def join(self, business_id, ws):
        self.joined.append(business_id)
        self.rooms.setdefault(business_id, set()).add(ws)

    def leave(self, business_id, ws):
        self.rooms.get(business_id, set()).discard(ws)

    def emit(self, business_id, event, data):
        self.events.append((business_id, event, data))

    def named(self, event):
        return [e for e in self.events if e[1] == event]

    def names(self):
        return [e[1] for e in self.events]


class FakeChannel(ChatChannel):
    def __init__(self):
        self.sent = []
        self.fail = False

    def send_message(self, business_id, phone, text):
        if self.fail:
            raise ChannelError("channel down")
        self.sent.append((business_id, phone, text))


def _redis_glob(pattern):
    """Translate a redis MATCH pattern (``*``, ``?``, ``[...]``, backslash escapes) to a regex."""
    out, i = [], 0
    while i < len(pattern):
        c = pattern[i]
        if c == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if c == "*":
            out.append(".*")
        elif c == "?":
            out.append(".")
        elif c == "[" and "]" in pattern[i + 1:]:
            j = pattern.index("]", i + 1)
            out.append("[" + re.escape(pattern[i + 1:j]) + "]")
            i = j + 1
            continue
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("".join(out) + r"\Z", re.S)


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.scan_counts = []

    def set(self, key, value):
        self.store[key] = value

    def scan_iter(self, match=None, count=None):
        self.scan_counts.append(count)
        regex = _redis_glob(match or "*")
        for key in list(self.store):
            if regex.match(key):
                yield key

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
@pytest.fixture()
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def seed(session_factory):
    """Two tenants; ``acme`` has a customer, two products, a courier and an exchange rate."""
    with session_factory() as s:
        acme = Business(slug="acme", name="Acme Market", store_address="1 Warehouse Rd",
                        store_latitude=10.5, store_longitude=-66.9)
        other = Business(slug="acme-two", name="Other Shop")
        s.add_all([acme, other])
        s.flush()

        customer = Customer(business_id=acme.id, phone="+584141234567", name="Ana", address="Av. Principal 12")
        no_phone = Customer(business_id=acme.id, phone=None, name="Walk-in")
        shirt = Product(business_id=acme.id, title="Shirt", price_cents=1000)
        shoes = Product(business_id=acme.id, title="Shoes", price_cents=2500)
        foreign = Product(business_id=other.id, title="Foreign", price_cents=500)
        courier = DeliveryPerson(business_id=acme.id, name="Carlos", phone="+584140000001")
        other_courier = DeliveryPerson(business_id=acme.id, name="Beto", phone="+584140000002")
        s.add_all([customer, no_phone, shirt, shoes, foreign, courier, other_courier,
                   ExchangeRate(business_id=acme.id, usd_to_local=36.5)])
        s.commit()

        return SimpleNamespace(
            business_id=acme.id,
            other_business_id=other.id,
            customer_id=customer.id,
            no_phone_customer_id=no_phone.id,
            shirt_id=shirt.id,
            shoes_id=shoes.id,
            foreign_product_id=foreign.id,
            courier_id=courier.id,
            other_courier_id=other_courier.id,
        )


# ---------------------------------------------------------------------------
# Side effects
# ---------------------------------------------------------------------------
@pytest.fixture()
def broadcaster():
    return FakeBroadcaster()


@pytest.fixture()
def channel():
    return FakeChannel()


@pytest.fixture()
def redis():
    return FakeRedis()


@pytest.fixture()
def dispatcher(session_factory, broadcaster, channel, redis):
    return SideEffectDispatcher(
        session_factory,
        broadcaster,
        channel,
        cache=CatalogCacheInvalidator(redis, "catalog"),
        rating_base_url=RATING_BASE_URL,
    )


@pytest.fixture()
def side_effects(dispatcher):
    return InlineSideEffects(dispatcher)


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------
@pytest.fixture()
def client(session_factory, side_effects, broadcaster, channel):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.state.side_effects = side_effects
    app.state.broadcaster = broadcaster
    app.state.channel = channel
    # not used as a context manager: startup would connect to postgres/redis
    yield TestClient(app)
    app.dependency_overrides.clear()


def token_for(business_id, sub="owner@acme.test"):
    token, _ = create_access_token(sub, business_id)
    return token


@pytest.fixture()
def auth_headers(seed):
    return {"Authorization": f"Bearer {token_for(seed.business_id)}"}


@pytest.fixture()
def other_auth_headers(seed):
    return {"Authorization": f"Bearer {token_for(seed.other_business_id, sub='owner@other.test')}"}
