import asyncio

import structlog
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from storefront.api import catalog, channel, chat, delivery, orders, payments, ws
from storefront.channel.registry import ChannelRegistry
from storefront.core.config import settings
from storefront.core.errors import register_exception_handlers
from storefront.core.logging import configure_logging
from storefront.db.session import SessionLocal
from storefront.kafka import consumer as side_effect_consumer
from storefront.kafka import producer as side_effect_producer
from storefront.services.broadcast import RoomBroadcaster
from storefront.services.cache import CatalogCacheInvalidator, redis_client
from storefront.services.side_effects import InlineSideEffects, KafkaSideEffects, SideEffectDispatcher
from storefront.version import VERSION

logger = structlog.get_logger(__name__)

# Create instrumentator first
instrumentator = Instrumentator()

app = FastAPI(title="Storefront Fulfillment Service", version=VERSION)

# Instrument the app BEFORE adding routes or middleware
instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/metrics",
    should_gzip=True,
)

register_exception_handlers(app)

@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/v1/_info")
def info():
    return {"service": "storefront", "version": VERSION}

@app.on_event("startup")
async def startup_event():
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)

    broadcaster = RoomBroadcaster()
    broadcaster.bind(asyncio.get_running_loop())

    registry = ChannelRegistry(
        SessionLocal,
        api_base=settings.CHANNEL_API_BASE,
        token=settings.CHANNEL_API_TOKEN,
        timeout=settings.CHANNEL_TIMEOUT_SECONDS,
    )
    # handshakes are blocking HTTP calls
    await asyncio.to_thread(registry.start)

    dispatcher = SideEffectDispatcher(
        SessionLocal,
        broadcaster,
        registry,
        cache=CatalogCacheInvalidator(redis_client(), settings.CATALOG_CACHE_PREFIX),
        rating_base_url=settings.RATING_BASE_URL,
    )
    if settings.SIDE_EFFECTS_MODE == "kafka":
        side_effects = KafkaSideEffects(settings.TOPIC_SIDE_EFFECTS)
        side_effect_consumer.start(dispatcher)
    else:
        side_effects = InlineSideEffects(dispatcher)

    app.state.broadcaster = broadcaster
    app.state.channel = registry
    app.state.side_effects = side_effects
    logger.info("Storefront started", version=VERSION, side_effects=settings.SIDE_EFFECTS_MODE)

@app.on_event("shutdown")
async def shutdown_event():
    side_effect_consumer.stop()
    app.state.channel.stop()
    if settings.SIDE_EFFECTS_MODE == "kafka":
        side_effect_producer.close()

# Include routers
app.include_router(orders.router)
app.include_router(payments.router)
app.include_router(delivery.router)
app.include_router(catalog.router)
app.include_router(chat.router)
app.include_router(channel.router)
app.include_router(ws.router)
