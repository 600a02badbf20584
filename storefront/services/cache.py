"""Public-catalog cache invalidation.

Catalog responses are cached under ``<prefix>:<slug>:<...>``; any write that can
change what the public catalog shows must bust every key of that tenant.
"""

import re
from typing import List

import structlog
from redis import Redis
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.db.models import Business

logger = structlog.get_logger(__name__)

SCAN_COUNT = 100

_GLOB_SPECIALS = re.compile(r"([*?\[\]\\])")

def redis_client() -> Redis:
    return Redis.from_url(settings.REDIS_URL, decode_responses=True)

def catalog_key_pattern(slug: str, prefix: str = "catalog") -> str:
    # slug is matched literally so a slug like "a*" cannot reach other tenants
    escaped = _GLOB_SPECIALS.sub(r"\\\1", slug)
    return f"{prefix}:{escaped}:*"


class CatalogCacheInvalidator:
    def __init__(self, redis: Redis, prefix: str = settings.CATALOG_CACHE_PREFIX):
        self.redis = redis
        self.prefix = prefix

    def invalidate_by_slug(self, slug: str) -> int:
        """Delete every key under the tenant's namespace; returns how many were removed."""
        pattern = catalog_key_pattern(slug, self.prefix)
        removed = 0
        batch: List[str] = []
        for key in self.redis.scan_iter(match=pattern, count=SCAN_COUNT):
            batch.append(key)
            if len(batch) >= SCAN_COUNT:
                removed += self.redis.delete(*batch)
                batch = []
        if batch:
            removed += self.redis.delete(*batch)
        logger.info("Catalog cache invalidated", slug=slug, removed=removed)
        return removed

    def invalidate_by_business_id(self, db: Session, business_id: int) -> int:
        business = db.get(Business, business_id)
        if not business:
            return 0
        return self.invalidate_by_slug(business.slug)
