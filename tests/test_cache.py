from storefront.services.cache import CatalogCacheInvalidator, catalog_key_pattern


class TestCatalogKeyPattern:
    def test_plain_slug(self):
        assert catalog_key_pattern("acme") == "catalog:acme:*"

    def test_glob_characters_escaped(self):
        assert catalog_key_pattern("a*b?[c]") == r"catalog:a\*b\?\[c\]:*"


class TestInvalidateBySlug:
    def test_removes_only_tenant_prefix(self, redis):
        for key in ("catalog:acme:products", "catalog:acme:products:page:2", "catalog:acme-two:products",
                    "catalog:acmex:home", "session:acme:1"):
            redis.set(key, "v")

        removed = CatalogCacheInvalidator(redis, "catalog").invalidate_by_slug("acme")

        assert removed == 2
        assert sorted(redis.store) == ["catalog:acme-two:products", "catalog:acmex:home", "session:acme:1"]

    def test_wildcard_slug_cannot_reach_other_tenants(self, redis):
        redis.set("catalog:acme:products", "v")
        redis.set("catalog:a*:products", "v")

        removed = CatalogCacheInvalidator(redis, "catalog").invalidate_by_slug("a*")

        assert removed == 1
        assert list(redis.store) == ["catalog:acme:products"]

    def test_deletes_in_batches(self, redis):
        for i in range(250):
            redis.set(f"catalog:acme:p:{i}", "v")

        assert CatalogCacheInvalidator(redis, "catalog").invalidate_by_slug("acme") == 250
        assert redis.store == {}
        assert redis.scan_counts == [100]


class TestInvalidateByBusiness:
    def test_resolves_slug(self, redis, db, seed):
        redis.set("catalog:acme:home", "v")
        assert CatalogCacheInvalidator(redis, "catalog").invalidate_by_business_id(db, seed.business_id) == 1

    def test_unknown_business_is_noop(self, redis, db, seed):
        redis.set("catalog:acme:home", "v")
        assert CatalogCacheInvalidator(redis, "catalog").invalidate_by_business_id(db, 999) == 0
        assert redis.store
