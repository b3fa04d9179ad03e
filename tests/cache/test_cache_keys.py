"""Tests for cache key naming."""

import pytest

from reportstudio.cache import make_cache_key, resource_pattern, tenant_pattern
from reportstudio.cache.keys import FETCH, PROFILE, canonical_json
from reportstudio.cache.manager import compile_pattern


class TestCacheKeys:
    """Tests for make_cache_key and patterns."""

    def test_shape(self):
        key = make_cache_key(FETCH, "t1", "ds1", {"limit": 10})
        namespace, tenant, resource, digest = key.split(":")
        assert (namespace, tenant, resource) == ("fetch", "t1", "ds1")
        assert len(digest) == 16

    def test_param_order_does_not_matter(self):
        a = make_cache_key(FETCH, "t1", "ds1", {"limit": 10, "offset": 5})
        b = make_cache_key(FETCH, "t1", "ds1", {"offset": 5, "limit": 10})
        assert a == b

    def test_different_params_differ(self):
        assert make_cache_key(FETCH, "t1", "ds1", {"limit": 10}) != make_cache_key(
            FETCH, "t1", "ds1", {"limit": 11}
        )

    def test_tenants_never_share_keys(self):
        assert make_cache_key(PROFILE, "t1", "ds1") != make_cache_key(PROFILE, "t2", "ds1")

    @pytest.mark.parametrize("tenant", ["", "a:b", "a*"])
    def test_rejects_bad_segments(self, tenant):
        with pytest.raises(ValueError):
            make_cache_key(FETCH, tenant, "ds1")

    def test_resource_pattern_matches_every_namespace(self):
        regex = compile_pattern(resource_pattern("t1", "ds1"))
        assert regex.fullmatch(make_cache_key(FETCH, "t1", "ds1", {"x": 1}))
        assert regex.fullmatch(make_cache_key(PROFILE, "t1", "ds1"))
        assert not regex.fullmatch(make_cache_key(FETCH, "t1", "ds10"))
        assert not regex.fullmatch(make_cache_key(FETCH, "t2", "ds1"))

    def test_tenant_pattern(self):
        regex = compile_pattern(tenant_pattern("t1"))
        assert regex.fullmatch(make_cache_key(FETCH, "t1", "anything"))
        assert not regex.fullmatch(make_cache_key(FETCH, "t11", "anything"))

    def test_canonical_json(self):
        assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'
