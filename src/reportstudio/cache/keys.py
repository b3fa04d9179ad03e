"""Cache key naming convention.

Keys look like ``<namespace>:<tenant_id>:<resource_id>:<digest>`` where the
digest is a SHA-256 prefix of the canonical JSON of the operation
parameters. Everything cached about one dataset (any namespace) matches
``*:<tenant_id>:<dataset_id>:*``.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

FETCH = "fetch"
PROFILE = "profile"
PREVIEW = "preview"
RUN = "run"

DIGEST_LENGTH = 16


def canonical_json(params: Any) -> str:
    """Deterministic JSON: sorted keys, no whitespace, non-JSON values as str."""
    return json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)


def params_digest(params: Any) -> str:
    return hashlib.sha256(canonical_json(params).encode("utf-8")).hexdigest()[:DIGEST_LENGTH]


def _segment(name: str, value: str) -> str:
    if not value or ":" in value or "*" in value:
        raise ValueError(f"{name} must be non-empty and contain no ':' or '*': {value!r}")
    return value


def make_cache_key(
    namespace: str, tenant_id: str, resource_id: str, params: Any = None
) -> str:
    """Build a cache key.

    Args:
        namespace: Operation family (fetch, profile, preview, run)
        tenant_id: Owning tenant
        resource_id: Dataset or transformation id
        params: Operation parameters (options, limits, config)

    Returns:
        ``namespace:tenant:resource:digest``
    """
    return ":".join(
        [
            _segment("namespace", namespace),
            _segment("tenant_id", tenant_id),
            _segment("resource_id", resource_id),
            params_digest(params),
        ]
    )


def resource_pattern(tenant_id: str, resource_id: str) -> str:
    """Pattern matching every cached entry about one dataset or transformation."""
    return f"*:{_segment('tenant_id', tenant_id)}:{_segment('resource_id', resource_id)}:*"


def tenant_pattern(tenant_id: str) -> str:
    return f"*:{_segment('tenant_id', tenant_id)}:*"
