"""
Certificate Bundle Cache

Per-tenant cache of *encrypted* certificate bundles with TTL management
and explicit invalidation. Decrypted key material is never cached.

The cache is an ordinary object owned by the caller; there is no module
level instance.
"""

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Any

from adapters.base.certificate_store import StoredCertificate

from ..config import SignerConfig

logger = logging.getLogger(__name__)


@dataclass
class CachedBundle:
    """Cache entry with metadata"""
    stored: StoredCertificate
    cached_at: float
    expires_at: float
    hits: int = 0


class CertificateBundleCache:
    """
    Thread-safe TTL cache of encrypted certificate bundles keyed by tenant.
    """

    def __init__(self, ttl_seconds: int = 3600,
                 clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError("Cache TTL must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CachedBundle] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @classmethod
    def from_config(cls, config: SignerConfig,
                    clock: Callable[[], float] = time.monotonic) -> "CertificateBundleCache":
        """Cache using the configured TTL (DIAN_CERT_CACHE_TTL)."""
        return cls(ttl_seconds=config.cache_ttl_seconds, clock=clock)

    @staticmethod
    def _key(tenant_id: str) -> str:
        # Hash the identifier for consistent key length
        return hashlib.sha256(tenant_id.encode()).hexdigest()

    def get(self, tenant_id: str) -> Optional[StoredCertificate]:
        """Return the cached bundle, or None when absent or expired."""
        key = self._key(tenant_id)
        now = self._clock()

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.expires_at <= now:
                del self._entries[key]
                self._misses += 1
                logger.debug(f"Certificate bundle expired in cache: {key}")
                return None

            entry.hits += 1
            self._hits += 1
            return entry.stored

    def put(self, tenant_id: str, stored: StoredCertificate,
            ttl_seconds: Optional[int] = None) -> None:
        """Cache an encrypted bundle for a tenant."""
        ttl = ttl_seconds or self.ttl_seconds
        now = self._clock()
        key = self._key(tenant_id)

        with self._lock:
            self._entries[key] = CachedBundle(
                stored=stored, cached_at=now, expires_at=now + ttl
            )

        logger.info(f"Certificate bundle cached: {key} (TTL: {ttl}s)")

    def invalidate(self, tenant_id: str) -> bool:
        """Remove a tenant's bundle, e.g. after a certificate upload."""
        key = self._key(tenant_id)
        with self._lock:
            removed = self._entries.pop(key, None) is not None

        if removed:
            logger.info(f"Certificate bundle invalidated: {key}")
        return removed

    def invalidate_all(self) -> int:
        """Remove every entry; returns the number removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()

        if count:
            logger.info(f"Invalidated {count} certificate bundle entries")
        return count

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        now = self._clock()
        with self._lock:
            live = sum(1 for entry in self._entries.values() if entry.expires_at > now)
            return {
                "entries": len(self._entries),
                "live_entries": live,
                "hits": self._hits,
                "misses": self._misses,
                "ttl_seconds": self.ttl_seconds,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
