"""
In-memory certificate store, for tests and single-process tools.
"""

import threading
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from dian_signer.core.exceptions import CertificateNotConfiguredError

from ..base.certificate_store import (
    CertificateStore, CertificateStoreError, StoredCertificate
)


class InMemoryCertificateStore(CertificateStore):
    """Dictionary-backed certificate store"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__({"store_name": "memory", **(config or {})})
        self._certificates: Dict[str, StoredCertificate] = {}
        self._lock = threading.Lock()
        self.reads = 0

    def get_certificate(self, tenant_id: str) -> StoredCertificate:
        with self._lock:
            self.reads += 1
            stored = self._certificates.get(tenant_id)

        if stored is None:
            raise CertificateNotConfiguredError(
                "El emisor no tiene certificado digital configurado",
                details={"tenant_id": tenant_id}
            )
        return stored

    def put_certificate(self, tenant_id: str, stored: StoredCertificate) -> None:
        if not tenant_id:
            raise CertificateStoreError("El identificador del emisor es obligatorio")
        if not stored.bundle_bytes:
            raise CertificateStoreError(
                "El certificado digital a almacenar está vacío",
                details={"tenant_id": tenant_id}
            )
        if stored.uploaded_at is None:
            stored = StoredCertificate(
                bundle_bytes=stored.bundle_bytes,
                password=stored.password,
                uploaded_at=datetime.now(timezone.utc).isoformat(),
            )
        with self._lock:
            self._certificates[tenant_id] = stored

    def remove_certificate(self, tenant_id: str) -> bool:
        with self._lock:
            return self._certificates.pop(tenant_id, None) is not None
