"""
Base Certificate Store Interface

This module defines the interface that certificate store adapters must
implement. A store hands out each tenant's encrypted PKCS#12 bundle and
its password; the signing engine never reads files or databases itself.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Any, Optional

from dian_signer.core.exceptions import SignerError, CertificateNotConfiguredError


@dataclass(frozen=True)
class StoredCertificate:
    """Encrypted certificate bundle as kept at rest"""
    bundle_bytes: bytes
    password: str
    uploaded_at: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"StoredCertificate(bundle_bytes=<{len(self.bundle_bytes)} bytes>, "
            f"uploaded_at={self.uploaded_at!r})"
        )


class CertificateStoreError(SignerError):
    """Certificate store errors"""
    default_code = "CERTIFICATE_STORE_ERROR"


class CertificateStore(ABC):
    """
    Abstract base class for certificate stores.

    Implementations back onto whatever persistence the application uses.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.store_name = self.config.get("store_name", "unknown")

    @abstractmethod
    def get_certificate(self, tenant_id: str) -> StoredCertificate:
        """
        Retrieve a tenant's certificate bundle.

        Args:
            tenant_id: Tenant identifier

        Returns:
            StoredCertificate with bundle bytes and password

        Raises:
            CertificateNotConfiguredError: If the tenant has no certificate
            CertificateStoreError: If the store cannot be read
        """
        pass

    @abstractmethod
    def put_certificate(self, tenant_id: str, stored: StoredCertificate) -> None:
        """
        Store a tenant's certificate bundle.

        Raises:
            CertificateStoreError: If the store cannot be written or the
                bundle is empty
        """
        pass

    def has_certificate(self, tenant_id: str) -> bool:
        try:
            self.get_certificate(tenant_id)
        except CertificateNotConfiguredError:
            return False
        return True
