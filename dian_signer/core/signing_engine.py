"""
Core Signing Engine

Implements the signing workflow for UBL 2.1 documents:

1. Check the signature placeholders (fail before touching any key)
2. Decrypt the certificate bundle for the duration of the call
3. Reject certificates outside their validity window
4. Compose the XAdES-EPES signature
5. Inject it into the second ext:ExtensionContent
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from adapters.base.certificate_store import CertificateStore, StoredCertificate

from ..config import SignerConfig
from .audit_logger import SigningAuditLogger
from .canonicalizer import parse_xml
from .certificate_cache import CertificateBundleCache
from .certificate_loader import CertificateLoader
from .certificate_validator import CertificateValidator, ValidationResult, as_utc
from .exceptions import (
    SignerError, CertificateExpiredError, CertificateNotYetValidError,
    CertificateNotConfiguredError
)
from .injector import Injector
from .signature_composer import SignatureComposer

logger = logging.getLogger(__name__)


@dataclass
class SignedDocument:
    """Signed UBL document ready for transmission"""
    xml: str
    signature_id: str
    signing_time: str
    document_digest: str

    def to_bytes(self) -> bytes:
        return self.xml.encode("utf-8")


class SigningEngine:
    """
    Orchestrates loading, validation, composition and injection.

    The engine holds no per-document state; one instance can sign
    documents from several threads. The store is supplied by the caller;
    without an explicit cache one is built from the configured TTL.
    """

    def __init__(
        self,
        config: Optional[SignerConfig] = None,
        store: Optional[CertificateStore] = None,
        cache: Optional[CertificateBundleCache] = None,
        loader: Optional[CertificateLoader] = None,
        composer: Optional[SignatureComposer] = None,
        injector: Optional[Injector] = None,
        audit_logger: Optional[SigningAuditLogger] = None
    ):
        self.config = config or SignerConfig()
        self.store = store
        self.cache = (
            cache if cache is not None
            else CertificateBundleCache.from_config(self.config)
        )
        self.loader = loader or CertificateLoader()
        self.validator = CertificateValidator(self.loader)
        self.injector = injector or Injector()
        self.composer = composer or SignatureComposer(injector=self.injector)
        self.audit = audit_logger or SigningAuditLogger(enabled=self.config.audit_enabled)

    def sign(
        self,
        unsigned_xml: Union[str, bytes],
        bundle_bytes: bytes,
        password: Optional[str],
        signing_time: Optional[datetime] = None,
        tenant_id: Optional[str] = None
    ) -> SignedDocument:
        """
        Sign a UBL document with a PKCS#12 certificate bundle.

        Args:
            unsigned_xml: Document with two ext:ExtensionContent placeholders
            bundle_bytes: PKCS#12 file contents
            password: Bundle password
            signing_time: Signing instant, defaults to now
            tenant_id: Issuer identifier for the audit trail

        Returns:
            SignedDocument with the injected ds:Signature

        Raises:
            SignerError: Any certificate, document or signing failure
        """
        if isinstance(unsigned_xml, bytes):
            unsigned_xml = unsigned_xml.decode("utf-8")

        signing_time = as_utc(signing_time)
        self.audit.log_signing_started(tenant_id, unsigned_xml)

        try:
            self.injector.check_placeholders(parse_xml(unsigned_xml))

            with self.loader.open(bundle_bytes, password) as bundle:
                if self.config.validate_before_signing:
                    self._check_validity_window(bundle.not_before, bundle.not_after,
                                                signing_time)

                composed = self.composer.compose_with_context(
                    unsigned_xml,
                    bundle.private_key,
                    bundle.cert_der_base64,
                    bundle.cert_digest_base64,
                    bundle.issuer_name,
                    bundle.serial_number,
                    signing_time,
                )
                serial_number = bundle.serial_number

            signed_xml = self.injector.inject(unsigned_xml, composed.fragment)

        except SignerError as e:
            logger.error(f"Signing failed: [{e.error_code}] {e.message}")
            self.audit.log_signing_failed(tenant_id, e)
            raise

        self.audit.log_signing_completed(
            tenant_id, composed.context.signature_id, serial_number,
            composed.context.signing_time
        )

        return SignedDocument(
            xml=signed_xml,
            signature_id=composed.context.signature_id,
            signing_time=composed.context.signing_time,
            document_digest=composed.context.document_digest,
        )

    def sign_for_tenant(
        self,
        tenant_id: str,
        unsigned_xml: Union[str, bytes],
        signing_time: Optional[datetime] = None
    ) -> SignedDocument:
        """Sign with the tenant's certificate from the store (through the cache)."""
        stored = self._stored_certificate(tenant_id)
        return self.sign(
            unsigned_xml, stored.bundle_bytes, stored.password,
            signing_time=signing_time, tenant_id=tenant_id
        )

    def sign_if_certificate_available(
        self,
        unsigned_xml: str,
        stored: Optional[StoredCertificate],
        signing_time: Optional[datetime] = None,
        tenant_id: Optional[str] = None
    ) -> str:
        """
        Sign when a certificate is configured.

        Without one the document is returned unsigned only when the
        configuration allows it (habilitacion test mode).
        """
        if stored is not None and stored.bundle_bytes and stored.password is not None:
            return self.sign(
                unsigned_xml, stored.bundle_bytes, stored.password,
                signing_time=signing_time, tenant_id=tenant_id
            ).xml

        if self.config.allow_unsigned:
            logger.warning("Certificate not configured, returning unsigned XML (test mode only)")
            return unsigned_xml

        raise CertificateNotConfiguredError(
            "El emisor no tiene certificado digital configurado",
            details={"tenant_id": tenant_id}
        )

    def validate_certificate(
        self,
        bundle_bytes: bytes,
        password: Optional[str],
        now: Optional[datetime] = None,
        tenant_id: Optional[str] = None
    ) -> ValidationResult:
        """Certificate health check, e.g. when a tenant uploads a bundle."""
        result = self.validator.validate(bundle_bytes, password, now)
        self.audit.log_certificate_validated(
            tenant_id, result.is_valid, result.errors, result.subject
        )
        return result

    def upload_certificate(
        self,
        tenant_id: str,
        bundle_bytes: bytes,
        password: str,
        now: Optional[datetime] = None
    ) -> ValidationResult:
        """Validate and store a tenant's bundle; invalid bundles are not stored."""
        if self.store is None:
            raise CertificateNotConfiguredError("No certificate store configured")

        result = self.validate_certificate(bundle_bytes, password, now, tenant_id)
        if not result.is_valid:
            return result

        self.store.put_certificate(
            tenant_id, StoredCertificate(bundle_bytes=bundle_bytes, password=password)
        )
        self.cache.invalidate(tenant_id)

        logger.info(f"Certificate uploaded for tenant {tenant_id}")
        return result

    def _stored_certificate(self, tenant_id: str) -> StoredCertificate:
        stored = self.cache.get(tenant_id)
        if stored is not None:
            return stored

        if self.store is None:
            raise CertificateNotConfiguredError(
                "No certificate store configured",
                details={"tenant_id": tenant_id}
            )

        stored = self.store.get_certificate(tenant_id)
        self.cache.put(tenant_id, stored)
        return stored

    @staticmethod
    def _check_validity_window(not_before: datetime, not_after: datetime,
                               signing_time: datetime) -> None:
        if signing_time < not_before:
            raise CertificateNotYetValidError(
                "El certificado aun no es valido. "
                f"Valido desde: {not_before.date().isoformat()}",
                details={"not_before": not_before.isoformat()}
            )
        if signing_time > not_after:
            raise CertificateExpiredError(
                "El certificado esta vencido. "
                f"Vencimiento: {not_after.date().isoformat()}",
                details={"not_after": not_after.isoformat()}
            )
