"""
Certificate Validator

Runs structural and temporal checks over a certificate bundle and collects
every problem into a single result instead of stopping at the first one.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from cryptography.hazmat.primitives import serialization
from pydantic import BaseModel, Field

from .certificate_loader import CertificateLoader, CertificateBundle
from .exceptions import CertificateError, DecryptionFailedError

logger = logging.getLogger(__name__)


class CertificateReport(BaseModel):
    """Certificate health report returned to the UI"""
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    subject: Optional[str] = None
    issuer: Optional[str] = None
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None


@dataclass
class ValidationResult:
    """Outcome of certificate validation"""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    subject: Optional[str] = None
    issuer: Optional[str] = None
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None

    def to_report(self) -> CertificateReport:
        return CertificateReport(
            is_valid=self.is_valid,
            errors=list(self.errors),
            subject=self.subject,
            issuer=self.issuer,
            valid_from=self.valid_from,
            valid_to=self.valid_to,
        )


def as_utc(moment: Optional[datetime]) -> datetime:
    """Current time when None; naive datetimes are read as UTC."""
    if moment is None:
        return datetime.now(timezone.utc)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class CertificateValidator:
    """
    Validates certificate bundles without raising for data problems.

    Only leaf-certificate checks are performed: validity window and
    key/certificate correspondence. Chain building against the
    certification provider's CA is not attempted.
    """

    def __init__(self, loader: Optional[CertificateLoader] = None):
        self.loader = loader or CertificateLoader()

    def validate(
        self,
        bundle_bytes: bytes,
        password: Optional[str],
        now: Optional[datetime] = None
    ) -> ValidationResult:
        """
        Validate a PKCS#12 bundle.

        Args:
            bundle_bytes: PKCS#12 file contents
            password: Bundle password
            now: Reference time, defaults to the current time

        Returns:
            ValidationResult with every problem found
        """
        try:
            bundle = self.loader.load(bundle_bytes, password)
        except DecryptionFailedError as e:
            return ValidationResult(is_valid=False, errors=[e.message])
        except CertificateError as e:
            logger.info(f"Certificate bundle rejected: {e.error_code}")
            return ValidationResult(
                is_valid=False,
                errors=[f"Error al procesar el certificado: {e.message or 'Formato invalido'}"]
            )

        errors = self.check_bundle(bundle, now)

        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            subject=bundle.subject_name,
            issuer=bundle.issuer_name,
            valid_from=bundle.not_before,
            valid_to=bundle.not_after,
        )

    def check_bundle(
        self,
        bundle: CertificateBundle,
        now: Optional[datetime] = None
    ) -> List[str]:
        """Checks over already-loaded material; returns error messages."""
        now = as_utc(now)
        errors: List[str] = []

        if now < bundle.not_before:
            errors.append(
                "El certificado aun no es valido. "
                f"Valido desde: {bundle.not_before.date().isoformat()}"
            )

        if now > bundle.not_after:
            errors.append(
                "El certificado esta vencido. "
                f"Vencimiento: {bundle.not_after.date().isoformat()}"
            )

        if not self._key_matches_certificate(bundle):
            errors.append("La llave privada no corresponde al certificado")

        if errors:
            logger.info(
                f"Certificate {bundle.serial_number} failed {len(errors)} check(s)"
            )

        return errors

    @staticmethod
    def _key_matches_certificate(bundle: CertificateBundle) -> bool:
        public_format = serialization.PublicFormat.SubjectPublicKeyInfo
        key_public = bundle.private_key.public_key().public_bytes(
            serialization.Encoding.DER, public_format
        )
        cert_public = bundle.certificate.public_key().public_bytes(
            serialization.Encoding.DER, public_format
        )
        return key_public == cert_public
