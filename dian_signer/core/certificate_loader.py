"""
Certificate Loader

Decodes PKCS#12 bundles issued by the accredited certification providers
into typed key and certificate material. This is a pure decode step: no
temporal validation happens here.
"""

import base64
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID
from pyasn1.codec.ber import decoder
from pyasn1.error import PyAsn1Error
from pyasn1_modules import rfc7292

from .digest_engine import DigestEngine
from .exceptions import (
    MalformedBundleError, DecryptionFailedError, NoPrivateKeyError,
    NoCertificateError
)

logger = logging.getLogger(__name__)


# Short attribute names expected in X509IssuerName
DN_ATTRIBUTE_NAMES = {
    NameOID.COMMON_NAME: "CN",
    NameOID.ORGANIZATION_NAME: "O",
    NameOID.ORGANIZATIONAL_UNIT_NAME: "OU",
    NameOID.COUNTRY_NAME: "C",
    NameOID.LOCALITY_NAME: "L",
    NameOID.STATE_OR_PROVINCE_NAME: "ST",
    NameOID.EMAIL_ADDRESS: "E",
}


@dataclass(frozen=True)
class CertificateBundle:
    """Key and certificate material decoded from a PKCS#12 bundle"""
    private_key: rsa.RSAPrivateKey
    certificate: x509.Certificate
    cert_der_base64: str
    cert_digest_base64: str
    issuer_name: str
    subject_name: str
    serial_number: str
    not_before: datetime
    not_after: datetime

    def __repr__(self) -> str:
        return (
            f"CertificateBundle(subject_name={self.subject_name!r}, "
            f"serial_number={self.serial_number!r})"
        )


def format_distinguished_name(name: x509.Name) -> str:
    """RFC 4514 string, most specific RDN first."""
    return name.rfc4514_string(DN_ATTRIBUTE_NAMES)


class CertificateLoader:
    """
    Loads PKCS#12 (.p12/.pfx) certificate bundles.

    Structural decoding of the PFX envelope is kept apart from decryption
    so that a corrupt file and a wrong password are reported as different
    errors.
    """

    def __init__(self, digest_engine: Optional[DigestEngine] = None):
        self.digest_engine = digest_engine or DigestEngine()

    def load(self, bundle_bytes: bytes, password: Optional[str]) -> CertificateBundle:
        """
        Decode a certificate bundle.

        Args:
            bundle_bytes: PKCS#12 file contents
            password: Bundle password

        Returns:
            CertificateBundle with the signing key and leaf certificate

        Raises:
            MalformedBundleError: If the bytes are not a PKCS#12 bundle
            DecryptionFailedError: If the password is wrong
            NoPrivateKeyError: If the bundle has no private key
            NoCertificateError: If the bundle has no certificate
        """
        self._check_structure(bundle_bytes)

        try:
            private_key, certificate, _additional = pkcs12.load_key_and_certificates(
                bundle_bytes, password.encode("utf-8") if password else None
            )
        except ValueError as e:
            logger.warning(f"PKCS#12 decryption failed: {e}")
            raise DecryptionFailedError(
                "La contrasena del certificado es incorrecta"
            )

        if private_key is None:
            raise NoPrivateKeyError(
                "No se encontro llave privada en el certificado .p12"
            )

        if certificate is None:
            raise NoCertificateError(
                "No se encontro certificado X.509 en el archivo .p12"
            )

        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise NoPrivateKeyError(
                "La llave privada del certificado .p12 no es RSA",
                details={"key_type": type(private_key).__name__}
            )

        cert_der = certificate.public_bytes(serialization.Encoding.DER)

        bundle = CertificateBundle(
            private_key=private_key,
            certificate=certificate,
            cert_der_base64=base64.b64encode(cert_der).decode("ascii"),
            cert_digest_base64=self.digest_engine.digest(cert_der),
            issuer_name=format_distinguished_name(certificate.issuer),
            subject_name=format_distinguished_name(certificate.subject),
            serial_number=str(certificate.serial_number),
            not_before=certificate.not_valid_before_utc,
            not_after=certificate.not_valid_after_utc,
        )

        logger.info(
            f"Certificate loaded: {bundle.subject_name} (serial: {bundle.serial_number})"
        )
        return bundle

    @contextmanager
    def open(self, bundle_bytes: bytes, password: Optional[str]) -> Iterator[CertificateBundle]:
        """
        Scoped access to decrypted material.

        The loader keeps no reference to the bundle once the block exits;
        callers must not let it escape the block either.
        """
        bundle = self.load(bundle_bytes, password)
        try:
            yield bundle
        finally:
            del bundle

    def _check_structure(self, bundle_bytes: bytes) -> None:
        """Decode the outer PFX structure (RFC 7292) without decrypting."""
        if not bundle_bytes:
            raise MalformedBundleError("El archivo del certificado esta vacio")

        try:
            pfx, remainder = decoder.decode(bytes(bundle_bytes), asn1Spec=rfc7292.PFX())
        except (PyAsn1Error, TypeError, ValueError) as e:
            raise MalformedBundleError(
                "El archivo no es un certificado PKCS#12 valido",
                details={"reason": str(e)}
            )

        if remainder:
            raise MalformedBundleError(
                "El archivo del certificado contiene datos adicionales",
                details={"trailing_bytes": len(remainder)}
            )

        if int(pfx["version"]) != 3:
            raise MalformedBundleError(
                "Version de PKCS#12 no soportada",
                details={"version": int(pfx["version"])}
            )
