"""
XAdES-EPES Signature Composer

Builds the complete ds:Signature element required by the DIAN technical
annex: SignedInfo with three references (document, KeyInfo,
SignedProperties), SignatureValue, KeyInfo and the XAdES
QualifyingProperties bound to the fixed signature policy.

The signature is assembled inside the parsed document, in the placeholder
it will finally occupy, so KeyInfo, SignedProperties and SignedInfo are
canonicalized with exactly the namespace context a verifier sees.
"""

import base64
import binascii
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from lxml import etree

from .canonicalizer import Canonicalizer, parse_xml
from .certificate_validator import as_utc
from .digest_engine import DigestEngine
from .exceptions import CertificateError, SigningError, KeyMismatchError
from .injector import Injector
from .namespaces import (
    C14N, ENVELOPED_SIGNATURE, RSA_SHA256, SHA256, SIGNED_PROPERTIES_TYPE,
    POLICY_URI, POLICY_HASH, POLICY_HASH_ALGORITHM, CLAIMED_ROLE_SUPPLIER,
    COLOMBIA_TZ, SIGNATURE_NSMAP, ds, xades
)

logger = logging.getLogger(__name__)


@dataclass
class SignatureContext:
    """Values computed while composing one signature"""
    signature_id: str
    document_digest: str
    key_info_digest: str
    signed_properties_digest: str
    signing_time: str
    canonicalization_method: str = C14N
    signature_method: str = RSA_SHA256
    digest_method: str = SHA256
    policy_identifier: str = POLICY_URI
    policy_hash: str = POLICY_HASH

    @property
    def key_info_id(self) -> str:
        return f"{self.signature_id}-keyinfo"

    @property
    def signed_properties_id(self) -> str:
        return f"{self.signature_id}-signedprops"

    @property
    def signature_value_id(self) -> str:
        return f"{self.signature_id}-sigvalue"

    @property
    def object_id(self) -> str:
        return f"{self.signature_id}-object0"


@dataclass
class ComposedSignature:
    """Serialized signature plus the context it was built from"""
    fragment: str
    context: SignatureContext


def format_signing_time(signing_time: Optional[datetime] = None) -> str:
    """xades:SigningTime value in Colombia time, millisecond precision."""
    return as_utc(signing_time).astimezone(COLOMBIA_TZ).isoformat(timespec="milliseconds")


class SignatureComposer:
    """
    Composes XAdES-EPES signatures for UBL 2.1 documents.

    Composition is deterministic: with the same document, key, certificate
    and signing time the same fragment is produced.
    """

    def __init__(
        self,
        canonicalizer: Optional[Canonicalizer] = None,
        digest_engine: Optional[DigestEngine] = None,
        injector: Optional[Injector] = None
    ):
        self.canonicalizer = canonicalizer or Canonicalizer()
        self.digest_engine = digest_engine or DigestEngine()
        self.injector = injector or Injector()

    def compose(
        self,
        unsigned_xml: Union[str, bytes],
        private_key: rsa.RSAPrivateKey,
        cert_der_base64: str,
        cert_digest_base64: str,
        issuer_name: str,
        serial_number: str,
        signing_time: Optional[datetime] = None
    ) -> str:
        """
        Build the ds:Signature fragment for a document.

        Returns:
            Serialized ds:Signature element, ready for the injector

        Raises:
            CanonicalizationError: If the document cannot be parsed
            InsufficientExtensionsError: If the placeholders are missing
            KeyMismatchError: If the key does not belong to the certificate
            SigningError: If the RSA operation fails
        """
        return self.compose_with_context(
            unsigned_xml, private_key, cert_der_base64, cert_digest_base64,
            issuer_name, serial_number, signing_time
        ).fragment

    def compose_with_context(
        self,
        unsigned_xml: Union[str, bytes],
        private_key: rsa.RSAPrivateKey,
        cert_der_base64: str,
        cert_digest_base64: str,
        issuer_name: str,
        serial_number: str,
        signing_time: Optional[datetime] = None,
        signature_id: Optional[str] = None
    ) -> ComposedSignature:
        """Same as compose(), also returning the SignatureContext."""

        tree = parse_xml(unsigned_xml)
        slot = self.injector.check_placeholders(tree)
        certificate = self._load_certificate(cert_der_base64, cert_digest_base64)

        # The signature becomes the sole content of the slot
        for child in list(slot):
            slot.remove(child)
        slot.text = None

        document_digest = self.digest_engine.digest(
            self.canonicalizer.canonicalize_document(tree)
        )

        signing_time_text = format_signing_time(signing_time)
        if signature_id is None:
            signature_id = self._derive_signature_id(
                document_digest, signing_time_text, cert_digest_base64
            )

        logger.info(f"Signing XML with signature ID: {signature_id}")

        context = SignatureContext(
            signature_id=signature_id,
            document_digest=document_digest,
            key_info_digest="",
            signed_properties_digest="",
            signing_time=signing_time_text,
        )

        signature = etree.SubElement(slot, ds("Signature"), nsmap=SIGNATURE_NSMAP)
        signature.set("Id", signature_id)

        signed_info = etree.SubElement(signature, ds("SignedInfo"))
        etree.SubElement(signed_info, ds("CanonicalizationMethod"), Algorithm=C14N)
        etree.SubElement(signed_info, ds("SignatureMethod"), Algorithm=RSA_SHA256)

        signature_value = etree.SubElement(signature, ds("SignatureValue"))
        signature_value.set("Id", context.signature_value_id)

        key_info = self._build_key_info(signature, context, cert_der_base64)

        signature_object = etree.SubElement(signature, ds("Object"))
        signature_object.set("Id", context.object_id)
        qualifying_properties = etree.SubElement(
            signature_object, xades("QualifyingProperties")
        )
        qualifying_properties.set("Target", f"#{signature_id}")

        signed_properties = self._build_signed_properties(
            qualifying_properties, context, cert_digest_base64,
            issuer_name, serial_number
        )

        context.key_info_digest = self.digest_engine.digest(
            self.canonicalizer.canonicalize(key_info)
        )
        context.signed_properties_digest = self.digest_engine.digest(
            self.canonicalizer.canonicalize(signed_properties)
        )

        self._add_references(signed_info, context)

        signed_info_c14n = self.canonicalizer.canonicalize(signed_info)
        signature_value.text = self._sign(private_key, certificate, signed_info_c14n)

        slot.remove(signature)
        fragment = etree.tostring(signature, encoding="unicode")

        return ComposedSignature(fragment=fragment, context=context)

    def _build_key_info(
        self,
        signature: etree._Element,
        context: SignatureContext,
        cert_der_base64: str
    ) -> etree._Element:
        key_info = etree.SubElement(signature, ds("KeyInfo"))
        key_info.set("Id", context.key_info_id)
        x509_data = etree.SubElement(key_info, ds("X509Data"))
        etree.SubElement(x509_data, ds("X509Certificate")).text = cert_der_base64
        return key_info

    def _build_signed_properties(
        self,
        qualifying_properties: etree._Element,
        context: SignatureContext,
        cert_digest_base64: str,
        issuer_name: str,
        serial_number: str
    ) -> etree._Element:
        signed_properties = etree.SubElement(
            qualifying_properties, xades("SignedProperties")
        )
        signed_properties.set("Id", context.signed_properties_id)

        properties = etree.SubElement(
            signed_properties, xades("SignedSignatureProperties")
        )
        etree.SubElement(properties, xades("SigningTime")).text = context.signing_time

        # SigningCertificate
        signing_certificate = etree.SubElement(properties, xades("SigningCertificate"))
        cert = etree.SubElement(signing_certificate, xades("Cert"))
        cert_digest = etree.SubElement(cert, xades("CertDigest"))
        etree.SubElement(cert_digest, ds("DigestMethod"), Algorithm=SHA256)
        etree.SubElement(cert_digest, ds("DigestValue")).text = cert_digest_base64
        issuer_serial = etree.SubElement(cert, xades("IssuerSerial"))
        etree.SubElement(issuer_serial, ds("X509IssuerName")).text = issuer_name
        etree.SubElement(issuer_serial, ds("X509SerialNumber")).text = str(serial_number)

        # SignaturePolicyIdentifier
        policy_identifier = etree.SubElement(
            properties, xades("SignaturePolicyIdentifier")
        )
        policy_id = etree.SubElement(policy_identifier, xades("SignaturePolicyId"))
        sig_policy_id = etree.SubElement(policy_id, xades("SigPolicyId"))
        etree.SubElement(sig_policy_id, xades("Identifier")).text = context.policy_identifier
        policy_hash = etree.SubElement(policy_id, xades("SigPolicyHash"))
        etree.SubElement(policy_hash, ds("DigestMethod"), Algorithm=POLICY_HASH_ALGORITHM)
        etree.SubElement(policy_hash, ds("DigestValue")).text = context.policy_hash

        # SignerRole
        signer_role = etree.SubElement(properties, xades("SignerRole"))
        claimed_roles = etree.SubElement(signer_role, xades("ClaimedRoles"))
        etree.SubElement(claimed_roles, xades("ClaimedRole")).text = CLAIMED_ROLE_SUPPLIER

        return signed_properties

    def _add_references(self, signed_info: etree._Element,
                        context: SignatureContext) -> None:
        sig_id = context.signature_id

        document_ref = etree.SubElement(signed_info, ds("Reference"))
        document_ref.set("Id", f"{sig_id}-ref0")
        document_ref.set("URI", "")
        self._add_digest(document_ref, context.document_digest,
                         [ENVELOPED_SIGNATURE, C14N])

        key_info_ref = etree.SubElement(signed_info, ds("Reference"))
        key_info_ref.set("URI", f"#{context.key_info_id}")
        self._add_digest(key_info_ref, context.key_info_digest, [C14N])

        properties_ref = etree.SubElement(signed_info, ds("Reference"))
        properties_ref.set("Id", f"{sig_id}-ref2")
        properties_ref.set("URI", f"#{context.signed_properties_id}")
        properties_ref.set("Type", SIGNED_PROPERTIES_TYPE)
        self._add_digest(properties_ref, context.signed_properties_digest, [C14N])

    @staticmethod
    def _add_digest(reference: etree._Element, digest_value: str,
                    transforms: list) -> None:
        transforms_element = etree.SubElement(reference, ds("Transforms"))
        for algorithm in transforms:
            etree.SubElement(transforms_element, ds("Transform"), Algorithm=algorithm)
        etree.SubElement(reference, ds("DigestMethod"), Algorithm=SHA256)
        etree.SubElement(reference, ds("DigestValue")).text = digest_value

    def _load_certificate(self, cert_der_base64: str,
                          cert_digest_base64: str) -> x509.Certificate:
        try:
            cert_der = base64.b64decode(cert_der_base64, validate=True)
            certificate = x509.load_der_x509_certificate(cert_der)
        except (binascii.Error, ValueError) as e:
            raise CertificateError(
                "El certificado no pudo ser decodificado",
                error_code="CERTIFICATE_UNREADABLE",
                details={"reason": str(e)}
            )

        if self.digest_engine.digest(cert_der) != cert_digest_base64:
            raise CertificateError(
                "El digest del certificado no corresponde al certificado",
                error_code="CERTIFICATE_DIGEST_MISMATCH"
            )

        return certificate

    @staticmethod
    def _derive_signature_id(document_digest: str, signing_time: str,
                             cert_digest_base64: str) -> str:
        seed = f"{document_digest}|{signing_time}|{cert_digest_base64}"
        return f"xmldsig-{uuid.uuid5(uuid.NAMESPACE_URL, seed)}"

    @staticmethod
    def _sign(private_key: rsa.RSAPrivateKey, certificate: x509.Certificate,
              data: bytes) -> str:
        """RSA-SHA256 over data, checked against the certificate public key."""
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise KeyMismatchError(
                "Only RSA keys can produce rsa-sha256 signatures",
                details={"key_type": type(private_key).__name__}
            )

        public_key = certificate.public_key()
        if not isinstance(public_key, rsa.RSAPublicKey):
            raise KeyMismatchError(
                "Certificate public key is not RSA",
                details={"key_type": type(public_key).__name__}
            )

        try:
            signature = private_key.sign(data, padding.PKCS1v15(), hashes.SHA256())
        except (ValueError, TypeError) as e:
            raise SigningError(f"RSA signing operation failed: {e}")

        try:
            public_key.verify(signature, data, padding.PKCS1v15(), hashes.SHA256())
        except InvalidSignature:
            raise KeyMismatchError(
                "La llave privada no corresponde al certificado",
                details={"serial_number": str(certificate.serial_number)}
            )

        return base64.b64encode(signature).decode("ascii")
