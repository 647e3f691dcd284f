"""
Signature Verifier

Round-trip verification of documents signed by this engine: recomputes the
three reference digests, checks the policy and signing certificate
bindings and verifies the RSA signature over the canonical SignedInfo.
"""

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from lxml import etree

from .canonicalizer import Canonicalizer, parse_xml
from .digest_engine import DigestEngine
from .exceptions import DocumentError
from .namespaces import DS_NS, XADES_NS, C14N, POLICY_URI, POLICY_HASH

logger = logging.getLogger(__name__)

NSMAP = {"ds": DS_NS, "xades": XADES_NS}


@dataclass
class VerificationResult:
    """Result of signature verification"""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    signature_id: Optional[str] = None
    signing_time: Optional[str] = None
    certificate_subject: Optional[str] = None


class SignatureVerifier:
    """Verifies XAdES-EPES signatures produced by SignatureComposer."""

    def __init__(
        self,
        canonicalizer: Optional[Canonicalizer] = None,
        digest_engine: Optional[DigestEngine] = None
    ):
        self.canonicalizer = canonicalizer or Canonicalizer()
        self.digest_engine = digest_engine or DigestEngine()

    def verify(self, signed_xml: Union[str, bytes]) -> VerificationResult:
        tree = parse_xml(signed_xml)
        signatures = tree.getroot().findall(".//ds:Signature", NSMAP)

        if len(signatures) != 1:
            raise DocumentError(
                f"Expected exactly one ds:Signature, found {len(signatures)}",
                details={"found": len(signatures)}
            )

        signature = signatures[0]
        errors: List[str] = []

        signed_info = signature.find("ds:SignedInfo", NSMAP)
        if signed_info is None:
            return VerificationResult(is_valid=False, errors=["Missing ds:SignedInfo"])

        certificate = self._embedded_certificate(signature, errors)

        references = signed_info.findall("ds:Reference", NSMAP)
        if len(references) != 3:
            errors.append(f"Expected 3 references, found {len(references)}")

        for reference in references:
            self._check_reference(tree, signature, reference, errors)

        self._check_qualifying_properties(signature, certificate, errors)

        if certificate is not None:
            self._check_signature_value(signature, signed_info, certificate, errors)

        signing_time = signature.findtext(".//xades:SigningTime", namespaces=NSMAP)

        if errors:
            logger.warning(f"Signature verification failed with {len(errors)} error(s)")

        return VerificationResult(
            is_valid=not errors,
            errors=errors,
            signature_id=signature.get("Id"),
            signing_time=signing_time,
            certificate_subject=(
                certificate.subject.rfc4514_string() if certificate is not None else None
            ),
        )

    def _check_reference(self, tree: etree._ElementTree, signature: etree._Element,
                         reference: etree._Element, errors: List[str]) -> None:
        uri = reference.get("URI")
        expected = reference.findtext("ds:DigestValue", namespaces=NSMAP)
        transforms = [
            transform.get("Algorithm")
            for transform in reference.findall("ds:Transforms/ds:Transform", NSMAP)
        ]

        if C14N not in transforms:
            errors.append(f"Reference {uri!r} does not declare the C14N transform")

        if uri == "":
            canonical = self.canonicalizer.canonicalize_document(tree, exclude=signature)
        elif uri and uri.startswith("#"):
            targets = tree.getroot().xpath("//*[@Id=$id]", id=uri[1:])
            if len(targets) != 1:
                errors.append(f"Reference {uri!r} does not resolve to a single element")
                return
            canonical = self.canonicalizer.canonicalize(targets[0])
        else:
            errors.append(f"Unsupported reference URI {uri!r}")
            return

        if self.digest_engine.digest(canonical) != expected:
            errors.append(f"Digest mismatch for reference {uri!r}")

    def _check_qualifying_properties(self, signature: etree._Element,
                                     certificate: Optional[x509.Certificate],
                                     errors: List[str]) -> None:
        policy = signature.find(".//xades:SignaturePolicyId", NSMAP)
        if policy is None:
            errors.append("Missing xades:SignaturePolicyId")
        else:
            if policy.findtext("xades:SigPolicyId/xades:Identifier", namespaces=NSMAP) != POLICY_URI:
                errors.append("Signature policy identifier does not match")
            if policy.findtext("xades:SigPolicyHash/ds:DigestValue", namespaces=NSMAP) != POLICY_HASH:
                errors.append("Signature policy hash does not match")

        cert_digest = signature.findtext(
            ".//xades:SigningCertificate/xades:Cert/xades:CertDigest/ds:DigestValue",
            namespaces=NSMAP
        )
        if certificate is not None:
            der = certificate.public_bytes(serialization.Encoding.DER)
            if cert_digest != self.digest_engine.digest(der):
                errors.append("SigningCertificate digest does not match KeyInfo certificate")

    def _check_signature_value(self, signature: etree._Element,
                               signed_info: etree._Element,
                               certificate: x509.Certificate,
                               errors: List[str]) -> None:
        value = signature.findtext("ds:SignatureValue", namespaces=NSMAP) or ""
        public_key = certificate.public_key()

        if not isinstance(public_key, rsa.RSAPublicKey):
            errors.append("Certificate public key is not RSA")
            return

        try:
            public_key.verify(
                base64.b64decode(value),
                self.canonicalizer.canonicalize(signed_info),
                padding.PKCS1v15(),
                hashes.SHA256()
            )
        except (InvalidSignature, binascii.Error, ValueError):
            errors.append("SignatureValue does not verify against the certificate")

    @staticmethod
    def _embedded_certificate(signature: etree._Element,
                              errors: List[str]) -> Optional[x509.Certificate]:
        cert_text = signature.findtext(
            "ds:KeyInfo/ds:X509Data/ds:X509Certificate", namespaces=NSMAP
        )
        if not cert_text:
            errors.append("Missing ds:X509Certificate")
            return None
        try:
            return x509.load_der_x509_certificate(base64.b64decode(cert_text))
        except (binascii.Error, ValueError):
            errors.append("Embedded certificate cannot be decoded")
            return None
