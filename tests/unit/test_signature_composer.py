"""
Unit tests for XAdES-EPES signature composition
"""

import base64
from datetime import datetime, timezone

import pytest
from lxml import etree

from dian_signer.core.canonicalizer import Canonicalizer, parse_xml
from dian_signer.core.certificate_loader import CertificateLoader
from dian_signer.core.digest_engine import DigestEngine
from dian_signer.core.exceptions import (
    CertificateError, InsufficientExtensionsError, KeyMismatchError
)
from dian_signer.core.injector import find_extension_contents
from dian_signer.core.namespaces import (
    DS_NS, XADES_NS, C14N, ENVELOPED_SIGNATURE, RSA_SHA256, SHA256,
    SIGNED_PROPERTIES_TYPE, POLICY_URI, POLICY_HASH
)
from dian_signer.core.signature_composer import SignatureComposer, format_signing_time

NS = {"ds": DS_NS, "xades": XADES_NS}


@pytest.fixture(scope="module")
def bundle(bundle_bytes):
    return CertificateLoader().load(bundle_bytes, "secret")


@pytest.fixture
def composer():
    return SignatureComposer()


def compose(composer, bundle, xml, signing_time, **kwargs):
    return composer.compose_with_context(
        xml, bundle.private_key, bundle.cert_der_base64, bundle.cert_digest_base64,
        bundle.issuer_name, bundle.serial_number, signing_time, **kwargs
    )


class TestSignatureStructure:
    """Shape of the composed ds:Signature element"""

    @pytest.fixture(autouse=True)
    def setup(self, composer, bundle, unsigned_invoice, signing_time):
        self.composed = compose(composer, bundle, unsigned_invoice, signing_time)
        self.signature = etree.fromstring(self.composed.fragment)
        self.bundle = bundle

    def test_root_element(self):
        assert self.signature.tag == f"{{{DS_NS}}}Signature"
        assert self.signature.get("Id") == self.composed.context.signature_id
        assert self.signature.get("Id").startswith("xmldsig-")

    def test_child_order(self):
        children = [etree.QName(child).localname for child in self.signature]
        assert children == ["SignedInfo", "SignatureValue", "KeyInfo", "Object"]

    def test_signed_info_algorithms(self):
        signed_info = self.signature.find("ds:SignedInfo", NS)
        assert signed_info.find("ds:CanonicalizationMethod", NS).get("Algorithm") == C14N
        assert signed_info.find("ds:SignatureMethod", NS).get("Algorithm") == RSA_SHA256

    def test_three_references(self):
        """Test document, KeyInfo and SignedProperties references in order"""
        sig_id = self.composed.context.signature_id
        references = self.signature.findall("ds:SignedInfo/ds:Reference", NS)

        assert [ref.get("URI") for ref in references] == [
            "", f"#{sig_id}-keyinfo", f"#{sig_id}-signedprops"
        ]
        assert references[2].get("Type") == SIGNED_PROPERTIES_TYPE

        transforms = [
            [t.get("Algorithm") for t in ref.findall("ds:Transforms/ds:Transform", NS)]
            for ref in references
        ]
        assert transforms == [[ENVELOPED_SIGNATURE, C14N], [C14N], [C14N]]

        for ref in references:
            assert ref.find("ds:DigestMethod", NS).get("Algorithm") == SHA256

    def test_reference_digests_match_context(self):
        context = self.composed.context
        digests = [
            ref.findtext("ds:DigestValue", namespaces=NS)
            for ref in self.signature.findall("ds:SignedInfo/ds:Reference", NS)
        ]
        assert digests == [
            context.document_digest, context.key_info_digest,
            context.signed_properties_digest
        ]

    def test_key_info_certificate(self):
        key_info = self.signature.find("ds:KeyInfo", NS)
        assert key_info.get("Id") == self.composed.context.key_info_id
        assert key_info.findtext("ds:X509Data/ds:X509Certificate", namespaces=NS) == (
            self.bundle.cert_der_base64
        )

    def test_signed_properties(self):
        """Test signing time, certificate binding, policy and role"""
        qualifying = self.signature.find("ds:Object/xades:QualifyingProperties", NS)
        assert qualifying.get("Target") == f"#{self.composed.context.signature_id}"

        props = qualifying.find("xades:SignedProperties/xades:SignedSignatureProperties", NS)
        assert props.findtext("xades:SigningTime", namespaces=NS) == "2024-06-15T12:30:45.123-05:00"

        cert = props.find("xades:SigningCertificate/xades:Cert", NS)
        assert cert.findtext("xades:CertDigest/ds:DigestValue", namespaces=NS) == (
            self.bundle.cert_digest_base64
        )
        assert cert.findtext("xades:IssuerSerial/ds:X509IssuerName", namespaces=NS) == (
            self.bundle.issuer_name
        )
        assert cert.findtext("xades:IssuerSerial/ds:X509SerialNumber", namespaces=NS) == "1234567890"

        policy = props.find("xades:SignaturePolicyIdentifier/xades:SignaturePolicyId", NS)
        assert policy.findtext("xades:SigPolicyId/xades:Identifier", namespaces=NS) == POLICY_URI
        assert policy.findtext("xades:SigPolicyHash/ds:DigestValue", namespaces=NS) == POLICY_HASH

        role = props.findtext("xades:SignerRole/xades:ClaimedRoles/xades:ClaimedRole", namespaces=NS)
        assert role == "supplier"

    def test_signature_value_size(self):
        value = self.signature.findtext("ds:SignatureValue", namespaces=NS)
        assert len(base64.b64decode(value)) == 256

    def test_fragment_declares_only_signature_namespaces(self):
        assert "urn:oasis" not in self.composed.fragment.split(">", 1)[0]


def test_document_digest_excludes_placeholder_content(composer, bundle,
                                                      unsigned_invoice, signing_time):
    """Test the document digest is taken over the document with an empty slot"""
    composed = compose(composer, bundle, unsigned_invoice, signing_time)

    tree = parse_xml(unsigned_invoice)
    expected = DigestEngine().digest(Canonicalizer().canonicalize_document(tree))

    assert composed.context.document_digest == expected


def test_composition_is_deterministic(composer, bundle, unsigned_invoice, signing_time):
    first = compose(composer, bundle, unsigned_invoice, signing_time)
    second = compose(composer, bundle, unsigned_invoice, signing_time)

    assert first.fragment == second.fragment


def test_signature_id_depends_on_signing_time(composer, bundle, unsigned_invoice, signing_time):
    first = compose(composer, bundle, unsigned_invoice, signing_time)
    second = compose(composer, bundle, unsigned_invoice,
                     datetime(2024, 6, 16, tzinfo=timezone.utc))

    assert first.context.signature_id != second.context.signature_id


def test_explicit_signature_id(composer, bundle, unsigned_invoice, signing_time):
    composed = compose(composer, bundle, unsigned_invoice, signing_time,
                       signature_id="xmldsig-fixed")

    assert composed.context.key_info_id == "xmldsig-fixed-keyinfo"
    assert 'Id="xmldsig-fixed"' in composed.fragment


def test_compose_returns_fragment(composer, bundle, unsigned_invoice, signing_time):
    fragment = composer.compose(
        unsigned_invoice, bundle.private_key, bundle.cert_der_base64,
        bundle.cert_digest_base64, bundle.issuer_name, bundle.serial_number,
        signing_time
    )
    assert fragment.startswith("<ds:Signature")


def test_compose_leaves_input_untouched(composer, bundle, unsigned_invoice, signing_time):
    original = str(unsigned_invoice)
    compose(composer, bundle, unsigned_invoice, signing_time)

    assert unsigned_invoice == original
    assert len(find_extension_contents(parse_xml(unsigned_invoice))[1]) == 0


def test_key_mismatch(composer, bundle, unsigned_invoice, signing_time, other_private_key):
    """Test a key that does not belong to the certificate"""
    with pytest.raises(KeyMismatchError):
        composer.compose(
            unsigned_invoice, other_private_key, bundle.cert_der_base64,
            bundle.cert_digest_base64, bundle.issuer_name, bundle.serial_number,
            signing_time
        )


def test_certificate_digest_mismatch(composer, bundle, unsigned_invoice, signing_time):
    with pytest.raises(CertificateError) as exc_info:
        composer.compose(
            unsigned_invoice, bundle.private_key, bundle.cert_der_base64,
            DigestEngine().digest(b"otro"), bundle.issuer_name,
            bundle.serial_number, signing_time
        )

    assert exc_info.value.error_code == "CERTIFICATE_DIGEST_MISMATCH"


def test_unreadable_certificate(composer, bundle, unsigned_invoice, signing_time):
    with pytest.raises(CertificateError) as exc_info:
        composer.compose(
            unsigned_invoice, bundle.private_key, "@@no-base64@@",
            bundle.cert_digest_base64, bundle.issuer_name,
            bundle.serial_number, signing_time
        )

    assert exc_info.value.error_code == "CERTIFICATE_UNREADABLE"


def test_missing_placeholders(composer, bundle, signing_time):
    with pytest.raises(InsufficientExtensionsError):
        compose(composer, bundle, "<Invoice/>", signing_time)


class TestFormatSigningTime:

    def test_colombia_offset(self):
        value = format_signing_time(datetime(2024, 1, 1, 3, 0, 0, tzinfo=timezone.utc))
        assert value == "2023-12-31T22:00:00.000-05:00"

    def test_naive_is_utc(self):
        assert format_signing_time(datetime(2024, 1, 1, 5, 0, 0)) == "2024-01-01T00:00:00.000-05:00"

    def test_milliseconds_truncated(self):
        value = format_signing_time(datetime(2024, 1, 1, 5, 0, 0, 987654, tzinfo=timezone.utc))
        assert value.endswith(".987-05:00")
