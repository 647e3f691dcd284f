"""
Shared fixtures: throwaway RSA keys, self-signed certificates, PKCS#12
bundles and a minimal UBL 2.1 invoice with the two extension placeholders.
"""

from datetime import datetime, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption, pkcs12
)
from cryptography.x509.oid import NameOID

BUNDLE_PASSWORD = "secret"

SIGNING_TIME = datetime(2024, 6, 15, 17, 30, 45, 123000, tzinfo=timezone.utc)

VALID_FROM = datetime(2020, 1, 1, tzinfo=timezone.utc)
VALID_TO = datetime(2040, 1, 1, tzinfo=timezone.utc)

UNSIGNED_INVOICE = """<?xml version="1.0" encoding="UTF-8" standalone="no"?>
<Invoice xmlns="urn:oasis:names:specification:ubl:schema:xsd:Invoice-2" xmlns:cac="urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2" xmlns:cbc="urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2" xmlns:ext="urn:oasis:names:specification:ubl:schema:xsd:CommonExtensionComponents-2" xmlns:sts="dian:gov:co:facturaelectronica:Structures-2-1">
  <ext:UBLExtensions>
    <ext:UBLExtension>
      <ext:ExtensionContent>
        <sts:DianExtensions>
          <sts:InvoiceControl>
            <sts:InvoiceAuthorization>18760000001</sts:InvoiceAuthorization>
          </sts:InvoiceControl>
        </sts:DianExtensions>
      </ext:ExtensionContent>
    </ext:UBLExtension>
    <ext:UBLExtension>
      <ext:ExtensionContent></ext:ExtensionContent>
    </ext:UBLExtension>
  </ext:UBLExtensions>
  <cbc:UBLVersionID>UBL 2.1</cbc:UBLVersionID>
  <cbc:ID>SETP990000001</cbc:ID>
  <cbc:IssueDate>2024-06-15</cbc:IssueDate>
  <cac:LegalMonetaryTotal>
    <cbc:PayableAmount currencyID="COP">119000.00</cbc:PayableAmount>
  </cac:LegalMonetaryTotal>
</Invoice>
"""


def make_certificate(private_key, not_before=VALID_FROM, not_after=VALID_TO,
                     common_name="Empresa de Prueba S.A.S.", serial_number=1234567890):
    """Self-signed certificate for the given key."""
    name = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "CO"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Empresa de Prueba S.A.S."),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(serial_number)
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .sign(private_key, hashes.SHA256())
    )


def make_bundle(private_key, certificate, password=BUNDLE_PASSWORD):
    """PKCS#12 bundle bytes, encrypted with the given password."""
    return pkcs12.serialize_key_and_certificates(
        b"firma", private_key, certificate, None,
        BestAvailableEncryption(password.encode("utf-8"))
    )


@pytest.fixture(scope="session")
def private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def certificate(private_key):
    return make_certificate(private_key)


@pytest.fixture(scope="session")
def bundle_bytes(private_key, certificate):
    return make_bundle(private_key, certificate)


@pytest.fixture(scope="session")
def expired_bundle_bytes(private_key):
    certificate = make_certificate(
        private_key,
        not_before=datetime(2015, 1, 1, tzinfo=timezone.utc),
        not_after=datetime(2018, 1, 1, tzinfo=timezone.utc),
    )
    return make_bundle(private_key, certificate)


@pytest.fixture(scope="session")
def future_bundle_bytes(private_key):
    certificate = make_certificate(
        private_key,
        not_before=datetime(2090, 1, 1, tzinfo=timezone.utc),
        not_after=datetime(2095, 1, 1, tzinfo=timezone.utc),
    )
    return make_bundle(private_key, certificate)


@pytest.fixture(scope="session")
def password():
    return BUNDLE_PASSWORD


@pytest.fixture(scope="session")
def signing_time():
    return SIGNING_TIME


@pytest.fixture(scope="session")
def unsigned_invoice():
    return UNSIGNED_INVOICE


@pytest.fixture
def certificate_factory():
    return make_certificate


@pytest.fixture
def bundle_factory():
    return make_bundle
