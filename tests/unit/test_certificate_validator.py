"""
Unit tests for certificate validation
"""

import json
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from dian_signer.core.certificate_loader import CertificateLoader
from dian_signer.core.certificate_validator import (
    CertificateValidator, ValidationResult, as_utc
)

NOW = datetime(2024, 6, 15, tzinfo=timezone.utc)


@pytest.fixture
def validator():
    return CertificateValidator()


def test_valid_certificate(validator, bundle_bytes, password):
    """Test a bundle inside its validity window"""
    result = validator.validate(bundle_bytes, password, now=NOW)

    assert result.is_valid is True
    assert result.errors == []
    assert result.subject.startswith("CN=Empresa de Prueba")
    assert result.issuer == result.subject
    assert result.valid_from == datetime(2020, 1, 1, tzinfo=timezone.utc)
    assert result.valid_to == datetime(2040, 1, 1, tzinfo=timezone.utc)


def test_expired_certificate(validator, expired_bundle_bytes, password):
    result = validator.validate(expired_bundle_bytes, password, now=NOW)

    assert result.is_valid is False
    assert result.errors == ["El certificado esta vencido. Vencimiento: 2018-01-01"]
    # Metadata is still reported
    assert result.subject is not None


def test_not_yet_valid_certificate(validator, future_bundle_bytes, password):
    result = validator.validate(future_bundle_bytes, password, now=NOW)

    assert result.is_valid is False
    assert result.errors == ["El certificado aun no es valido. Valido desde: 2090-01-01"]


def test_wrong_password(validator, bundle_bytes):
    """Test a wrong password is reported, not raised"""
    result = validator.validate(bundle_bytes, "incorrecta", now=NOW)

    assert result.is_valid is False
    assert result.errors == ["La contrasena del certificado es incorrecta"]
    assert result.subject is None


def test_truncated_bundle(validator, bundle_bytes, password):
    result = validator.validate(bundle_bytes[:64], password, now=NOW)

    assert result.is_valid is False
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Error al procesar el certificado:")


def test_key_mismatch_detected(validator, bundle_bytes, password, other_private_key):
    """Test a key that does not belong to the certificate"""
    bundle = CertificateLoader().load(bundle_bytes, password)
    mismatched = replace(bundle, private_key=other_private_key)

    errors = validator.check_bundle(mismatched, now=NOW)

    assert errors == ["La llave privada no corresponde al certificado"]


def test_validation_accumulates_errors(validator, expired_bundle_bytes, password,
                                       other_private_key):
    bundle = CertificateLoader().load(expired_bundle_bytes, password)
    mismatched = replace(bundle, private_key=other_private_key)

    errors = validator.check_bundle(mismatched, now=NOW)

    assert len(errors) == 2


def test_naive_reference_time_is_utc(validator, bundle_bytes, password):
    result = validator.validate(bundle_bytes, password, now=datetime(2024, 6, 15))
    assert result.is_valid is True


def test_report_serialization(validator, bundle_bytes, password):
    """Test the pydantic report used by the UI"""
    report = validator.validate(bundle_bytes, password, now=NOW).to_report()
    data = json.loads(report.model_dump_json())

    assert data["is_valid"] is True
    assert data["errors"] == []
    assert data["valid_to"].startswith("2040-01-01")


def test_report_for_failed_result():
    report = ValidationResult(is_valid=False, errors=["x"]).to_report()

    assert report.is_valid is False
    assert report.subject is None


def test_as_utc():
    assert as_utc(datetime(2024, 1, 1)).tzinfo == timezone.utc
    aware = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert as_utc(aware) is aware
    assert as_utc(None).tzinfo is not None
