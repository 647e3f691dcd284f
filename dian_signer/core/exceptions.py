"""
Signing Engine Exceptions

Typed errors for certificate handling, document structure and
cryptographic failures. Every error carries a stable error code so
callers can map failures without parsing messages.

CanonicalizationError is both a DocumentError and a SigningError: a
document that cannot be parsed or canonicalized is a structural fault of
the input, and it also aborts the signature computation, so handlers
catching either branch see it.
"""

from typing import Dict, Any


class SignerError(Exception):
    """Base exception for signing engine errors"""
    default_code = "SIGNER_ERROR"

    def __init__(self, message: str, error_code: str = None,
                 details: Dict[str, Any] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}


# Certificate errors

class CertificateError(SignerError):
    """Certificate-related errors"""
    default_code = "CERTIFICATE_ERROR"


class MalformedBundleError(CertificateError):
    """Bytes are not a PKCS#12 bundle"""
    default_code = "CERTIFICATE_MALFORMED_BUNDLE"


class DecryptionFailedError(CertificateError):
    """Bundle could not be decrypted with the supplied password"""
    default_code = "CERTIFICATE_DECRYPTION_FAILED"


class NoPrivateKeyError(CertificateError):
    """Bundle has no private key entry"""
    default_code = "CERTIFICATE_NO_PRIVATE_KEY"


class NoCertificateError(CertificateError):
    """Bundle has no X.509 certificate entry"""
    default_code = "CERTIFICATE_NO_CERTIFICATE"


class CertificateExpiredError(CertificateError):
    """Certificate validity window has ended"""
    default_code = "CERTIFICATE_EXPIRED"


class CertificateNotYetValidError(CertificateError):
    """Certificate validity window has not started"""
    default_code = "CERTIFICATE_NOT_YET_VALID"


class CertificateNotConfiguredError(CertificateError):
    """No certificate is configured for the tenant"""
    default_code = "CERTIFICATE_NOT_CONFIGURED"


# Cryptographic errors

class SigningError(SignerError):
    """Signing-related errors"""
    default_code = "SIGNING_FAILED"


class KeyMismatchError(SigningError):
    """Private key does not belong to the certificate"""
    default_code = "KEY_MISMATCH"


# Document structural errors

class DocumentError(SignerError):
    """Unsigned document does not meet the structural contract"""
    default_code = "DOCUMENT_ERROR"


class CanonicalizationError(DocumentError, SigningError):
    """XML could not be parsed or canonicalized"""
    default_code = "CANONICALIZATION_FAILED"


class InjectionError(DocumentError):
    """Signature could not be placed in the document"""
    default_code = "INJECTION_FAILED"


class InsufficientExtensionsError(InjectionError):
    """Document has fewer than two ext:ExtensionContent placeholders"""
    default_code = "INSUFFICIENT_EXTENSIONS"

    def __init__(self, message: str, found: int = 0):
        super().__init__(message, details={"found": found, "required": 2})
        self.found = found
