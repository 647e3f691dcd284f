"""
XML namespaces, algorithm identifiers and the fixed DIAN signature policy.

These values are published by the authority and must appear verbatim in
every signature.
"""

from datetime import timedelta, timezone

# Namespaces
DS_NS = "http://www.w3.org/2000/09/xmldsig#"
XADES_NS = "http://uri.etsi.org/01903/v1.3.2#"
EXT_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonExtensionComponents-2"

SIGNATURE_NSMAP = {
    "ds": DS_NS,
    "xades": XADES_NS,
}

# Algorithms
C14N = "http://www.w3.org/TR/2001/REC-xml-c14n-20010315"
ENVELOPED_SIGNATURE = "http://www.w3.org/2000/09/xmldsig#enveloped-signature"
RSA_SHA256 = "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256"
SHA256 = "http://www.w3.org/2001/04/xmlenc#sha256"
SIGNED_PROPERTIES_TYPE = "http://uri.etsi.org/01903#SignedProperties"

# Signature policy (politica de firma v2)
POLICY_URI = (
    "https://facturaelectronica.dian.gov.co/politicadefirma/v2/politicadefirmav2.pdf"
)
POLICY_HASH = "dMoMvtcG5aIzgYo0tIsSQeVJBDnUnfSOfBpxXrmor0Y="
POLICY_HASH_ALGORITHM = SHA256

CLAIMED_ROLE_SUPPLIER = "supplier"

# SigningTime is expressed in Colombia time
COLOMBIA_TZ = timezone(timedelta(hours=-5))


def ds(tag: str) -> str:
    """Clark notation for an xmldsig element"""
    return f"{{{DS_NS}}}{tag}"


def xades(tag: str) -> str:
    """Clark notation for a XAdES element"""
    return f"{{{XADES_NS}}}{tag}"


def ext(tag: str) -> str:
    """Clark notation for a UBL extension element"""
    return f"{{{EXT_NS}}}{tag}"
