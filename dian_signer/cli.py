#!/usr/bin/env python3
"""
Command line access to the signing engine.

    dian-sign sign --cert empresa.p12 --password-env CERT_PASSWORD \
        --input factura.xml --output factura-firmada.xml
    dian-sign validate --cert empresa.p12 --password-env CERT_PASSWORD
"""

import argparse
import logging
import os
import sys
from datetime import datetime
from typing import Optional, List

import structlog

from .config import get_signer_config
from .core.exceptions import SignerError
from .core.signing_engine import SigningEngine


def _read_password(args: argparse.Namespace) -> str:
    password = os.getenv(args.password_env)
    if password is None:
        raise SystemExit(f"Environment variable {args.password_env} is not set")
    return password


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def cmd_sign(engine: SigningEngine, args: argparse.Namespace) -> int:
    signing_time = (
        datetime.fromisoformat(args.signing_time) if args.signing_time else None
    )
    unsigned_xml = _read_bytes(args.input).decode("utf-8")

    signed = engine.sign(
        unsigned_xml,
        _read_bytes(args.cert),
        _read_password(args),
        signing_time=signing_time,
    )

    with open(args.output, "wb") as f:
        f.write(signed.to_bytes())

    print(f"Signed {args.input} -> {args.output} ({signed.signature_id})")
    return 0


def cmd_validate(engine: SigningEngine, args: argparse.Namespace) -> int:
    result = engine.validate_certificate(_read_bytes(args.cert), _read_password(args))
    print(result.to_report().model_dump_json(indent=2))
    return 0 if result.is_valid else 1


def configure_logging(verbose: bool = False) -> None:
    """Send stdlib and structlog output to stderr; stdout carries results."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr
    )
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dian-sign",
        description="XAdES-EPES signing of UBL 2.1 documents for DIAN"
    )
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sign = subparsers.add_parser("sign", help="Sign a UBL document")
    sign.add_argument("--cert", required=True, help="PKCS#12 certificate bundle")
    sign.add_argument("--password-env", default="DIAN_CERT_PASSWORD",
                      help="Environment variable holding the bundle password")
    sign.add_argument("--input", required=True, help="Unsigned UBL document")
    sign.add_argument("--output", required=True, help="Signed document path")
    sign.add_argument("--signing-time", help="ISO 8601 signing time (default: now)")

    validate = subparsers.add_parser("validate", help="Validate a certificate bundle")
    validate.add_argument("--cert", required=True, help="PKCS#12 certificate bundle")
    validate.add_argument("--password-env", default="DIAN_CERT_PASSWORD",
                          help="Environment variable holding the bundle password")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    configure_logging(args.verbose)

    engine = SigningEngine(get_signer_config())

    try:
        if args.command == "sign":
            return cmd_sign(engine, args)
        return cmd_validate(engine, args)
    except SignerError as e:
        print(f"Error [{e.error_code}]: {e.message}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
