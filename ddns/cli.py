"""Command line: run the service, or act as a client (keygen / sign)."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ddns.services.alias_check import validate_alias
from ddns.services.authenticator import sign_proof
from ddns.services.errors import DdnsError

DEFAULT_KEY_SIZE = 2048


def generate_key_pair(key_size: int = DEFAULT_KEY_SIZE) -> tuple[bytes, bytes]:
    """Return ``(private_pem, public_pem)`` for a fresh RSA key."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_pem, public_pem


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ddns", allow_abbrev=False)
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="run the HTTP service (default)")

    keygen = sub.add_parser("keygen", help="write a new RSA key pair")
    keygen.add_argument("--out", default="ddns_key",
                        help="path prefix for <out>.pem and <out>.pub.pem (default: %(default)s)")
    keygen.add_argument("--bits", type=int, default=DEFAULT_KEY_SIZE,
                        help="RSA modulus size (default: %(default)s)")

    sign = sub.add_parser("sign", help="print an ownership proof for the current second")
    sign.add_argument("--key", required=True, help="PEM private key file")
    sign.add_argument("--alias", required=True)
    sign.add_argument("--secret", required=True, help="secret returned when the alias was claimed")
    return parser


def _keygen(out: str, bits: int) -> int:
    private_pem, public_pem = generate_key_pair(bits)
    private_path = Path(f"{out}.pem")
    public_path = Path(f"{out}.pub.pem")
    private_path.write_bytes(private_pem)
    private_path.chmod(0o600)
    public_path.write_bytes(public_pem)
    print(f"wrote {private_path} and {public_path}")
    return 0


def _sign(key_path: str, alias: str, secret: str) -> int:
    validate_alias(alias)
    print(sign_proof(Path(key_path).read_bytes(), alias, secret))
    return 0


def run(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        if args.command == "keygen":
            return _keygen(args.out, args.bits)
        if args.command == "sign":
            return _sign(args.key, args.alias, args.secret)
    except (DdnsError, OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    from ddns.app import main

    asyncio.run(main())
    return 0
