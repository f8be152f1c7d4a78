"""Public key sanity check – can the key encrypt a probe message?"""

from __future__ import annotations

import logging
import os

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

logger = logging.getLogger(__name__)

PROBE_SIZE = 100


def load_rsa_public_key(public_key: str) -> rsa.RSAPublicKey:
    """Parse PEM text (SPKI or PKCS#1) into an RSA public key.

    Raises ``ValueError`` for malformed or non-RSA key material.
    """
    key = serialization.load_pem_public_key(public_key.encode("ascii"))
    if not isinstance(key, rsa.RSAPublicKey):
        raise ValueError(f"Not an RSA public key: {type(key).__name__}")
    return key


def is_valid_public_key(public_key: object) -> bool:
    """Return True if *public_key* can RSA-encrypt 100 random bytes.

    Only rejects malformed key material; it says nothing about whether the
    caller holds the matching private key. Never raises.
    """
    if not public_key or not isinstance(public_key, str):
        return False
    try:
        key = load_rsa_public_key(public_key)
        key.encrypt(
            os.urandom(PROBE_SIZE),
            padding.OAEP(
                mgf=padding.MGF1(algorithm=hashes.SHA1()),
                algorithm=hashes.SHA1(),
                label=None,
            ),
        )
    except Exception as e:
        logger.debug("Public key rejected: %s", e)
        return False
    return True
