# =============================================================================
# secp256k1 keys, peer identities and digest signatures
# =============================================================================
"""
Key and identity primitives shared by the HD layer and the envelope layer.

What you get
1) Raw keys:
   - create_private_key(): 32 random bytes, re-drawn until the scalar is valid
   - to_public_key(): 33-byte SEC1 compressed point

2) Identities:
   - to_public_key_hash(): RIPEMD160(SHA256(public_key)), 20 bytes
   - the identity doubles as the peer's address in the routing layer

3) Digest signatures:
   - sign_digest(): ECDSA secp256k1, RFC 6979 nonce, low-S, with recovery id
   - verify_digest(): plain boolean check against a compressed public key

4) Encoding helpers:
   - canonical JSON (frozen: compact separators, sorted keys, ASCII only)
   - base64 / hex helpers used on the wire
"""

from __future__ import annotations

import base64
import hashlib
import json
import os
from typing import Any, Tuple, Union

from Crypto.Hash import RIPEMD160
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed, encode_dss_signature
from ecdsa import SECP256k1, SigningKey, VerifyingKey
from ecdsa.util import sigdecode_string, sigencode_string_canonize


# =============================================================================
# Curve constants
# =============================================================================

CURVE_ORDER = SECP256k1.order

PRIVATE_KEY_SIZE = 32
PUBLIC_KEY_SIZE = 33
IDENTITY_SIZE = 20
SIGNATURE_SIZE = 64

_MAX_KEYGEN_ATTEMPTS = 64


# =============================================================================
# Encoding and canonical JSON
# =============================================================================

def b64_encode(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


def b64_decode(data: str) -> bytes:
    return base64.b64decode(data.encode("utf-8"), validate=True)


def hex_decode(data: str) -> bytes:
    if not isinstance(data, str):
        raise ValueError("expected a hex string")
    try:
        return bytes.fromhex(data)
    except ValueError as e:
        raise ValueError(f"invalid hex string: {e}") from e


def canonical_json_bytes(obj: Any) -> bytes:
    # Deterministic serialization for the signed region. Both sides must
    # produce identical bytes, so none of these flags may change.
    return json.dumps(
        obj,
        separators=(",", ":"),
        sort_keys=True,
        ensure_ascii=True,
    ).encode("utf-8")


# =============================================================================
# Hashes
# =============================================================================

def _as_bytes(data: Union[bytes, bytearray, str]) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def sha256(data: Union[bytes, bytearray, str]) -> bytes:
    h = hashes.Hash(hashes.SHA256())
    h.update(_as_bytes(data))
    return h.finalize()


def rmd160(data: Union[bytes, bytearray, str]) -> bytes:
    return RIPEMD160.new(_as_bytes(data)).digest()


def hmac_sha512(key: bytes, data: bytes) -> bytes:
    h = hmac.HMAC(key, hashes.SHA512())
    h.update(data)
    return h.finalize()


# =============================================================================
# Private and public keys
# =============================================================================

def is_valid_private_key(priv: bytes) -> bool:
    if not isinstance(priv, (bytes, bytearray)) or len(priv) != PRIVATE_KEY_SIZE:
        return False
    return 0 < int.from_bytes(priv, "big") < CURVE_ORDER


def create_private_key() -> bytes:
    """
    Generate a raw 32-byte secp256k1 private key.

    A draw outside [1, n-1] is discarded and retried. The chance of a single
    rejection is about 2^-128, but it is checked rather than assumed.
    """
    for _ in range(_MAX_KEYGEN_ATTEMPTS):
        candidate = os.urandom(PRIVATE_KEY_SIZE)
        if is_valid_private_key(candidate):
            return candidate
    raise RuntimeError("could not generate a valid secp256k1 private key")


def _load_private_key(priv: bytes) -> ec.EllipticCurvePrivateKey:
    if not isinstance(priv, (bytes, bytearray)) or len(priv) != PRIVATE_KEY_SIZE:
        raise ValueError(f"private key must be {PRIVATE_KEY_SIZE} bytes")
    # derive_private_key rejects 0 and values >= n
    return ec.derive_private_key(int.from_bytes(priv, "big"), ec.SECP256K1())


def to_public_key(priv: bytes) -> bytes:
    """
    Compute the 33-byte compressed public key for a raw private key.

    Raises ValueError if `priv` is not a valid secp256k1 scalar.
    """
    key = _load_private_key(priv)
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.CompressedPoint,
    )


def load_public_key(pub: bytes) -> ec.EllipticCurvePublicKey:
    if not isinstance(pub, (bytes, bytearray)) or len(pub) != PUBLIC_KEY_SIZE:
        raise ValueError(f"public key must be {PUBLIC_KEY_SIZE} bytes (compressed)")
    return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), bytes(pub))


def is_valid_public_key(pub: bytes) -> bool:
    try:
        load_public_key(pub)
    except ValueError:
        return False
    return True


def to_public_key_hash(pub: Union[bytes, bytearray, str]) -> bytes:
    """
    Identity of a peer: RIPEMD160(SHA256(public_key)), always 20 bytes.
    """
    return rmd160(sha256(pub))


# =============================================================================
# Digest signatures
# =============================================================================

def sign_digest(digest: bytes, priv: bytes) -> Tuple[bytes, int]:
    """
    Sign a 32-byte digest with ECDSA over secp256k1.

    Returns (signature, recovery_id):
      - signature: 64 bytes, r || s, low-S normalized
      - recovery_id: 0 or 1, selects the public key among the candidates
        recoverable from (signature, digest)
    """
    if len(digest) != 32:
        raise ValueError("digest must be 32 bytes")
    if not is_valid_private_key(priv):
        raise ValueError("invalid secp256k1 private key")

    sk = SigningKey.from_string(bytes(priv), curve=SECP256k1)
    signature = sk.sign_digest_deterministic(
        digest,
        hashfunc=hashlib.sha256,
        sigencode=sigencode_string_canonize,
    )

    expected = sk.get_verifying_key().to_string("compressed")
    candidates = VerifyingKey.from_public_key_recovery_with_digest(
        signature,
        digest,
        SECP256k1,
        hashfunc=hashlib.sha256,
        sigdecode=sigdecode_string,
    )
    for recovery_id, candidate in enumerate(candidates):
        if candidate.to_string("compressed") == expected:
            return signature, recovery_id
    raise RuntimeError("signature does not recover to the signing key")


def verify_digest(digest: bytes, signature: bytes, pub: bytes) -> bool:
    """
    Check a 64-byte r || s signature over `digest` against a compressed key.

    Returns False for any malformed input instead of raising.
    """
    if len(signature) != SIGNATURE_SIZE or len(digest) != 32:
        return False
    try:
        key = load_public_key(pub)
    except ValueError:
        return False

    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:], "big")
    if not (0 < r < CURVE_ORDER and 0 < s < CURVE_ORDER):
        return False

    try:
        key.verify(
            encode_dss_signature(r, s),
            digest,
            ec.ECDSA(Prehashed(hashes.SHA256())),
        )
    except InvalidSignature:
        return False
    return True

