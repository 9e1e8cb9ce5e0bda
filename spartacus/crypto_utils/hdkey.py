# =============================================================================
# BIP-32 hierarchical deterministic keys over secp256k1
# =============================================================================
"""
Extended keys (key material + chain code) with deterministic child derivation.

Scenarios handled by derive_child():
  1) private extended key -> hardened child private key
  2) private extended key -> normal child private key
  3) public extended key  -> normal child public key
  4) public extended key  -> hardened child (invalid, raises ValueError)

Serialized form is standard BIP-32 Base58Check ("xprv..." / "xpub..."), so
keys move freely between this module and other wallet tooling.

Flat mode
- from_flat_private_key() wraps a plain private key with an all-zero chain
  code. Any peer holding the xpub can then compute every non-hardened
  child, and the children are linkable to the root. That is accepted for
  peers that only ever use the root key itself (derivation index -1).
"""

from __future__ import annotations

import os
import struct
from typing import List, Optional, Union

import base58
from ecdsa import SECP256k1, VerifyingKey
from ecdsa.ellipticcurve import INFINITY

from .keys import (
    CURVE_ORDER,
    PRIVATE_KEY_SIZE,
    PUBLIC_KEY_SIZE,
    hex_decode,
    hmac_sha512,
    is_valid_private_key,
    load_public_key,
    to_public_key,
    to_public_key_hash,
)


HARDENED_OFFSET = 0x80000000
FLAT_INDEX = -1

_MASTER_SECRET = b"Bitcoin seed"
_XPRV_VERSION = bytes.fromhex("0488ade4")
_XPUB_VERSION = bytes.fromhex("0488b21e")
_SERIALIZED_LEN = 78
_ZERO_CHAIN_CODE = bytes(32)

_MIN_SEED_BYTES = 16
_MAX_SEED_BYTES = 64
_DEFAULT_SEED_BYTES = 64


def parse_path(path: str) -> List[int]:
    """
    Turn "m/44'/0/1h" into [44 + 2**31, 0, 1 + 2**31].

    Accepts a leading "m" or "M". Hardened markers: ', h, H.
    """
    if not isinstance(path, str):
        raise ValueError("derivation path must be a string")
    parts = path.strip().split("/")
    if not parts or parts[0] not in ("m", "M"):
        raise ValueError(f"derivation path must start with 'm': {path!r}")

    out: List[int] = []
    for part in parts[1:]:
        hardened = part[-1:] in ("'", "h", "H")
        digits = part[:-1] if hardened else part
        if not digits.isdigit():
            raise ValueError(f"invalid path component {part!r} in {path!r}")
        idx = int(digits)
        if idx >= HARDENED_OFFSET:
            raise ValueError(f"path component out of range: {part!r}")
        out.append(idx + HARDENED_OFFSET if hardened else idx)
    return out


def _point_from_public_key(pub: bytes):
    return VerifyingKey.from_string(pub, curve=SECP256k1).pubkey.point


def _public_key_from_point(point) -> bytes:
    return VerifyingKey.from_public_point(point, curve=SECP256k1).to_string("compressed")


class HDKey:
    """
    One node of a BIP-32 tree.

    Holds either a private key (and its public key) or only a public key,
    plus the chain code and the metadata needed for serialization.
    """

    def __init__(
        self,
        *,
        chain_code: bytes,
        private_key: Optional[bytes] = None,
        public_key: Optional[bytes] = None,
        depth: int = 0,
        parent_fingerprint: bytes = b"\x00\x00\x00\x00",
        child_number: int = 0,
    ):
        if len(chain_code) != 32:
            raise ValueError("chain code must be 32 bytes")
        if not (0 <= depth <= 255):
            raise ValueError(f"depth must fit in one byte: {depth}")
        if private_key is not None:
            if not is_valid_private_key(private_key):
                raise ValueError("invalid secp256k1 private key")
            private_key = bytes(private_key)
            public_key = to_public_key(private_key)
        elif public_key is None:
            raise ValueError("HDKey needs a private or a public key")
        elif len(public_key) != PUBLIC_KEY_SIZE:
            raise ValueError("public key must be 33 bytes (compressed)")
        else:
            # Raises ValueError on a point that is not on the curve
            load_public_key(bytes(public_key))

        self._private_key = private_key
        self._public_key = bytes(public_key)
        self.chain_code = bytes(chain_code)
        self.depth = depth
        self.parent_fingerprint = bytes(parent_fingerprint)
        self.child_number = child_number

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_master_seed(cls, seed: bytes) -> "HDKey":
        if not (_MIN_SEED_BYTES <= len(seed) <= _MAX_SEED_BYTES):
            raise ValueError(
                f"seed must be between {_MIN_SEED_BYTES} and {_MAX_SEED_BYTES} bytes"
            )
        i = hmac_sha512(_MASTER_SECRET, bytes(seed))
        il, ir = i[:32], i[32:]
        if not is_valid_private_key(il):
            raise ValueError("seed produced an invalid master key; use another seed")
        return cls(chain_code=ir, private_key=il)

    @classmethod
    def from_flat_private_key(cls, priv: bytes) -> "HDKey":
        """
        Wrap a plain private key as a root node with a zero chain code.

        This gives up hierarchical unlinkability: the chain code is public
        knowledge, so it adds nothing beyond the key itself.
        """
        return cls(chain_code=_ZERO_CHAIN_CODE, private_key=priv)

    @classmethod
    def from_extended_key(cls, xkey: str) -> "HDKey":
        try:
            raw = base58.b58decode_check(xkey)
        except ValueError as e:
            raise ValueError(f"invalid extended key encoding: {e}") from e
        if len(raw) != _SERIALIZED_LEN:
            raise ValueError("invalid extended key length")

        version = raw[0:4]
        depth = raw[4]
        parent_fp = raw[5:9]
        child_number = struct.unpack(">I", raw[9:13])[0]
        chain_code = raw[13:45]
        key_data = raw[45:78]
        if depth == 0 and (parent_fp != b"\x00" * 4 or child_number != 0):
            raise ValueError("master extended key with a parent fingerprint or child number")

        if version == _XPRV_VERSION:
            if key_data[0] != 0:
                raise ValueError("private extended key must pad key data with 0x00")
            return cls(
                chain_code=chain_code,
                private_key=key_data[1:],
                depth=depth,
                parent_fingerprint=parent_fp,
                child_number=child_number,
            )
        if version == _XPUB_VERSION:
            return cls(
                chain_code=chain_code,
                public_key=key_data,
                depth=depth,
                parent_fingerprint=parent_fp,
                child_number=child_number,
            )
        raise ValueError(f"unknown extended key version {version.hex()}")

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def private_key(self) -> Optional[bytes]:
        return self._private_key

    @property
    def public_key(self) -> bytes:
        return self._public_key

    @property
    def is_private(self) -> bool:
        return self._private_key is not None

    @property
    def identifier(self) -> bytes:
        return to_public_key_hash(self._public_key)

    @property
    def fingerprint(self) -> bytes:
        return self.identifier[:4]

    @property
    def is_flat(self) -> bool:
        return self.depth == 0 and self.chain_code == _ZERO_CHAIN_CODE

    def _serialize(self, version: bytes, key_data: bytes) -> str:
        raw = (
            version
            + bytes([self.depth])
            + self.parent_fingerprint
            + struct.pack(">I", self.child_number)
            + self.chain_code
            + key_data
        )
        return base58.b58encode_check(raw).decode("ascii")

    @property
    def public_extended_key(self) -> str:
        return self._serialize(_XPUB_VERSION, self._public_key)

    @property
    def private_extended_key(self) -> str:
        if self._private_key is None:
            raise ValueError("public-only key has no private extended key")
        return self._serialize(_XPRV_VERSION, b"\x00" + self._private_key)

    def neutered(self) -> "HDKey":
        return HDKey(
            chain_code=self.chain_code,
            public_key=self._public_key,
            depth=self.depth,
            parent_fingerprint=self.parent_fingerprint,
            child_number=self.child_number,
        )

    # -------------------------------------------------------------------------
    # Derivation
    # -------------------------------------------------------------------------

    def derive_child(self, index: int) -> "HDKey":
        """
        CKDpriv / CKDpub from BIP-32.

        index >= 2**31 selects a hardened child, which needs the private key.
        The rare index whose IL falls outside the curve order (or yields the
        zero key / point at infinity) raises ValueError; callers move on to
        the next index.
        """
        if not isinstance(index, int) or isinstance(index, bool):
            raise ValueError("child index must be an int")
        if not (0 <= index <= 0xFFFFFFFF):
            raise ValueError(f"child index out of range: {index}")

        hardened = index >= HARDENED_OFFSET
        if hardened:
            if self._private_key is None:
                raise ValueError("cannot derive a hardened child from a public key")
            data = b"\x00" + self._private_key + struct.pack(">I", index)
        else:
            data = self._public_key + struct.pack(">I", index)

        i = hmac_sha512(self.chain_code, data)
        il, ir = i[:32], i[32:]
        il_int = int.from_bytes(il, "big")
        if il_int >= CURVE_ORDER:
            raise ValueError(f"index {index} yields an invalid child key")

        common = dict(
            chain_code=ir,
            depth=self.depth + 1,
            parent_fingerprint=self.fingerprint,
            child_number=index,
        )

        if self._private_key is not None:
            child_int = (il_int + int.from_bytes(self._private_key, "big")) % CURVE_ORDER
            if child_int == 0:
                raise ValueError(f"index {index} yields an invalid child key")
            return HDKey(private_key=child_int.to_bytes(PRIVATE_KEY_SIZE, "big"), **common)

        point = SECP256k1.generator * il_int + _point_from_public_key(self._public_key)
        if point == INFINITY:
            raise ValueError(f"index {index} yields an invalid child key")
        return HDKey(public_key=_public_key_from_point(point), **common)

    def derive(self, path: str) -> "HDKey":
        """
        Walk a multi-level path such as "m/0'/3".

        "m" on its own returns this node. The path is relative to this node,
        whatever its depth.
        """
        node = self
        for index in parse_path(path):
            node = node.derive_child(index)
        return node

    def __repr__(self) -> str:
        kind = "private" if self.is_private else "public"
        return f"HDKey({kind}, depth={self.depth}, fingerprint={self.fingerprint.hex()})"


# =============================================================================
# Module-level helpers
# =============================================================================

def to_hdkey_from_seed(seed: Optional[bytes] = None, path: Optional[str] = None) -> HDKey:
    """
    Root key from a seed (64 random bytes if none is given), optionally
    already walked down `path`.
    """
    root = HDKey.from_master_seed(seed if seed is not None else os.urandom(_DEFAULT_SEED_BYTES))
    if path:
        return root.derive(path)
    return root


def to_extended_from_private_key(priv: bytes) -> str:
    """
    Serialize a plain private key as an xprv with a zero chain code.

    The result provides no security beyond the private key itself.
    """
    return HDKey.from_flat_private_key(priv).private_extended_key


def is_derived_from_extended_public_key(
    public_key: Union[str, bytes],
    extended_public_key: str,
    index: int,
) -> bool:
    """
    True when `public_key` is the child of `extended_public_key` at `index`.

    index == -1 means no derivation: the public key must be the extended
    key's own key. Hardened indices cannot be checked from a public key and
    return False, as does any malformed input.
    """
    if isinstance(public_key, str):
        try:
            public_key = hex_decode(public_key)
        except ValueError:
            return False
    if not isinstance(index, int) or isinstance(index, bool):
        return False

    try:
        node = HDKey.from_extended_key(extended_public_key)
    except (ValueError, TypeError):
        return False

    if index == FLAT_INDEX:
        return node.public_key == bytes(public_key)
    if not (0 <= index < HARDENED_OFFSET):
        return False

    try:
        child = node.neutered().derive_child(index)
    except ValueError:
        return False
    return child.public_key == bytes(public_key)
