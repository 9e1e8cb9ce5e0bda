# =============================================================================
# AUTHENTICATE envelopes for JSON-RPC peer messages
# =============================================================================
"""
Design goals
- Every outbound message carries proof of who sent it.
- Every inbound message is checked before anything downstream sees it.
- Stateless: no sessions, no replay cache, each message stands alone.

Wire format
The signer appends one notification to the JSON-RPC array:

  {"jsonrpc": "2.0", "method": "AUTHENTICATE",
   "params": [signature_b64, public_key_hex, [xpub, derivation_index]]}

  - signature_b64: base64(recovery_id || r || s), 65 bytes before encoding
  - public_key_hex: 33-byte compressed secp256k1 key of the signer
  - [xpub, derivation_index]: the signer's extended public key and the child
    index its key sits at. -1 means the key is the xpub's own key (flat).
    Always emitted by this module, flat peers included.

Signed region
  SHA256(canonical_json_bytes(application_payloads))
where application_payloads is the array without the AUTHENTICATE element.
canonical_json_bytes is compact, key-sorted, ASCII-only JSON. The verifier
re-encodes what it decoded, so wire whitespace and key order do not matter.

Checks on receive, in order, first failure wins
  1) buffer decodes to JSON-RPC objects ending in AUTHENTICATE  (MalformedPayload)
  2) RIPEMD160(SHA256(public_key)) == IDENTIFY identity        (IdentityMismatch)
  3) public_key is the xpub child at derivation_index          (InvalidDerivation)
  4) signature verifies over the signed region                  (InvalidSignature)

Important note about replay
- A valid message stays valid forever and for every receiver. Nothing here
  binds a message to a session, a receiver, or a point in time.
"""

from __future__ import annotations

import binascii
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence, Tuple

from ..crypto_utils.hdkey import FLAT_INDEX, HDKey, is_derived_from_extended_public_key
from ..crypto_utils.keys import (
    IDENTITY_SIZE,
    SIGNATURE_SIZE,
    b64_decode,
    b64_encode,
    hex_decode,
    is_valid_public_key,
    sha256,
    sign_digest,
    to_public_key,
    to_public_key_hash,
    verify_digest,
)
from . import jsonrpc
from .errors import (
    AuthenticationError,
    IdentityMismatch,
    InvalidDerivation,
    InvalidSignature,
    MalformedPayload,
)


logger = logging.getLogger(__name__)

Callback = Callable[..., None]


# =============================================================================
# Key material
# =============================================================================

@dataclass(frozen=True)
class KeyBundle:
    """
    Signing identity of one peer. Immutable once built.

    - private_key / public_key: the key pair that signs messages
    - identity: RIPEMD160(SHA256(public_key)), the peer's routing address
    - public_extended_key: xpub the public key derives from
    - derivation_index: child index of public_key under that xpub, -1 if flat
    """
    private_key: bytes = field(repr=False)
    public_key: bytes
    identity: bytes
    public_extended_key: str
    derivation_index: int
    private_extended_key: str = field(default="", repr=False)

    @classmethod
    def from_hdkey(cls, node: HDKey, derivation_index: int = 0) -> "KeyBundle":
        """
        Bundle for `node` itself (index -1) or for its child at
        `derivation_index`.
        """
        if not node.is_private:
            raise ValueError("signing needs a private extended key")
        child = node if derivation_index == FLAT_INDEX else node.derive_child(derivation_index)
        return cls(
            private_key=child.private_key,
            public_key=child.public_key,
            identity=to_public_key_hash(child.public_key),
            public_extended_key=node.public_extended_key,
            derivation_index=derivation_index,
            private_extended_key=node.private_extended_key,
        )

    @classmethod
    def from_private_key(cls, priv: bytes) -> "KeyBundle":
        # Flat mode: zero chain code root, key used as-is
        return cls.from_hdkey(HDKey.from_flat_private_key(priv), FLAT_INDEX)

    def __post_init__(self) -> None:
        if to_public_key(self.private_key) != self.public_key:
            raise ValueError("public key does not match private key")
        if len(self.identity) != IDENTITY_SIZE:
            raise ValueError("identity must be 20 bytes")


@dataclass(frozen=True)
class VerifiedMessage:
    """
    What a successful verify() proved about a buffer.
    """
    payloads: Tuple[dict, ...]
    identity: bytes
    public_key: bytes
    public_extended_key: Optional[str]
    derivation_index: Optional[int]
    buffer: bytes = field(repr=False)


# =============================================================================
# Envelope
# =============================================================================

class AuthenticatedEnvelope:
    """
    Sign and verify transforms around a JSON-RPC byte pipeline.

    Safe to share between concurrent tasks: the only state is the key
    bundle, which is frozen.

    Parameters
    - keys: this peer's KeyBundle (used on send only)
    - verify_derivation: on receive, require and check the [xpub, index]
      proof. Turn off only for deployments where peers carry no xpub.
    """

    def __init__(self, keys: KeyBundle, *, verify_derivation: bool = True):
        self.keys = keys
        self.verify_derivation = bool(verify_derivation)

    # -------------------------------------------------------------------------
    # Send path
    # -------------------------------------------------------------------------

    def authenticate_notification(self, signed_region: bytes) -> dict:
        signature, recovery_id = sign_digest(sha256(signed_region), self.keys.private_key)
        return jsonrpc.notification(jsonrpc.AUTHENTICATE, [
            b64_encode(bytes([recovery_id]) + signature),
            self.keys.public_key.hex(),
            [self.keys.public_extended_key, self.keys.derivation_index],
        ])

    def sign(self, payloads: Sequence[dict]) -> bytes:
        """
        Append a signed AUTHENTICATE notification and encode the full array.
        """
        payloads = list(payloads)
        if not payloads:
            raise ValueError("nothing to sign")
        auth = self.authenticate_notification(jsonrpc.encode_payload_list(payloads))
        return jsonrpc.encode_payload_list(payloads + [auth])

    def serialize(self, message: Sequence[Any]) -> jsonrpc.SerializedMessage:
        """
        Pipeline transform for (message_id, buffer, target) triples coming out
        of the upstream JSON-RPC serializer. Only the buffer changes.
        """
        message_id, buffer, target = message
        try:
            payloads = jsonrpc.parse_payload_list(buffer)
        except ValueError as e:
            raise MalformedPayload(f"Failed to parse outgoing payload: {e}") from e
        return message_id, self.sign(payloads), target

    def wrap_serializer(
        self,
        upstream: Callable[[Any], Sequence[Any]] = jsonrpc.serialize_message,
    ) -> Callable[[Any], jsonrpc.SerializedMessage]:
        """
        Compose `upstream` with serialize(). Upstream errors propagate as-is
        and nothing gets signed.
        """
        def serializer(data: Any) -> jsonrpc.SerializedMessage:
            return self.serialize(upstream(data))
        return serializer

    # -------------------------------------------------------------------------
    # Receive path
    # -------------------------------------------------------------------------

    def verify(self, buffer: bytes) -> VerifiedMessage:
        """
        Run every check on an inbound buffer.

        Returns a VerifiedMessage, or raises one of MalformedPayload,
        IdentityMismatch, InvalidDerivation, InvalidSignature.
        """
        try:
            return self._verify(buffer)
        except AuthenticationError as e:
            logger.debug("rejected inbound message: %s: %s", e.kind, e.message)
            raise

    def _verify(self, buffer: bytes) -> VerifiedMessage:
        try:
            payloads = jsonrpc.parse_payload_list(buffer)
        except ValueError as e:
            raise MalformedPayload(f"Failed to parse received payload: {e}") from e

        *application, auth = payloads
        if not jsonrpc.is_notification(auth, jsonrpc.AUTHENTICATE):
            raise MalformedPayload("Message is missing a trailing AUTHENTICATE")
        if not application:
            raise MalformedPayload("AUTHENTICATE without a message to cover")
        if any(jsonrpc.is_notification(obj, jsonrpc.AUTHENTICATE) for obj in application):
            raise MalformedPayload("Message carries more than one AUTHENTICATE")

        try:
            signed_region = jsonrpc.encode_payload_list(application)
        except (RecursionError, ValueError) as e:
            raise MalformedPayload("Failed to parse received payload: cannot re-encode") from e

        claimed_identity = _claimed_identity(application)
        signature_field, public_key, proof = _authenticate_params(auth)

        if to_public_key_hash(public_key) != claimed_identity:
            raise IdentityMismatch("Identity does not match public key")

        xpub: Optional[str] = None
        index: Optional[int] = None
        if proof is not None:
            xpub, index = proof
        if self.verify_derivation:
            if proof is None:
                raise InvalidDerivation("Message has no derivation proof")
            if not is_derived_from_extended_public_key(public_key, xpub, index):
                raise InvalidDerivation("Public key is not a valid child")

        signature = _decode_signature(signature_field)
        if not is_valid_public_key(public_key):
            raise InvalidSignature("Message includes invalid signature")
        if not verify_digest(sha256(signed_region), signature, public_key):
            raise InvalidSignature("Message includes invalid signature")

        logger.debug("verified message from %s", claimed_identity.hex())
        return VerifiedMessage(
            payloads=tuple(application),
            identity=claimed_identity,
            public_key=public_key,
            public_extended_key=xpub,
            derivation_index=index,
            buffer=bytes(buffer),
        )

    def deserialize(self, buffer: bytes) -> bytes:
        """
        Pipeline transform for inbound buffers: verify, then hand the exact
        same bytes to the downstream JSON-RPC decoder.
        """
        self.verify(buffer)
        return buffer

    # -------------------------------------------------------------------------
    # Error-first callback variants
    # -------------------------------------------------------------------------

    def serialize_cb(self, message: Sequence[Any], callback: Callback) -> None:
        try:
            result = self.serialize(message)
        except Exception as e:
            callback(e, None)
            return
        callback(None, result)

    def deserialize_cb(self, buffer: bytes, callback: Callback) -> None:
        try:
            result = self.deserialize(buffer)
        except Exception as e:
            callback(e, None)
            return
        callback(None, result)


# =============================================================================
# Field extraction
# =============================================================================

def _claimed_identity(application: Sequence[dict]) -> bytes:
    identify = jsonrpc.find_identify(application)
    if identify is None:
        raise MalformedPayload("Message has no IDENTIFY notification")
    params = identify.get("params")
    if not isinstance(params, list) or not params:
        raise MalformedPayload("IDENTIFY params must be [identity, contact]")
    try:
        identity = hex_decode(params[0])
    except ValueError as e:
        raise MalformedPayload(f"IDENTIFY identity is not hex: {e}") from e
    if len(identity) != IDENTITY_SIZE:
        # Still a claim; it just cannot match any public key hash
        raise IdentityMismatch("Identity does not match public key")
    return identity


def _authenticate_params(auth: dict) -> Tuple[str, bytes, Optional[Tuple[str, int]]]:
    params = auth.get("params")
    if not isinstance(params, list) or len(params) not in (2, 3):
        raise MalformedPayload("AUTHENTICATE params must be [signature, public_key, [xpub, index]]")

    signature_field, public_key_hex = params[0], params[1]
    if not isinstance(signature_field, str):
        raise MalformedPayload("AUTHENTICATE signature must be a string")
    try:
        public_key = hex_decode(public_key_hex)
    except ValueError as e:
        raise MalformedPayload(f"AUTHENTICATE public key is not hex: {e}") from e

    proof: Optional[Tuple[str, int]] = None
    if len(params) == 3:
        raw = params[2]
        if (
            not isinstance(raw, list)
            or len(raw) != 2
            or not isinstance(raw[0], str)
            or not isinstance(raw[1], int)
            or isinstance(raw[1], bool)
        ):
            raise MalformedPayload("AUTHENTICATE derivation proof must be [xpub, index]")
        proof = (raw[0], raw[1])
    return signature_field, public_key, proof


def _decode_signature(signature_field: str) -> bytes:
    try:
        raw = b64_decode(signature_field)
    except (binascii.Error, ValueError) as e:
        raise InvalidSignature("Message includes invalid signature") from e

    if len(raw) == SIGNATURE_SIZE + 1:
        if raw[0] > 3:
            raise InvalidSignature("Message includes invalid signature")
        return raw[1:]
    if len(raw) == SIGNATURE_SIZE:
        return raw
    raise InvalidSignature("Message includes invalid signature")
