"""
Host wiring for a Kademlia-style node.

The envelope layer never touches the node. This adapter builds the key
bundle from a SpartacusConfig, then writes the node's identity fields and
installs the two transforms into the node's RPC pipeline.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from ..crypto_utils.hdkey import FLAT_INDEX
from ..crypto_utils import keys as key_utils
from ..envelope.authenticate import AuthenticatedEnvelope, KeyBundle
from .config import SpartacusConfig


logger = logging.getLogger(__name__)


def build_key_bundle(config: Optional[SpartacusConfig] = None) -> KeyBundle:
    config = config or SpartacusConfig()
    root = config.root_key()
    if config.derivation_path:
        root = root.derive(config.derivation_path)
    if config.is_hardened:
        logger.warning(
            "derivation index %d is hardened; peers cannot verify it from the xpub",
            config.resolved_index,
        )
    return KeyBundle.from_hdkey(root, config.resolved_index)


class SpartacusPlugin:
    """
    Binds a node's identity to a secp256k1 key and authenticates its RPC.

    After construction:
      - node.identity and node.router.identity are the key's 20-byte hash
      - node.contact.xpub / node.contact.index advertise the derivation proof
      - outbound buffers get an AUTHENTICATE notification appended
      - inbound buffers are verified before the JSON-RPC decoder sees them
    """

    def __init__(self, node: Any, config: Optional[SpartacusConfig] = None):
        self.config = config or SpartacusConfig()
        self.keys = build_key_bundle(self.config)
        self.envelope = AuthenticatedEnvelope(
            self.keys,
            verify_derivation=self.config.verify_derivation,
        )
        self.install(node)

    # Mirrors of the key bundle, for callers that used the plugin fields
    @property
    def identity(self) -> bytes:
        return self.keys.identity

    @property
    def public_key(self) -> bytes:
        return self.keys.public_key

    @property
    def private_key(self) -> bytes:
        return self.keys.private_key

    @property
    def public_extended_key(self) -> str:
        return self.keys.public_extended_key

    @property
    def private_extended_key(self) -> str:
        return self.keys.private_extended_key

    @property
    def derivation_index(self) -> int:
        return self.keys.derivation_index

    def install(self, node: Any) -> None:
        contact = getattr(node, "contact", None)
        if contact is not None:
            _set(contact, "xpub", self.keys.public_extended_key)
            _set(contact, "index", self.keys.derivation_index)

        node.identity = self.keys.identity
        router = getattr(node, "router", None)
        if router is not None:
            router.identity = self.keys.identity

        rpc = getattr(node, "rpc", None)
        serializer = getattr(rpc, "serializer", None)
        deserializer = getattr(rpc, "deserializer", None)
        if serializer is not None:
            serializer.append(self.envelope.serialize)
        if deserializer is not None:
            deserializer.prepend(self.envelope.deserialize)

        mode = "flat" if self.keys.derivation_index == FLAT_INDEX else "hd"
        logger.info(
            "spartacus installed: identity=%s mode=%s index=%d",
            self.keys.identity.hex(),
            mode,
            self.keys.derivation_index,
        )

    # Static helpers kept on the plugin for convenience
    create_private_key = staticmethod(key_utils.create_private_key)
    to_public_key = staticmethod(key_utils.to_public_key)
    to_public_key_hash = staticmethod(key_utils.to_public_key_hash)


def _set(target: Any, name: str, value: Any) -> None:
    if isinstance(target, dict):
        target[name] = value
    else:
        setattr(target, name, value)


def plugin(config: Optional[SpartacusConfig] = None) -> Callable[[Any], SpartacusPlugin]:
    """
    Factory for node.plugin(...) style registration.
    """
    def register(node: Any) -> SpartacusPlugin:
        return SpartacusPlugin(node, config)
    return register
