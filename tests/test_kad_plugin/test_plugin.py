from types import SimpleNamespace

import pytest

import sys, os
target_path = os.path.abspath(os.path.join(os.path.dirname(os.path.abspath(__file__)), "../.."))
if target_path not in sys.path:
    sys.path.insert(0, target_path)

from spartacus.crypto_utils import (
    HDKey,
    create_private_key,
    to_extended_from_private_key,
    to_hdkey_from_seed,
    to_public_key,
    to_public_key_hash,
)
from spartacus.envelope import IdentityMismatch, serialize_message
from spartacus.kad_plugin import SpartacusConfig, SpartacusPlugin, build_key_bundle, plugin


# -----------------------------------------------------------------------------
# Fake node: only the fields the adapter touches
# -----------------------------------------------------------------------------

class Pipeline:
    def __init__(self, *stages):
        self.stages = list(stages)

    def append(self, stage):
        self.stages.append(stage)

    def prepend(self, stage):
        self.stages.insert(0, stage)

    def run(self, data):
        for stage in self.stages:
            data = stage(data)
        return data


def make_node():
    return SimpleNamespace(
        identity=to_public_key_hash("test"),
        contact={"hostname": "localhost", "port": 8080},
        router=SimpleNamespace(identity=None),
        rpc=SimpleNamespace(
            serializer=Pipeline(serialize_message),
            deserializer=Pipeline(lambda buffer: buffer),
        ),
    )


# -----------------------------------------------------------------------------
# Static helpers
# -----------------------------------------------------------------------------

def test_static_create_private_key():
    priv = SpartacusPlugin.create_private_key()
    assert isinstance(priv, bytes) and len(priv) == 32


def test_static_to_public_key():
    pub = SpartacusPlugin.to_public_key(SpartacusPlugin.create_private_key())
    assert isinstance(pub, bytes) and len(pub) == 33


def test_static_to_public_key_hash():
    pub = SpartacusPlugin.to_public_key(SpartacusPlugin.create_private_key())
    digest = SpartacusPlugin.to_public_key_hash(pub)
    assert isinstance(digest, bytes) and len(digest) == 20


# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

def test_replaces_node_identity_and_installs_transforms():
    node = make_node()
    old_identity = node.identity
    p = SpartacusPlugin(node)

    assert node.identity == p.identity != old_identity
    assert node.router.identity == p.identity
    assert node.contact["xpub"] == p.public_extended_key
    assert node.contact["index"] == 0
    assert node.rpc.serializer.stages[-1] == p.envelope.serialize
    assert node.rpc.deserializer.stages[0] == p.envelope.deserialize


def test_node_without_pipeline_hooks():
    node = SimpleNamespace(identity=None)
    p = SpartacusPlugin(node)
    assert node.identity == p.identity


def test_plugin_factory():
    node = make_node()
    p = plugin(SpartacusConfig(derivation_index=5))(node)
    assert isinstance(p, SpartacusPlugin)
    assert p.derivation_index == 5
    assert node.identity == p.identity


def test_extended_key_and_index():
    root = to_hdkey_from_seed()
    p = SpartacusPlugin(make_node(), SpartacusConfig(
        private_extended_key=root.private_extended_key,
        derivation_index=2,
    ))
    assert p.public_key == root.derive_child(2).public_key
    assert p.private_extended_key == root.private_extended_key
    assert p.identity == to_public_key_hash(p.public_key)


def test_extended_key_index_and_path():
    root = to_hdkey_from_seed()
    p = SpartacusPlugin(make_node(), SpartacusConfig(
        private_extended_key=root.private_extended_key,
        derivation_path="m/1'/2",
        derivation_index=4,
    ))
    node = root.derive("m/1'/2")
    assert p.public_extended_key == node.public_extended_key
    assert p.public_key == node.derive_child(4).public_key


def test_raw_private_key_is_flat():
    priv = create_private_key()
    p = SpartacusPlugin(make_node(), SpartacusConfig(private_key=priv.hex()))
    assert p.private_key == priv
    assert p.public_key == to_public_key(priv)
    assert p.derivation_index == -1
    assert HDKey.from_extended_key(p.public_extended_key).chain_code == bytes(32)


def test_flat_extended_key_with_sentinel_index():
    priv = create_private_key()
    p = SpartacusPlugin(make_node(), SpartacusConfig(
        private_extended_key=to_extended_from_private_key(priv),
        derivation_index=-1,
    ))
    assert p.private_key == priv


def test_build_key_bundle_from_seed_is_deterministic():
    config = SpartacusConfig(seed="00" * 32, derivation_index=1)
    assert build_key_bundle(config).public_key == build_key_bundle(config).public_key


# -----------------------------------------------------------------------------
# Two nodes talking through their pipelines
# -----------------------------------------------------------------------------

def test_nodes_exchange_ping_through_pipelines():
    node_a, node_b = make_node(), make_node()
    a = SpartacusPlugin(node_a, SpartacusConfig(private_key=create_private_key().hex()))
    b = SpartacusPlugin(node_b, SpartacusConfig(seed=os.urandom(64).hex(), derivation_index=3))

    _, buffer, target = node_a.rpc.serializer.run([
        {"method": "PING", "params": []},
        [a.identity.hex(), node_a.contact],
        [b.identity.hex(), node_b.contact],
    ])
    assert target[0] == b.identity.hex()
    assert node_b.rpc.deserializer.run(buffer) == buffer


def test_pipeline_rejects_spoofed_identity():
    node_a, node_b = make_node(), make_node()
    a = SpartacusPlugin(node_a)
    b = SpartacusPlugin(node_b)

    # node_a claims node_b's identity in IDENTIFY
    _, buffer, _ = node_a.rpc.serializer.run([
        {"method": "PING", "params": []},
        [b.identity.hex(), node_a.contact],
        None,
    ])
    with pytest.raises(IdentityMismatch):
        node_b.rpc.deserializer.run(buffer)


def test_upstream_serializer_error_propagates():
    node = make_node()

    def broken(data):
        raise RuntimeError("Parse error")

    node.rpc.serializer = Pipeline(broken)
    SpartacusPlugin(node)
    with pytest.raises(RuntimeError, match="Parse error"):
        node.rpc.serializer.run([])
