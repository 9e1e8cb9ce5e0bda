import pytest

import sys, os
target_path = os.path.abspath(os.path.join(os.path.dirname(os.path.abspath(__file__)), "../.."))
if target_path not in sys.path:
    sys.path.insert(0, target_path)

from spartacus.crypto_utils import create_private_key, to_hdkey_from_seed
from spartacus.envelope import AuthenticatedEnvelope, KeyBundle


CONTACT = {"hostname": "localhost", "port": 8080}


@pytest.fixture
def flat_peer() -> AuthenticatedEnvelope:
    # random 32-byte secret, zero chain code, index -1
    return AuthenticatedEnvelope(KeyBundle.from_private_key(create_private_key()))


@pytest.fixture
def hd_peer() -> AuthenticatedEnvelope:
    # child 3 of a random seed
    return AuthenticatedEnvelope(KeyBundle.from_hdkey(to_hdkey_from_seed(), 3))


@pytest.fixture
def third_peer() -> AuthenticatedEnvelope:
    return AuthenticatedEnvelope(KeyBundle.from_hdkey(to_hdkey_from_seed(), 0))


@pytest.fixture
def contact() -> dict:
    return dict(CONTACT)
