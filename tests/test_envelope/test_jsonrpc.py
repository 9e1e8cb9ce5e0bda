import json

import pytest

import sys, os
target_path = os.path.abspath(os.path.join(os.path.dirname(os.path.abspath(__file__)), "../.."))
if target_path not in sys.path:
    sys.path.insert(0, target_path)

from spartacus.envelope import parse_payload_list, serialize_message


SENDER = ["ab" * 20, {"hostname": "localhost", "port": 8080}]


def test_serialize_error_response():
    message_id, buffer, receiver = serialize_message([
        {"id": "req-1", "error": {"code": -32601, "message": "Method not found"}},
        SENDER,
        None,
    ])
    rpc, identify = json.loads(buffer)
    assert message_id == "req-1"
    assert rpc["error"] == {"code": -32601, "message": "Method not found"}
    assert identify["method"] == "IDENTIFY"
    assert receiver is None


@pytest.mark.parametrize("err", ["Method not found", 42, ["x"]])
def test_serialize_rejects_non_object_error(err):
    with pytest.raises(ValueError, match="error member"):
        serialize_message([{"id": "req-1", "error": err}, SENDER, None])


def test_parse_rejects_deep_nesting():
    depth = 5000
    buffer = b'[{"jsonrpc":"2.0","method":"PING","params":' + b"[" * depth + b"]" * depth + b"}]"
    with pytest.raises(ValueError, match="nested too deeply"):
        parse_payload_list(buffer)


def test_parse_keeps_shallow_nesting():
    buffer = b'[{"jsonrpc":"2.0","method":"PING","params":[[[1]]]}]'
    assert parse_payload_list(buffer)[0]["params"] == [[[1]]]
