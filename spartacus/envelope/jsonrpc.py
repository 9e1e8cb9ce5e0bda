"""
Minimal JSON-RPC 2.0 shapes used at the byte boundary.

A message on the wire is a JSON array of JSON-RPC objects:
  [<request | response>, IDENTIFY notification, (AUTHENTICATE notification)]

serialize_message() is the upstream step the signer wraps: it turns
(message, [sender_identity_hex, contact], receiver) into
(message_id, buffer, receiver), the same triple the transport expects.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, List, Optional, Sequence, Tuple

from ..crypto_utils.keys import canonical_json_bytes


JSONRPC_VERSION = "2.0"

IDENTIFY = "IDENTIFY"
AUTHENTICATE = "AUTHENTICATE"

SerializedMessage = Tuple[str, bytes, Any]


def request(method: str, params: Any, id: Optional[str] = None) -> dict:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": id or str(uuid.uuid4()),
        "method": method,
        "params": params,
    }


def success(id: str, result: Any) -> dict:
    return {"jsonrpc": JSONRPC_VERSION, "id": id, "result": result}


def error(id: str, code: int, message: str, data: Any = None) -> dict:
    err: dict[str, Any] = {"code": int(code), "message": str(message)}
    if data is not None:
        err["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": id, "error": err}


def notification(method: str, params: Any) -> dict:
    return {"jsonrpc": JSONRPC_VERSION, "method": method, "params": params}


def is_notification(obj: Any, method: Optional[str] = None) -> bool:
    if not isinstance(obj, dict) or "id" in obj or "method" not in obj:
        return False
    return method is None or obj.get("method") == method


def encode_payload_list(payloads: Sequence[dict]) -> bytes:
    return canonical_json_bytes(list(payloads))


def parse_payload_list(buffer: bytes) -> List[dict]:
    """
    Decode a buffer into a non-empty list of JSON-RPC objects.

    Raises ValueError when the buffer is not UTF-8 JSON, not a list, or
    holds anything other than objects.
    """
    if not isinstance(buffer, (bytes, bytearray)):
        raise ValueError("payload buffer must be bytes")
    try:
        doc = json.loads(bytes(buffer).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"payload is not valid JSON: {e}") from e
    except RecursionError as e:
        raise ValueError("payload is nested too deeply") from e

    if not isinstance(doc, list) or not doc:
        raise ValueError("payload must be a non-empty JSON array")
    for obj in doc:
        if not isinstance(obj, dict) or obj.get("jsonrpc") != JSONRPC_VERSION:
            raise ValueError("payload entries must be JSON-RPC 2.0 objects")
    return doc


def find_identify(payloads: Sequence[dict]) -> Optional[dict]:
    for obj in payloads:
        if is_notification(obj, IDENTIFY):
            return obj
    return None


def serialize_message(data: Sequence[Any]) -> SerializedMessage:
    """
    Upstream JSON-RPC serializer.

    data = [message, [sender_identity_hex, sender_contact], receiver]
      - message with "method" becomes a request (id kept or generated)
      - message with "result" or "error" becomes a response to message["id"]
    """
    if not isinstance(data, (list, tuple)) or len(data) != 3:
        raise ValueError("expected [message, sender, receiver]")
    message, sender, receiver = data
    if not isinstance(message, dict):
        raise ValueError("message must be a dict")
    if not isinstance(sender, (list, tuple)) or len(sender) != 2:
        raise ValueError("sender must be [identity_hex, contact]")

    if "method" in message:
        rpc = request(message["method"], message.get("params", []), message.get("id"))
    elif "id" in message and "error" in message:
        err = message["error"] or {}
        if not isinstance(err, dict):
            raise ValueError("error member must be an object")
        rpc = error(message["id"], err.get("code", -32000), err.get("message", ""), err.get("data"))
    elif "id" in message and "result" in message:
        rpc = success(message["id"], message["result"])
    else:
        raise ValueError("message is neither a request nor a response")

    payload = [rpc, notification(IDENTIFY, [sender[0], sender[1]])]
    return rpc["id"], encode_payload_list(payload), receiver
