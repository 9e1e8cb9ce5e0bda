"""
Rejection reasons for inbound messages.

Every error is fail-closed: the message is dropped, nothing is forwarded.
They subclass ValueError so callers that already catch validation errors
keep working.
"""

from __future__ import annotations


class AuthenticationError(ValueError):
    kind = "AuthenticationError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class MalformedPayload(AuthenticationError):
    # Buffer did not decode into the expected list of JSON-RPC objects
    kind = "MalformedPayload"


class IdentityMismatch(AuthenticationError):
    kind = "IdentityMismatch"


class InvalidDerivation(AuthenticationError):
    kind = "InvalidDerivation"


class InvalidSignature(AuthenticationError):
    kind = "InvalidSignature"
