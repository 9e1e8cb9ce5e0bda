from .authenticate import (
    AuthenticatedEnvelope,
    KeyBundle,
    VerifiedMessage,
    )
from .errors import (
    AuthenticationError,
    MalformedPayload,
    IdentityMismatch,
    InvalidDerivation,
    InvalidSignature,
    )
from .jsonrpc import (
    AUTHENTICATE,
    IDENTIFY,
    notification,
    request,
    serialize_message,
    parse_payload_list,
    encode_payload_list,
    )
