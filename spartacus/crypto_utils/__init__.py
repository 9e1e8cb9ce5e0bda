from .keys import (
    create_private_key,
    is_valid_private_key,
    is_valid_public_key,
    to_public_key,
    to_public_key_hash,
    sign_digest,
    verify_digest,
    canonical_json_bytes,
    sha256,
    rmd160,
    b64_encode,
    b64_decode,
    )
from .hdkey import (
    HDKey,
    HARDENED_OFFSET,
    FLAT_INDEX,
    parse_path,
    to_hdkey_from_seed,
    to_extended_from_private_key,
    is_derived_from_extended_public_key,
    )
