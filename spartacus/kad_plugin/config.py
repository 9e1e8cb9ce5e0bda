"""
Peer key configuration.

One model replaces the positional constructor variants (no key, raw key,
extended key, extended key + index, extended key + index + path).

Resolution order for the root key:
  1) private_extended_key
  2) private_key          (flat mode: zero chain code)
  3) seed
  4) a fresh 64-byte random seed

derivation_path is applied to the root first, then the child at
derivation_index is taken unless the index is -1. An unset index means -1
for a flat key and 0 otherwise.
"""

from __future__ import annotations

import os
from typing import Callable, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..crypto_utils.hdkey import FLAT_INDEX, HARDENED_OFFSET, HDKey, parse_path


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class SpartacusConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    private_extended_key: Optional[str] = None
    private_key: Optional[str] = Field(default=None, description="hex, 32 bytes")
    seed: Optional[str] = Field(default=None, description="hex, 16..64 bytes")
    derivation_index: Optional[int] = None
    derivation_path: Optional[str] = None
    verify_derivation: bool = True

    @field_validator("private_key", "seed")
    @classmethod
    def _check_hex(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            bytes.fromhex(v)
        except ValueError as e:
            raise ValueError(f"must be hex: {e}") from e
        return v

    @field_validator("derivation_index")
    @classmethod
    def _check_index(cls, v: Optional[int]) -> Optional[int]:
        if v is None or v == FLAT_INDEX:
            return v
        if not (0 <= v <= 0xFFFFFFFF):
            raise ValueError(f"derivation_index must be -1 or in [0, 2**32): {v}")
        return v

    @field_validator("derivation_path")
    @classmethod
    def _check_path(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            parse_path(v)
        return v

    @property
    def is_flat(self) -> bool:
        return self.private_extended_key is None and self.private_key is not None

    @property
    def resolved_index(self) -> int:
        if self.derivation_index is not None:
            return self.derivation_index
        return FLAT_INDEX if self.is_flat else 0

    @property
    def is_hardened(self) -> bool:
        return self.resolved_index >= HARDENED_OFFSET

    def root_key(self) -> HDKey:
        if self.private_extended_key is not None:
            return HDKey.from_extended_key(self.private_extended_key)
        if self.private_key is not None:
            return HDKey.from_flat_private_key(bytes.fromhex(self.private_key))
        if self.seed is not None:
            return HDKey.from_master_seed(bytes.fromhex(self.seed))
        return HDKey.from_master_seed(os.urandom(64))

    @classmethod
    def from_env(
        cls,
        prefix: str = "SPARTACUS_",
        *,
        environ: Optional[Mapping[str, str]] = None,
        auto_dotenv: bool = False,
        dotenv_path: Optional[str] = None,
        dotenv_override: bool = False,
    ) -> "SpartacusConfig":
        """
        Build a config from environment variables:
          <prefix>XPRV, <prefix>PRIVATE_KEY, <prefix>SEED,
          <prefix>DERIVATION_INDEX, <prefix>DERIVATION_PATH,
          <prefix>VERIFY_DERIVATION
        """
        if auto_dotenv:
            load_dotenv(dotenv_path=dotenv_path, override=dotenv_override)
        env = os.environ if environ is None else environ
        get: Callable[[str], Optional[str]] = lambda name: env.get(prefix + name) or None

        values: dict = {
            "private_extended_key": get("XPRV"),
            "private_key": get("PRIVATE_KEY"),
            "seed": get("SEED"),
            "derivation_path": get("DERIVATION_PATH"),
        }
        index = get("DERIVATION_INDEX")
        if index is not None:
            try:
                values["derivation_index"] = int(index)
            except ValueError as e:
                raise ValueError(f"{prefix}DERIVATION_INDEX must be an int") from e
        flag = get("VERIFY_DERIVATION")
        if flag is not None:
            if flag.lower() in _TRUE:
                values["verify_derivation"] = True
            elif flag.lower() in _FALSE:
                values["verify_derivation"] = False
            else:
                raise ValueError(f"{prefix}VERIFY_DERIVATION must be a boolean")
        return cls(**{k: v for k, v in values.items() if v is not None})
