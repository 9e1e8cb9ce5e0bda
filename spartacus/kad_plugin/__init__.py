from .config import SpartacusConfig
from .plugin import (
    SpartacusPlugin,
    build_key_bundle,
    plugin,
    )
