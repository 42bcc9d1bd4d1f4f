"""Cross-chain bridge clients."""
from .wormhole import WormholeBridgeClient, parse_bridge_fees

__all__ = ["WormholeBridgeClient", "parse_bridge_fees"]
