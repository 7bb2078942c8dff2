"""HTTP surface of the faucet."""

from .routes import get_chain_service, get_coordinator, router

__all__ = ["router", "get_coordinator", "get_chain_service"]
