"""Domain models shared across the client and web layers."""

from .identity import AppleClientConfig, ClientIdentity

__all__ = ["AppleClientConfig", "ClientIdentity"]
