from .rotation_provider import APIKeyRotationProvider
from .provider_enum import APIProviderType
from .interface import APIKeyRotationInterface

__all__ = [
    "APIKeyRotationProvider",
    "APIKeyRotationInterface",
    "APIProviderType",
]
