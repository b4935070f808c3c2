"""package feed access."""
from .client import RegistryClient
from .nuget import NuGetRegistry

__all__ = [
    "RegistryClient",
    "NuGetRegistry",
]
