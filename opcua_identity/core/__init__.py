from .config import CertificateInfo, KeyStoreSettings, OpcUaSettings, UserCredentials
from .errors import (
    ConfigurationError,
    DirectoryError,
    KeyGenerationError,
    NetworkDiscoveryError,
    OpcUaSecurityError,
    RepositoryAccessError,
    SigningError,
)

__all__ = [
    "CertificateInfo",
    "KeyStoreSettings",
    "OpcUaSettings",
    "UserCredentials",
    "ConfigurationError",
    "DirectoryError",
    "KeyGenerationError",
    "NetworkDiscoveryError",
    "OpcUaSecurityError",
    "RepositoryAccessError",
    "SigningError",
]
