class OpcUaSecurityError(Exception):
    """Base class for failures while preparing the client identity."""


class ConfigurationError(OpcUaSecurityError):
    """A required configuration value is missing, empty or unsupported."""


class DirectoryError(OpcUaSecurityError):
    """The security directory cannot be created or is not a directory."""


class RepositoryAccessError(OpcUaSecurityError):
    """The keystore cannot be read: wrong passphrase, corrupt or inconsistent."""


class KeyGenerationError(OpcUaSecurityError):
    pass


class SigningError(OpcUaSecurityError):
    pass


class NetworkDiscoveryError(OpcUaSecurityError):
    """Raised per interface during discovery; never leaves the discoverer."""
