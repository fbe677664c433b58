from .core.config import OpcUaSettings
from .create_cert import CertificateForge
from .keystore import CredentialRepository
from .models import CertificateSubject, ClientCredential, KeyPair, SecurityState
from .network import IdentityKind, NetworkIdentity, NetworkIdentityDiscoverer
from .policy import PolicyCatalog, PolicyParameters, SecurityPolicy
from .security import SecurityContext

__all__ = [
    "OpcUaSettings",
    "CertificateForge",
    "CredentialRepository",
    "CertificateSubject",
    "ClientCredential",
    "KeyPair",
    "SecurityState",
    "IdentityKind",
    "NetworkIdentity",
    "NetworkIdentityDiscoverer",
    "PolicyCatalog",
    "PolicyParameters",
    "SecurityPolicy",
    "SecurityContext",
]
