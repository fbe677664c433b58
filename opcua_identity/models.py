"""
Data models for the client identity.
"""
from dataclasses import dataclass, field
from typing import Optional, Set

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa

from .policy import SecurityPolicy


@dataclass(frozen=True)
class KeyPair:
    public_key: rsa.RSAPublicKey
    private_key: rsa.RSAPrivateKey

    @classmethod
    def from_private_key(cls, private_key: rsa.RSAPrivateKey) -> "KeyPair":
        return cls(private_key.public_key(), private_key)


@dataclass
class CertificateSubject:
    """Subject attributes and SAN seeds of an application-instance certificate."""
    common_name: str
    application_uri: str
    organization: str = ""
    organizational_unit: str = ""
    locality_name: str = ""
    country_code: str = ""
    dns_names: Set[str] = field(default_factory=set)
    ip_addresses: Set[str] = field(default_factory=set)


@dataclass(frozen=True)
class ClientCredential:
    """Certificate and key pair presented to the server. Never mutated."""
    certificate: x509.Certificate
    key_pair: KeyPair

    def matches(self) -> bool:
        return self.certificate.public_key().public_numbers() == self.key_pair.public_key.public_numbers()


@dataclass
class SecurityState:
    """Outcome of SecurityContext.initialize()."""
    policy: Optional[SecurityPolicy] = None
    credential: Optional[ClientCredential] = None
    error: Optional[Exception] = None

    @property
    def available(self) -> bool:
        return self.credential is not None

    @property
    def degraded(self) -> bool:
        # a policy was asked for but no credential could be produced
        return self.error is not None or (
            self.policy not in (None, SecurityPolicy.NONE) and self.credential is None
        )
