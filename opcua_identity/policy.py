import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from cryptography.hazmat.primitives import hashes

logger = logging.getLogger(__name__)

POLICY_URI_PREFIX = "http://opcfoundation.org/UA/SecurityPolicy#"

SHA1_WITH_RSA = "SHA1WithRSA"
SHA256_WITH_RSA = "SHA256WithRSA"


class SecurityPolicy(Enum):
    NONE = "None"
    BASIC128RSA15 = "Basic128Rsa15"
    BASIC256 = "Basic256"
    BASIC256SHA256 = "Basic256Sha256"
    AES128_SHA256_RSAOAEP = "Aes128_Sha256_RsaOaep"
    AES256_SHA256_RSAPSS = "Aes256_Sha256_RsaPss"

    @property
    def uri(self) -> str:
        return POLICY_URI_PREFIX + self.value


@dataclass(frozen=True)
class PolicyParameters:
    key_size_bits: int
    signature_algorithm: str


# Minimum requirements per policy class. A weaker policy may be signed with a
# stronger digest, never the other way round.
_PARAMETERS = {
    SecurityPolicy.NONE: PolicyParameters(2048, SHA1_WITH_RSA),
    SecurityPolicy.BASIC128RSA15: PolicyParameters(1024, SHA1_WITH_RSA),
    SecurityPolicy.BASIC256: PolicyParameters(2048, SHA1_WITH_RSA),
    SecurityPolicy.BASIC256SHA256: PolicyParameters(2048, SHA256_WITH_RSA),
    SecurityPolicy.AES128_SHA256_RSAOAEP: PolicyParameters(2048, SHA256_WITH_RSA),
    SecurityPolicy.AES256_SHA256_RSAPSS: PolicyParameters(2048, SHA256_WITH_RSA),
}

# class names in asyncua.crypto.security_policies
_ASYNCUA_POLICIES = {
    SecurityPolicy.BASIC128RSA15: "SecurityPolicyBasic128Rsa15",
    SecurityPolicy.BASIC256: "SecurityPolicyBasic256",
    SecurityPolicy.BASIC256SHA256: "SecurityPolicyBasic256Sha256",
    SecurityPolicy.AES128_SHA256_RSAOAEP: "SecurityPolicyAes128Sha256RsaOaep",
    SecurityPolicy.AES256_SHA256_RSAPSS: "SecurityPolicyAes256Sha256RsaPss",
}


class PolicyCatalog:
    """
    Security policy lookups.
    - resolve(): configured name -> SecurityPolicy, or None when unconfigured
    - parameters(): policy -> key size / signature algorithm
    """

    @staticmethod
    def resolve(name: Optional[str]) -> Optional[SecurityPolicy]:
        if name is None or not name.strip():
            return None

        name = name.strip()
        try:
            return SecurityPolicy(name)
        except ValueError:
            # misconfigured and unconfigured collapse to the same outcome
            logger.warning("Unknown security policy %r, treating as unconfigured", name)
            return None

    @staticmethod
    def parameters(policy: SecurityPolicy) -> PolicyParameters:
        return _PARAMETERS[policy]

    @staticmethod
    def hash_algorithm(signature_algorithm: str) -> hashes.HashAlgorithm:
        if signature_algorithm == SHA1_WITH_RSA:
            return hashes.SHA1()
        if signature_algorithm == SHA256_WITH_RSA:
            return hashes.SHA256()
        raise ValueError(f"Unsupported signature algorithm: {signature_algorithm}")

    @staticmethod
    def asyncua_policy(policy: SecurityPolicy):
        """Return the asyncua policy class used by Client.set_security()."""
        from asyncua.crypto import security_policies

        class_name = _ASYNCUA_POLICIES.get(policy)
        if class_name is None:
            return None
        return getattr(security_policies, class_name, None)
