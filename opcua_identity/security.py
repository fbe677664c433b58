import logging
from typing import Optional

from asyncua import ua
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from .core.config import OpcUaSettings
from .core.errors import ConfigurationError, OpcUaSecurityError
from .identity import application_name, application_uri
from .keystore import CredentialRepository
from .models import KeyPair, SecurityState
from .policy import PolicyCatalog, SecurityPolicy

logger = logging.getLogger(__name__)


class SecurityContext:
    """
    Client identity for one process.
    - resolves the security policy from settings
    - loads or creates the credential once
    - any failure leaves the credential unset instead of aborting the process
    """

    def __init__(self, settings: OpcUaSettings, repository: Optional[CredentialRepository] = None):
        self.settings = settings
        self.repository = repository or CredentialRepository(settings)
        self.application_name = application_name(settings.app_name)
        self.application_uri = application_uri()
        self._state: Optional[SecurityState] = None

    def initialize(self) -> SecurityState:
        if self._state is not None:
            return self._state

        policy = PolicyCatalog.resolve(self.settings.security_policy)
        if policy is None or policy is SecurityPolicy.NONE:
            logger.info("Security policy %s, skipping client credential setup", policy.value if policy else "unconfigured")
            self._state = SecurityState(policy=policy)
            return self._state

        try:
            credential = self.repository.load_or_create(policy)
        except (OpcUaSecurityError, OSError, ValueError) as e:
            logger.exception("Client credential setup failed, continuing without a client certificate")
            self._state = SecurityState(policy=policy, error=e)
            return self._state

        if credential is None:
            logger.error("Client credential unavailable, secured sessions cannot be opened")
        self._state = SecurityState(policy=policy, credential=credential)
        return self._state

    # -------------------------
    # Accessors
    # -------------------------
    @property
    def state(self) -> SecurityState:
        return self.initialize()

    @property
    def security_policy(self) -> Optional[SecurityPolicy]:
        return self.state.policy

    def get_client_certificate(self) -> Optional[x509.Certificate]:
        credential = self.state.credential
        return credential.certificate if credential else None

    def get_client_key_pair(self) -> Optional[KeyPair]:
        credential = self.state.credential
        return credential.key_pair if credential else None

    def certificate_bytes(self) -> Optional[bytes]:
        cert = self.get_client_certificate()
        return cert.public_bytes(serialization.Encoding.DER) if cert else None

    def private_key_bytes(self) -> Optional[bytes]:
        key_pair = self.get_client_key_pair()
        if key_pair is None:
            return None
        return key_pair.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    async def apply(self, client, mode: ua.MessageSecurityMode = ua.MessageSecurityMode.SignAndEncrypt) -> bool:
        """Configure an asyncua Client with this identity. False means the client stays unsecured."""
        state = self.state
        if not state.available:
            return False

        policy_class = PolicyCatalog.asyncua_policy(state.policy)
        if policy_class is None:
            raise ConfigurationError(f"asyncua does not support security policy {state.policy.value}")

        await client.set_security(
            policy_class,
            certificate=self.certificate_bytes(),
            private_key=self.private_key_bytes(),
            mode=mode,
        )
        logger.info("Client security set to %s/%s", state.policy.value, mode.name)
        return True
