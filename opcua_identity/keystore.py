"""
Password-protected PKCS#12 store holding the client certificate and private key.
"""
import logging
import os
from pathlib import Path
from typing import Optional

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import BestAvailableEncryption, pkcs12

from .core.config import OpcUaSettings
from .core.errors import ConfigurationError, DirectoryError, KeyGenerationError, RepositoryAccessError
from .create_cert import CertificateForge, build_subject
from .models import ClientCredential, KeyPair
from .network import WILDCARD_ADDRESS, NetworkIdentityDiscoverer
from .policy import PolicyCatalog, SecurityPolicy

logger = logging.getLogger(__name__)

SUPPORTED_TYPES = ("PKCS12",)


def generate_key_pair(key_size: int) -> KeyPair:
    try:
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise KeyGenerationError(f"Failed to generate {key_size} bit RSA key: {e}") from e
    return KeyPair.from_private_key(private_key)


class CredentialRepository:
    """
    Loads the client credential from the keystore, or creates the keystore on
    first start. This is the only writer of the keystore file and assumes a
    single process owns it.
    """

    def __init__(
        self,
        settings: OpcUaSettings,
        discoverer: Optional[NetworkIdentityDiscoverer] = None,
        forge: Optional[CertificateForge] = None,
    ):
        self.settings = settings
        self.discoverer = discoverer or NetworkIdentityDiscoverer(settings.lookup_timeout)
        self.forge = forge or CertificateForge(settings.certificate_info.validity_days)

    # -------------------------
    # Configuration
    # -------------------------
    @property
    def security_dir(self) -> Path:
        if not self.settings.security_dir.strip():
            raise ConfigurationError("Configuration does not contain the path to security related information.")
        return Path(self.settings.security_dir)

    @property
    def path(self) -> Path:
        file_name = self.settings.key_store.file_name.strip()
        if not file_name:
            raise ConfigurationError("key_store.file_name must not be empty")
        return self.security_dir / file_name

    @property
    def _password(self) -> bytes:
        password = self.settings.user_credentials.user_pass.get_secret_value()
        if not password:
            raise ConfigurationError("user_credentials.user_pass must not be empty")
        return password.encode("utf-8")

    def _aliases(self):
        ks = self.settings.key_store
        if not ks.cert_alias or not ks.private_key_alias:
            raise ConfigurationError("key_store.cert_alias and key_store.private_key_alias must not be empty")
        return ks.cert_alias.encode("utf-8"), ks.private_key_alias.encode("utf-8")

    def _check_type(self):
        store_type = self.settings.key_store.key_store_type.strip().upper()
        if store_type not in SUPPORTED_TYPES:
            raise ConfigurationError(f"Unsupported key store type: {self.settings.key_store.key_store_type!r}")

    # -------------------------
    # Public
    # -------------------------
    def load_or_create(self, policy: SecurityPolicy) -> Optional[ClientCredential]:
        self._check_type()
        path = self.path

        # decided once, there is no second writer to race with
        if path.exists():
            logger.info("Loading client credential from %s", path)
            return self.load()

        logger.info("No key store at %s, creating client credential for %s", path, policy.value)
        return self.create(policy)

    def ensure_directory(self) -> Path:
        security_dir = self.security_dir
        try:
            security_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DirectoryError(f"Unable to create security directory: {security_dir}") from e

        if not security_dir.is_dir():
            raise DirectoryError(f"Unable to create security directory: {security_dir}")
        return security_dir

    def create(self, policy: SecurityPolicy) -> ClientCredential:
        password = self._password
        cert_alias, key_alias = self._aliases()
        self.ensure_directory()

        params = PolicyCatalog.parameters(policy)
        key_pair = generate_key_pair(params.key_size_bits)

        sans = self.discoverer.discover(WILDCARD_ADDRESS, include_loopback=True)
        subject = build_subject(self.settings)
        certificate = self.forge.build(key_pair, policy, subject, sans)

        data = pkcs12.serialize_key_and_certificates(
            name=key_alias,
            key=key_pair.private_key,
            cert=certificate,
            cas=[pkcs12.PKCS12Certificate(certificate, cert_alias)],
            encryption_algorithm=BestAvailableEncryption(password),
        )
        self._write_new(self.path, data)

        logger.info("Created key store %s (%d bit key, %d SAN candidates)", self.path, params.key_size_bits, len(sans))
        return ClientCredential(certificate, key_pair)

    def load(self) -> Optional[ClientCredential]:
        path = self.path
        password = self._password
        cert_alias, key_alias = self._aliases()

        try:
            data = path.read_bytes()
        except OSError as e:
            raise RepositoryAccessError(f"Unable to read key store {path}: {e}") from e

        try:
            store = pkcs12.load_pkcs12(data, password)
        except ValueError as e:
            raise RepositoryAccessError(f"Unable to open key store {path}: wrong password or corrupt data") from e

        if self._find_certificate(store, key_alias) is None or not isinstance(store.key, rsa.RSAPrivateKey):
            logger.error("Key store %s has no private key under alias %r", path, key_alias.decode())
            return None

        certificate = self._find_certificate(store, cert_alias)
        if certificate is None:
            raise RepositoryAccessError(f"Key store {path} has no certificate under alias {cert_alias.decode()!r}")

        credential = ClientCredential(certificate, KeyPair(certificate.public_key(), store.key))
        if not credential.matches():
            raise RepositoryAccessError(f"Certificate and private key in {path} do not belong together")
        return credential

    # -------------------------
    # Helpers
    # -------------------------
    @staticmethod
    def _find_certificate(store, alias: bytes) -> Optional[x509.Certificate]:
        # the key entry carries its own certificate copy, the certificate entry is a separate bag
        entries = [store.cert] if store.cert is not None else []
        for entry in entries + list(store.additional_certs):
            if entry.friendly_name == alias:
                return entry.certificate
        return None

    @staticmethod
    def _write_new(path: Path, data: bytes):
        # O_EXCL: an existing key store is never overwritten
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError as e:
            raise RepositoryAccessError(f"Key store {path} appeared while creating it") from e
        except OSError as e:
            raise RepositoryAccessError(f"Unable to create key store {path}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
        except OSError as e:
            # no partial key store may remain at the path
            try:
                path.unlink()
            except OSError as cleanup_error:
                logger.error("Unable to remove partial key store %s: %s", path, cleanup_error)
            raise RepositoryAccessError(f"Unable to write key store {path}: {e}") from e
