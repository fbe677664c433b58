import logging
import sys
from datetime import datetime, timedelta, timezone
from ipaddress import ip_address
from typing import Iterable, List, Optional

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.x509.oid import NameOID, ExtendedKeyUsageOID

from .core.config import OpcUaSettings
from .core.errors import SigningError
from .identity import application_name, application_uri
from .models import CertificateSubject, KeyPair
from .network import IdentityKind, NetworkIdentity
from .policy import SHA1_WITH_RSA, SHA256_WITH_RSA, PolicyCatalog, SecurityPolicy

logger = logging.getLogger(__name__)

CLOCK_SKEW = timedelta(minutes=5)

# X.520 upper bound for CommonName
MAX_COMMON_NAME = 64


def build_subject(settings: OpcUaSettings, hostname: Optional[str] = None) -> CertificateSubject:
    info = settings.certificate_info
    subject = CertificateSubject(
        common_name=application_name(settings.app_name, hostname),
        application_uri=application_uri(hostname),
        organization=info.organization,
        organizational_unit=info.organizational_unit,
        locality_name=info.locality_name,
        country_code=info.country_code,
    )
    if info.dns_name:
        subject.dns_names.add(info.dns_name)
    if info.ip_address:
        subject.ip_addresses.add(info.ip_address)
    return subject


class CertificateForge:
    """
    Builds self-signed OPC-UA application-instance certificates.
    - signature hash follows the security policy
    - application URI goes into the SAN next to DNS names and IP addresses
    """

    def __init__(self, validity_days: int = 3650):
        self.validity_days = validity_days

    def build(
        self,
        key_pair: KeyPair,
        policy: SecurityPolicy,
        subject: CertificateSubject,
        sans: Iterable[NetworkIdentity] = (),
    ) -> x509.Certificate:
        params = PolicyCatalog.parameters(policy)
        algorithm = PolicyCatalog.hash_algorithm(params.signature_algorithm)

        name = self._name(subject)
        now = datetime.now(timezone.utc)
        public_key = key_pair.public_key

        builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(public_key)
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - CLOCK_SKEW)
            .not_valid_after(now + timedelta(days=self.validity_days))
            .add_extension(x509.SubjectAlternativeName(self._san_items(subject, sans)), critical=False)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=True,
                    key_encipherment=True,
                    data_encipherment=True,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH]),
                critical=False,
            )
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
            .add_extension(x509.AuthorityKeyIdentifier.from_issuer_public_key(public_key), critical=False)
        )

        try:
            cert = self._sign(builder, key_pair, algorithm, subject)
        except SigningError as e:
            if params.signature_algorithm != SHA1_WITH_RSA:
                raise
            # newer OpenSSL builds refuse SHA1 signatures, a stronger digest is acceptable
            logger.warning(
                "Signing with %s failed for %s (%s), using %s instead",
                SHA1_WITH_RSA, policy.value, e, SHA256_WITH_RSA,
            )
            cert = self._sign(builder, key_pair, PolicyCatalog.hash_algorithm(SHA256_WITH_RSA), subject)

        logger.info("Built self-signed certificate CN=%s (%s)", subject.common_name, signature_algorithm_name(cert))
        return cert

    # -------------------------
    # Helpers
    # -------------------------
    @staticmethod
    def _sign(builder, key_pair: KeyPair, algorithm, subject: CertificateSubject) -> x509.Certificate:
        try:
            return builder.sign(private_key=key_pair.private_key, algorithm=algorithm)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise SigningError(f"Failed to sign certificate for {subject.common_name}: {e}") from e

    @staticmethod
    def _name(subject: CertificateSubject) -> x509.Name:
        common_name = subject.common_name
        if len(common_name) > MAX_COMMON_NAME:
            # the full identity is still carried by the application URI in the SAN
            logger.warning("Common name %r exceeds %d characters, truncating", common_name, MAX_COMMON_NAME)
            common_name = common_name[:MAX_COMMON_NAME]

        attrs = [
            (NameOID.COMMON_NAME, common_name),
            (NameOID.ORGANIZATION_NAME, subject.organization),
            (NameOID.ORGANIZATIONAL_UNIT_NAME, subject.organizational_unit),
            (NameOID.LOCALITY_NAME, subject.locality_name),
            (NameOID.COUNTRY_NAME, subject.country_code),
        ]
        return x509.Name([x509.NameAttribute(oid, value) for oid, value in attrs if value])

    @staticmethod
    def _san_items(subject: CertificateSubject, sans: Iterable[NetworkIdentity]) -> List[x509.GeneralName]:
        dns_names = {n for n in subject.dns_names if n}
        ips = {ip for ip in subject.ip_addresses if ip}
        for identity in sans:
            if identity.kind is IdentityKind.IP_ADDRESS:
                ips.add(identity.value)
            elif identity.value:
                dns_names.add(identity.value)

        ip_addresses = set()
        for ip in ips:
            try:
                ip_addresses.add(ip_address(ip))
            except ValueError:
                logger.warning("Ignoring invalid IP address for SAN: %r", ip)

        items: List[x509.GeneralName] = [x509.UniformResourceIdentifier(subject.application_uri)]
        items += [x509.DNSName(n) for n in sorted(dns_names)]
        items += [x509.IPAddress(ip) for ip in sorted(ip_addresses, key=lambda a: (a.version, int(a)))]
        return items


def signature_algorithm_name(cert: x509.Certificate) -> str:
    """Name the certificate's signature the way PolicyParameters does."""
    hash_name = cert.signature_hash_algorithm.name.upper().replace("-", "")
    return f"{hash_name}WithRSA"


def main() -> int:
    from .security import SecurityContext

    settings = OpcUaSettings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    context = SecurityContext(settings)
    state = context.initialize()

    if state.policy is None or state.policy is SecurityPolicy.NONE:
        print("Security policy not configured, running without a client certificate")
        return 0

    if not state.available:
        reason = state.error or f"no RSA private key under alias {settings.key_store.private_key_alias!r}"
        print(f"❌ client identity unavailable: {reason}")
        return 1

    cert = context.get_client_certificate()
    print(f"✅ client identity ready: {context.repository.path}")
    print("   Policy =", state.policy.value)
    print("   CN =", context.application_name)
    print("   URI =", context.application_uri)
    print("   Signature =", signature_algorithm_name(cert))
    print("   Key size =", context.get_client_key_pair().public_key.key_size)
    return 0


if __name__ == "__main__":
    sys.exit(main())
