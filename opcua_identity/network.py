import ipaddress
import logging
import re
import socket
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

import psutil

from .core.errors import NetworkDiscoveryError

logger = logging.getLogger(__name__)

WILDCARD_ADDRESS = "0.0.0.0"

IP_ADDR_PATTERN = re.compile(
    r"^(([01]?\d\d?|2[0-4]\d|25[0-5])\.){3}([01]?\d\d?|2[0-4]\d|25[0-5])$"
)


class IdentityKind(Enum):
    HOSTNAME = "hostname"
    IP_ADDRESS = "ip_address"


def is_ip_literal(value: str) -> bool:
    return bool(IP_ADDR_PATTERN.match(value or ""))


def classify(value: str) -> IdentityKind:
    return IdentityKind.IP_ADDRESS if is_ip_literal(value) else IdentityKind.HOSTNAME


@dataclass(frozen=True)
class NetworkIdentity:
    kind: IdentityKind
    value: str

    @classmethod
    def from_value(cls, value: str) -> "NetworkIdentity":
        return cls(classify(value), value)


class NetworkIdentityDiscoverer:
    """
    Collects the hostnames and IPv4 addresses this machine is reachable under.
    - wildcard address: every IPv4 address of every interface
    - concrete address: the single address it resolves to
    Each address contributes its reverse-resolved name, the literal and the
    canonical (fully qualified) name.
    """

    def __init__(self, lookup_timeout: float = 2.0):
        self.lookup_timeout = lookup_timeout

    # -------------------------
    # Public
    # -------------------------
    def discover(self, address: str = WILDCARD_ADDRESS, include_loopback: bool = True) -> Set[NetworkIdentity]:
        return {
            NetworkIdentity.from_value(value)
            for value in self.discover_hostnames(address, include_loopback)
        }

    def discover_hostnames(self, address: str = WILDCARD_ADDRESS, include_loopback: bool = True) -> Set[str]:
        supplied: Dict[str, str] = {}
        if self._is_wildcard(address):
            candidates = self._interface_addresses()
        else:
            resolved = self._resolve(address)
            candidates = {address: [resolved]} if resolved else {}
            # a host name given by the caller is kept as the hostname candidate
            if resolved and not is_ip_literal(address):
                supplied[resolved] = address

        addresses: Dict[str, List[str]] = {}
        for source, ips in candidates.items():
            try:
                addresses[source] = self._filter(ips, include_loopback)
            except NetworkDiscoveryError as e:
                logger.warning("Skipping interface %s: %s", source, e)

        flat = sorted({ip for ips in addresses.values() for ip in ips})
        hostnames: Set[str] = set()
        for ip, (name, canonical) in self._reverse_lookup_all(flat).items():
            hostnames.update((supplied.get(ip, name), ip, canonical))

        hostnames.discard("")
        return hostnames

    # -------------------------
    # Helpers
    # -------------------------
    @staticmethod
    def _is_wildcard(address: str) -> bool:
        try:
            return ipaddress.ip_address(address).is_unspecified
        except ValueError:
            return False

    def _interface_addresses(self) -> Dict[str, List[str]]:
        try:
            interfaces = psutil.net_if_addrs()
        except (OSError, RuntimeError) as e:
            logger.warning("Enumeration of network interfaces failed: %s", e)
            return {}

        result = {}
        for name, snics in interfaces.items():
            # IPv6 is left out on purpose, certificate tooling expects IPv4
            result[name] = [snic.address for snic in snics if snic.family == socket.AF_INET]
        return result

    def _resolve(self, address: str) -> Optional[str]:
        try:
            return socket.gethostbyname(address)
        except (OSError, UnicodeError) as e:
            logger.warning("Failed to resolve address %s: %s", address, e)
            return None

    @staticmethod
    def _filter(ips: List[str], include_loopback: bool) -> List[str]:
        kept = []
        for ip in ips:
            try:
                parsed = ipaddress.IPv4Address(ip)
            except ValueError as e:
                raise NetworkDiscoveryError(f"invalid address {ip!r}") from e
            if include_loopback or not parsed.is_loopback:
                kept.append(str(parsed))
        return kept

    def _reverse_lookup_all(self, ips: List[str]) -> Dict[str, Tuple[str, str]]:
        found: Dict[str, Tuple[str, str]] = {}
        workers = []
        for ip in ips:
            # daemon: a hung resolver call must not block interpreter exit
            worker = threading.Thread(
                target=self._lookup_into, args=(ip, found), name=f"reverse-lookup-{ip}", daemon=True
            )
            worker.start()
            workers.append((ip, worker))

        names = {}
        for ip, worker in workers:
            worker.join(self.lookup_timeout)
            if ip in found:
                names[ip] = found[ip]
            else:
                logger.warning("Reverse lookup of %s timed out after %.1fs", ip, self.lookup_timeout)
                names[ip] = (ip, ip)
        return names

    def _lookup_into(self, ip: str, found: Dict[str, Tuple[str, str]]):
        found[ip] = self._reverse_lookup(ip)

    @staticmethod
    def _reverse_lookup(ip: str) -> Tuple[str, str]:
        """Return (hostname, canonical hostname); both fall back to the literal."""
        try:
            name, aliases, _ = socket.gethostbyaddr(ip)
        except (OSError, UnicodeError) as e:
            logger.debug("Reverse lookup of %s failed: %s", ip, e)
            return ip, ip

        canonical = name
        if "." not in canonical:
            canonical = next((a for a in aliases if "." in a), name)
        return name, canonical


def get_hostnames(address: str, include_loopback: bool = True, lookup_timeout: float = 2.0) -> Set[str]:
    return NetworkIdentityDiscoverer(lookup_timeout).discover_hostnames(address, include_loopback)
