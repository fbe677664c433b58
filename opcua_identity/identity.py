import socket
from typing import Optional

DEFAULT_APP_NAME = "OPC-UA Client"

ROOT_NODE_IDS = {
    "Root": "i=84",
    "Objects": "i=85",
    "Types": "i=86",
    "Views": "i=87",
}


def get_hostname() -> str:
    try:
        return socket.gethostname() or "localhost"
    except OSError:
        return "localhost"


def application_name(base: str = DEFAULT_APP_NAME, hostname: Optional[str] = None) -> str:
    # e.g. "OPC-UA Client@plc-gateway"
    return f"{base}@{hostname or get_hostname()}"


def application_uri(hostname: Optional[str] = None) -> str:
    return f"urn:{hostname or get_hostname()}:opcua:client"


def root_node_id(name: str) -> str:
    """Map the well-known root folder names to their numeric node ids."""
    return ROOT_NODE_IDS.get(name, name)
