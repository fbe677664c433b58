import asyncio
import logging
from typing import Optional, Sequence

from asyncua import Client, ua

from .identity import root_node_id
from .security import SecurityContext

logger = logging.getLogger(__name__)


class SecureOpcClient:
    """
    OPC UA client that presents the process identity from a SecurityContext.
    - no usable credential: connects without security (policy None)
    - keeps one connection, reconnects with backoff when it drops
    """

    def __init__(
        self,
        endpoint_url: str = "opc.tcp://localhost:4840",
        security: Optional[SecurityContext] = None,
        mode: ua.MessageSecurityMode = ua.MessageSecurityMode.SignAndEncrypt,
        reconnect_backoff: Sequence[float] = (0.5, 1.0, 2.0, 3.0, 5.0),
        timeout: float = 4,
    ):
        self.endpoint_url = endpoint_url.rstrip("/")
        self.security = security
        self.mode = mode
        self.reconnect_backoff = tuple(reconnect_backoff)
        self.timeout = timeout

        self._client: Optional[Client] = None
        self._connected: bool = False
        self._secured: bool = False
        self._lock = asyncio.Lock()

    @property
    def secured(self) -> bool:
        return self._secured

    # -------------------------
    # Helpers
    # -------------------------
    async def _connect_once(self):
        client = Client(url=self.endpoint_url, timeout=self.timeout)
        secured = False
        if self.security is not None:
            client.application_uri = self.security.application_uri
            client.name = self.security.application_name
            client.description = self.security.application_name
            secured = await self.security.apply(client, self.mode)

        await client.connect()
        self._client = client
        self._connected = True
        self._secured = secured
        logger.info("OPC UA connected to %s (%s)", self.endpoint_url, "secured" if secured else "Security=None")

    async def _connect_with_retries(self):
        last_err: Optional[Exception] = None
        for delay in (0.0, *self.reconnect_backoff):
            if delay:
                await asyncio.sleep(delay)
            try:
                await self._connect_once()
                return
            except (OSError, asyncio.TimeoutError, ua.UaError) as e:
                last_err = e
                logger.warning("OPC UA connect failed (will retry): %s", e)

        raise ConnectionError(f"Failed to connect to OPC UA server: {last_err}") from last_err

    async def _drop(self):
        async with self._lock:
            self._connected = False
            self._client = None

    # -------------------------
    # Public
    # -------------------------
    async def connect(self):
        async with self._lock:
            if self._connected and self._client:
                return
            await self._connect_with_retries()

    async def disconnect(self):
        async with self._lock:
            if self._client:
                try:
                    await self._client.disconnect()
                finally:
                    self._client = None
                    self._connected = False
                    logger.info("OPC UA disconnected")

    async def read_node(self, node: str) -> dict:
        """Read a node by id ("ns=2;s=Tank") or well-known root name ("Objects")."""
        if not (self._connected and self._client):
            await self.connect()
        node_id = root_node_id(node)

        try:
            dv = await self._client.get_node(node_id).read_data_value()
            return {
                "node": node,
                "nodeId": node_id,
                "value": dv.Value.Value if dv.Value is not None else None,
                "status": dv.StatusCode.name,
            }
        except ua.UaError as e:
            return {"node": node, "nodeId": node_id, "error": str(e)}
        except (OSError, asyncio.TimeoutError) as e:
            # reconnect on the next call
            await self._drop()
            return {"node": node, "nodeId": node_id, "error": str(e)}
