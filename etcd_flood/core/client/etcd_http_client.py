"""
etcd v2 HTTP API client
For liveness stats, key writes and post-flood state verification
"""
import aiohttp
import asyncio
import json
import logging
from typing import Any, Dict, Optional

from ...utils.exceptions import VerificationError, ErrorCodes

LOG = logging.getLogger(__name__)

FLOOD_NAMESPACE = "flood"


class EtcdHttpClient:
    """etcd v2 keys/stats API client bound to one node"""

    def __init__(self, client_addr: str, timeout: float = 1.0):
        """
        Initialize HTTP client

        Args:
            client_addr: Node client address (host:port)
            timeout: Request timeout (seconds)
        """
        self.client_addr = client_addr
        self.base_url = f"http://{client_addr}"
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None

    def _require_session(self) -> aiohttp.ClientSession:
        if not self.session:
            raise RuntimeError("Client not initialized. Use 'async with' statement.")
        return self.session

    async def get_stats_self(self) -> Dict[str, Any]:
        """
        Get the node's self stats

        Raises:
            VerificationError: Request failed or returned non-200
        """
        url = f"{self.base_url}/v2/stats/self"
        session = self._require_session()
        try:
            async with session.get(url) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise VerificationError(
                        f"GET {url} returned {resp.status}: {text}",
                        address=self.client_addr,
                        status=resp.status
                    )
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise VerificationError(
                f"GET {url} failed: {type(e).__name__}: {e}",
                address=self.client_addr
            )

    async def set_key(self, key: str, value: str) -> Dict[str, Any]:
        """
        Write a single key (PUT /v2/keys/<key>)

        Returns:
            Decoded etcd response document
        """
        url = f"{self.base_url}/v2/keys/{key.lstrip('/')}"
        session = self._require_session()
        async with session.put(url, data={"value": value}) as resp:
            if resp.status not in (200, 201):
                text = await resp.text()
                raise VerificationError(
                    f"PUT {url} returned {resp.status}: {text}",
                    address=self.client_addr,
                    status=resp.status
                )
            return await resp.json(content_type=None)

    async def make_dir(self, key: str = FLOOD_NAMESPACE, exist_ok: bool = True) -> None:
        """
        Create a directory key (PUT /v2/keys/<key>?dir=true)

        etcd answers 403 when the directory already exists; that is accepted
        when ``exist_ok`` is set.
        """
        url = f"{self.base_url}/v2/keys/{key.lstrip('/')}"
        session = self._require_session()
        async with session.put(url, params={"dir": "true"}) as resp:
            if resp.status in (200, 201) or (exist_ok and resp.status == 403):
                return
            text = await resp.text()
            raise VerificationError(
                f"PUT {url}?dir=true returned {resp.status}: {text}",
                address=self.client_addr,
                status=resp.status
            )

    async def count_keys(self, namespace: str = FLOOD_NAMESPACE) -> int:
        """
        Count the direct children of a directory key

        Issues a recursive read of ``namespace`` and returns the number of
        entries directly under it. Nothing is coerced: a missing node or a
        non-directory root is a data-integrity failure.

        Raises:
            VerificationError: transport error, bad JSON or unexpected shape
        """
        url = f"{self.base_url}/v2/keys/{namespace}?recursive=true"
        session = self._require_session()
        LOG.debug(f"Counting keys under /{namespace} on {self.client_addr}")

        try:
            async with session.get(url) as resp:
                body = await resp.read()
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise VerificationError(
                f"GET {url} failed: {type(e).__name__}: {e}",
                address=self.client_addr,
                namespace=namespace
            )

        try:
            document = json.loads(body)
        except ValueError as e:
            raise VerificationError(
                f"GET {url} returned undecodable body (HTTP {status}): {e}",
                address=self.client_addr,
                namespace=namespace,
                status=status
            )

        node = document.get("node") if isinstance(document, dict) else None
        if not isinstance(node, dict):
            raise VerificationError(
                f"GET {url} (HTTP {status}) has no 'node' object: {document!r}",
                address=self.client_addr,
                namespace=namespace,
                status=status
            )

        if node.get("dir") is not True:
            raise VerificationError(
                f"/{namespace} on {self.client_addr} is not a directory",
                code=ErrorCodes.NOT_A_DIRECTORY,
                address=self.client_addr,
                namespace=namespace
            )

        children = node.get("nodes") or []
        if not isinstance(children, list):
            raise VerificationError(
                f"/{namespace} on {self.client_addr} has a non-list 'nodes' field",
                address=self.client_addr,
                namespace=namespace
            )

        LOG.info(f"{self.client_addr} holds {len(children)} keys under /{namespace}")
        return len(children)


async def keys_on_node(client_addr: str, namespace: str = FLOOD_NAMESPACE, timeout: float = 1.0) -> int:
    """Number of direct children of ``namespace`` on the node at ``client_addr``."""
    async with EtcdHttpClient(client_addr, timeout=timeout) as client:
        return await client.count_keys(namespace)
