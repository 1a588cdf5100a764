"""
Default IPFS and ENS adapters backed by a local Kubo node.

KuboClient talks to the Kubo RPC API (``/api/v0``) over HTTP to add a
planet directory and to publish its IPNS record. EnsResolver resolves ENS
names through the same node (Kubo resolves ``.eth`` names via DNSLink) and
fetches avatars from the ENS metadata service.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx

from .capabilities import ContentPublisher, NameResolver
from .config import IpfsConfig, NamesConfig
from .errors import FetchError
from .fetch.fetcher import fetch_url

logger = logging.getLogger(__name__)


class KuboClient(ContentPublisher):
    """Content publisher using the Kubo RPC API.

    Attributes:
        api_url: Base URL of the RPC API, without the ``/api/v0`` suffix
    """

    def __init__(self, cfg: IpfsConfig, client: httpx.AsyncClient):
        self.api_url = cfg.api_url.rstrip("/")
        self._timeout = cfg.api_timeout_seconds
        self._client = client

    async def publish_directory(self, directory: Path) -> str:
        """Add ``directory`` recursively and return its root CID.

        Files are sent as one multipart request; part filenames are the
        URL-encoded paths relative to the directory's parent, which is how
        the RPC API reconstructs the tree.
        """
        if not directory.is_dir():
            raise FetchError(str(directory), "not a directory")

        root = directory.name
        files: list[tuple[str, tuple[str, bytes, str]]] = [
            ("file", (quote(root, safe=""), b"", "application/x-directory"))
        ]
        for path in sorted(directory.rglob("*")):
            rel = quote(path.relative_to(directory.parent).as_posix(), safe="")
            if path.is_dir():
                files.append(("file", (rel, b"", "application/x-directory")))
            else:
                files.append(("file", (rel, path.read_bytes(), "application/octet-stream")))

        text = await self._rpc("add", params={"cid-version": "1", "pin": "true"}, files=files)
        for line in text.splitlines():
            if not line.strip():
                continue
            item = json.loads(line)
            if item.get("Name") == root:
                logger.info("Directory added to IPFS: %s -> %s", directory, item["Hash"])
                return item["Hash"]
        raise FetchError(f"{self.api_url}/api/v0/add", f"no root entry for {root}")

    async def update_pointer(self, key_name: str, cid: str) -> str:
        text = await self._rpc(
            "name/publish",
            params={"arg": f"/ipfs/{cid}", "key": key_name, "allow-offline": "true"},
        )
        data = json.loads(text)
        logger.info("IPNS updated: %s -> %s", data.get("Name"), data.get("Value"))
        return data["Name"]

    async def resolve_name(self, name: str) -> str | None:
        """Resolve an IPNS/DNSLink name to an ``/ipfs/...`` path."""
        path = name if name.startswith("/ipns/") else f"/ipns/{name}"
        text = await self._rpc("name/resolve", params={"arg": path, "recursive": "true"})
        return json.loads(text).get("Path")

    async def _rpc(self, command: str, params: dict[str, Any], files: list | None = None) -> str:
        url = f"{self.api_url}/api/v0/{command}"
        try:
            resp = await self._client.post(url, params=params, files=files, timeout=self._timeout)
        except httpx.HTTPError as exc:
            raise FetchError(url, f"{type(exc).__name__}: {exc}") from exc
        if resp.status_code != 200:
            raise FetchError(url, resp.text.strip() or f"HTTP {resp.status_code}", resp.status_code)
        return resp.text


class EnsResolver(NameResolver):
    """ENS lookups through a Kubo node and the ENS metadata service."""

    def __init__(self, kubo: KuboClient, names_cfg: NamesConfig, client: httpx.AsyncClient):
        self._kubo = kubo
        self._avatar_url_template = names_cfg.avatar_url_template
        self._client = client

    async def resolve(self, name: str) -> str | None:
        path = await self._kubo.resolve_name(name)
        if not path or not path.startswith("/ipfs/"):
            return None
        return "ipfs://" + path[len("/ipfs/"):].rstrip("/")

    async def avatar(self, name: str) -> bytes | None:
        result = await fetch_url(self._client, self._avatar_url_template.format(name=name))
        if not result.ok:
            logger.debug("No ENS avatar for %s: %s", name, result.error)
            return None
        return result.content
