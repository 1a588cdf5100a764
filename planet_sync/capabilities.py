"""Abstract interfaces for the external capabilities the engine drives."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from .core.types import Article, Source


class Renderer(ABC):
    """Renders one article of a self-owned planet into its publish directory."""

    @abstractmethod
    async def render(self, source: Source, article: Article, directory: Path) -> None:
        """Write the article's files below ``directory``."""
        raise NotImplementedError


class ContentPublisher(ABC):
    """Content-addressed storage client."""

    @abstractmethod
    async def publish_directory(self, directory: Path) -> str:
        """Add a directory tree and return its root CID."""
        raise NotImplementedError

    @abstractmethod
    async def update_pointer(self, key_name: str, cid: str) -> str:
        """Point the IPNS name of ``key_name`` at ``cid``; return the IPNS name."""
        raise NotImplementedError


class NameResolver(ABC):
    """Decentralized name lookup (ENS)."""

    @abstractmethod
    async def resolve(self, name: str) -> str | None:
        """Return the name's content hash as a URI such as ``ipfs://bafy...``."""
        raise NotImplementedError

    @abstractmethod
    async def avatar(self, name: str) -> bytes | None:
        """Return the name's avatar image bytes, if it has one."""
        raise NotImplementedError


class AvatarUpdater(ABC):
    """Receives new avatar images for planets."""

    @abstractmethod
    async def update_avatar(self, source_id: str, data: bytes) -> None:
        raise NotImplementedError
