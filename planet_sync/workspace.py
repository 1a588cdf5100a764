"""Per-planet directories on disk.

Each planet gets a folder named after its id below the planets directory.
Self-owned planets render one sub-folder per article into it and publish
the whole folder; followed planets only keep their avatar there.
"""

from __future__ import annotations

import logging
from pathlib import Path
import shutil

from .capabilities import AvatarUpdater, Renderer
from .core.types import Article, Source

logger = logging.getLogger(__name__)


class PlanetWorkspace:
    """Manages file paths and folder structure for planets."""

    def __init__(self, planets_dir: Path):
        """Initialize the PlanetWorkspace.

        Args:
            planets_dir: The parent directory where all planet folders are stored
        """
        self._planets_dir = planets_dir

    @property
    def root(self) -> Path:
        return self._planets_dir

    def planet_dir(self, source_id: str) -> Path:
        """Returns the planet folder path.

        Returns:
            Path object for the planet's folder
        """
        return self._planets_dir / source_id

    def article_dir(self, source_id: str, article_id: str) -> Path:
        """Returns the folder an article is rendered into.

        Returns:
            Path object matching the article's ``/{id}/`` link
        """
        return self.planet_dir(source_id) / article_id

    def avatar_path(self, source_id: str) -> Path:
        """Returns path to the planet avatar.

        Returns:
            Path object for avatar.png
        """
        return self.planet_dir(source_id) / "avatar.png"

    def ensure(self, source_id: str) -> Path:
        """Create the planet folder if it doesn't exist."""
        folder = self.planet_dir(source_id)
        folder.mkdir(parents=True, exist_ok=True)
        return folder

    def destroy(self, source_id: str) -> None:
        folder = self.planet_dir(source_id)
        if folder.exists():
            shutil.rmtree(folder)
            logger.debug("Planet directory removed: %s", folder)

    def destroy_article(self, source_id: str, article_id: str) -> None:
        folder = self.article_dir(source_id, article_id)
        if folder.exists():
            shutil.rmtree(folder)


class PlainDirectoryRenderer(Renderer):
    """Writes an article's stored content as ``{article_id}/index.html``.

    No templating is applied; the body is written as stored.
    """

    async def render(self, source: Source, article: Article, directory: Path) -> None:
        folder = directory / article.id
        folder.mkdir(parents=True, exist_ok=True)
        (folder / "index.html").write_text(article.content or "", encoding="utf-8")


class DirectoryAvatarUpdater(AvatarUpdater):
    """Stores avatar bytes as ``avatar.png`` in the planet folder."""

    def __init__(self, workspace: PlanetWorkspace):
        self._workspace = workspace

    async def update_avatar(self, source_id: str, data: bytes) -> None:
        self._workspace.ensure(source_id)
        self._workspace.avatar_path(source_id).write_bytes(data)
