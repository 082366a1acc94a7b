"""Resolves stored avatar and recipe image paths to public URLs."""

from __future__ import annotations

from typing import Sequence
from urllib.parse import quote

from reportmod.moderation.domain.collaborators import AssetStore


class PublicUrlAssetStore(AssetStore):
    """Objects are served from a public bucket or CDN under ``base_url``."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")

    def is_available(self) -> bool:
        return bool(self.base_url)

    async def resolve_urls(self, paths: Sequence[str]) -> dict[str, str]:
        return {path: f"{self.base_url}/{quote(path.lstrip('/'))}" for path in paths}
