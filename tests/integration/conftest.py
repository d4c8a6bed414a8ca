# tests/integration/conftest.py — v8
"""Shared fixtures for integration tests.

Each test gets a throwaway site layout (public/assets + public/optimized)
and Settings pointing at it. HTTP origins are served from disk through
httpx.MockTransport, so no sockets are opened.
"""

from __future__ import annotations

import mimetypes
from pathlib import Path

import httpx
import pytest

from adaptimg.config.settings import Settings


@pytest.fixture
def site(tmp_path: Path) -> Path:
    root = tmp_path / "site"
    (root / "public" / "assets").mkdir(parents=True)
    return root


@pytest.fixture
def site_settings(site: Path) -> Settings:
    return Settings(
        _env_file=None,
        input_dir=site / "public" / "assets",
        output_dir=site / "public" / "optimized",
        cache_file=site / ".image-optimization-cache.json",
        delivery_cache_path=site / ".delivery" / "cache.db",
        build_workers=3,
        tinypng_api_key="",
    )


class DiskOrigin:
    """Serves files under ``root`` for https://cdn.test/<relative path>."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.requests: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        rel = request.url.path.lstrip("/")
        self.requests.append(rel)
        path = self.root / rel
        if not path.is_file():
            return httpx.Response(404)
        ctype = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return httpx.Response(200, headers={"content-type": ctype}, content=path.read_bytes())

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def url_for(self, path: str) -> str:
        p = Path(path)
        rel = p.relative_to(self.root) if p.is_absolute() else p
        return f"https://cdn.test/{rel.as_posix()}"


@pytest.fixture
def disk_origin(site: Path) -> DiskOrigin:
    return DiskOrigin(site)
