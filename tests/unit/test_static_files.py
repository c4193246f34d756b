"""Tests for the Static File Resolver."""

from __future__ import annotations

from pathlib import Path

import pytest

from tsss.static_files import (
    DEFAULT_MIME_TYPE,
    PathOutsideRootError,
    is_subpath,
    mime_type_for,
    resolve_request_path,
    serve_file,
)


@pytest.fixture
def site(tmp_path: Path) -> Path:
    root = tmp_path / "site"
    root.mkdir()
    (root / "index.html").write_text("<h1>home</h1>", encoding="utf-8")
    (root / "style.css").write_text("body{}", encoding="utf-8")
    (root / "docs").mkdir()
    (root / "docs" / "index.html").write_text("<h1>docs</h1>", encoding="utf-8")
    (tmp_path / "secret.txt").write_text("do not serve", encoding="utf-8")
    return root


class TestResolve:
    def test_is_subpath(self, tmp_path: Path):
        assert is_subpath(tmp_path, tmp_path)
        assert is_subpath(tmp_path, tmp_path / "a" / "b")
        assert not is_subpath(tmp_path / "a", tmp_path)
        assert not is_subpath(tmp_path / "a", tmp_path / "ab")

    def test_leading_slash_stays_under_root(self, site: Path):
        assert resolve_request_path("/style.css", site) == site / "style.css"

    def test_dotted_name_is_not_traversal(self, site: Path):
        assert resolve_request_path("/..hidden", site) == site / "..hidden"

    @pytest.mark.parametrize(
        "request_path",
        [
            "/../secret.txt",
            "../secret.txt",
            "/docs/../../secret.txt",
            "/./../site/../secret.txt",
            "/../../../../etc/passwd",
        ],
    )
    def test_traversal_rejected(self, site: Path, request_path: str):
        with pytest.raises(PathOutsideRootError):
            resolve_request_path(request_path, site)

    def test_mime_table(self):
        assert mime_type_for(".html") == "text/html"
        assert mime_type_for(".JS") == "text/javascript"
        assert mime_type_for(".svg") == "image/svg+xml"
        assert mime_type_for(".unknown") == DEFAULT_MIME_TYPE


class TestServeFile:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("request_path", ["/../secret.txt", "/docs/../../secret.txt"])
    async def test_traversal_is_400(self, site: Path, request_path: str):
        resp = await serve_file(request_path, site)
        assert resp.status_code == 400
        assert b"do not serve" not in resp.body

    @pytest.mark.asyncio
    async def test_missing_file_is_404_naming_path(self, tmp_path: Path):
        resp = await serve_file("/missing.txt", tmp_path)
        assert resp.status_code == 404
        assert "missing.txt" in resp.body.decode()

    @pytest.mark.asyncio
    async def test_root_serves_index_html(self, site: Path):
        resp = await serve_file("/", site)
        assert resp.status_code == 200
        assert resp.body == b"<h1>home</h1>"
        assert resp.media_type == "text/html"

    @pytest.mark.asyncio
    async def test_directory_serves_its_index(self, site: Path):
        resp = await serve_file("/docs", site)
        assert resp.status_code == 200
        assert resp.body == b"<h1>docs</h1>"

    @pytest.mark.asyncio
    async def test_content_type_from_extension(self, site: Path):
        resp = await serve_file("/style.css", site)
        assert resp.status_code == 200
        assert resp.media_type == "text/css"

    @pytest.mark.asyncio
    async def test_unknown_extension_falls_back(self, site: Path):
        (site / "data.bin").write_bytes(b"\x00\x01")
        resp = await serve_file("/data.bin", site)
        assert resp.status_code == 200
        assert resp.body == b"\x00\x01"
        assert resp.media_type == DEFAULT_MIME_TYPE

    @pytest.mark.asyncio
    async def test_read_error_is_500(self, site: Path):
        (site / "empty").mkdir()
        resp = await serve_file("/empty", site)
        assert resp.status_code == 500
        assert resp.body.decode().startswith("Error getting the file")
