"""Tests for the direct-fetch strategy."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

pytest.importorskip("pytest_httpserver")

from pytest_httpserver import HTTPServer
from werkzeug.wrappers import Response

from backup_core.acquire.context import LINK_KIND_MEDIA, DownloadContext
from backup_core.acquire.strategies.content_types import extension_for_content_type
from backup_core.acquire.strategies.direct import DirectFetchStrategy, can_fetch_as_file, non_fetchable_reason
from backup_core.network_utils import RetryPolicy

ERROR_PAGE = "<html><head><title>Oops</title></head><body><h1>404 Not Found</h1></body></html>"
ARTICLE_PAGE = "<html><body><article>" + "<p>Paragraph of real content.</p>" * 5 + "</article></body></html>"


def _ctx(output_dir: Path, unit_factory: Any, **kwargs: Any) -> DownloadContext:
    return DownloadContext(output_dir=output_dir, unit=unit_factory(), **kwargs)


class TestCanHandle:
    """Test which URLs direct fetch accepts."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com/files/report.pdf",
            "http://cdn.example.org/img/photo.jpg?size=large",
            "https://drive.google.com/file/d/abc123def456/view",
        ],
    )
    def test_accepts_plain_http_files(self, url: str) -> None:
        assert DirectFetchStrategy().can_handle(url) is True

    @pytest.mark.parametrize(
        "url",
        [
            "mailto:someone@example.com",
            "tel:+5491100000000",
            "ftp://example.com/file.zip",
            "https://www.youtube.com/watch?v=abc",
            "https://youtu.be/abc",
            "https://forms.gle/xyz",
            "https://zoom.us/j/123",
            "https://www.facebook.com/somepage",
            "https://www.amazon.com/Some-Book/dp/B000000",
            "https://example.com/",
            "https://example.com.ar",
        ],
    )
    def test_rejects_structurally_unfetchable(self, url: str) -> None:
        assert DirectFetchStrategy().can_handle(url) is False
        assert non_fetchable_reason(url) is not None

    @pytest.mark.parametrize(
        "url",
        [
            "https://photos.app.goo.gl/abcdef",
            "https://photos.google.com/share/AF1Qip",
            "https://drive.google.com/drive/folders/1AbCdEfGhIjK",
        ],
    )
    def test_rejects_containers(self, url: str) -> None:
        """Albums and folders are left to the enumeration strategies."""
        assert DirectFetchStrategy().can_handle(url) is False
        assert can_fetch_as_file(url) is True

    def test_priority_is_lowest(self) -> None:
        assert DirectFetchStrategy().priority() == 0


class TestContentTypes:
    """Test the content-type to extension table."""

    @pytest.mark.parametrize(
        ("content_type", "extension"),
        [
            ("application/pdf", "pdf"),
            ("image/jpeg", "jpg"),
            ("image/png; charset=binary", "png"),
            ("video/mp4", "mp4"),
            ("video/quicktime", "mov"),
            ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", "docx"),
            ("application/zip", "zip"),
            ("text/html; charset=utf-8", "html"),
            ("TEXT/PLAIN", "txt"),
        ],
    )
    def test_known_types(self, content_type: str, extension: str) -> None:
        assert extension_for_content_type(content_type) == extension

    @pytest.mark.parametrize("content_type", ["application/x-weird", "", None])
    def test_unknown_types_map_to_bin(self, content_type: str | None) -> None:
        """The extension is never empty."""
        assert extension_for_content_type(content_type) == "bin"


class TestBaseName:
    """Test artifact naming."""

    def test_label_is_used(self, tmp_path: Path, unit_factory: Any) -> None:
        ctx = _ctx(tmp_path, unit_factory, display_name="Programa del curso.pdf")
        assert DirectFetchStrategy().base_name("https://x/y", ctx) == "11-27-09-11-Programa del curso"

    def test_media_uses_url_stem(self, tmp_path: Path, unit_factory: Any) -> None:
        ctx = _ctx(tmp_path, unit_factory, options={"kind": LINK_KIND_MEDIA})
        name = DirectFetchStrategy().base_name("https://cdn.example.com/a/IMG_0042.JPG", ctx)
        assert name == "11-27-09-11-IMG_0042"

    def test_unlabelled_link_is_numbered(self, tmp_path: Path, unit_factory: Any) -> None:
        ctx = _ctx(tmp_path, unit_factory, index=2)
        assert DirectFetchStrategy().base_name("https://x/y", ctx) == "11-27-09-11-external-3"


@pytest.mark.integration
class TestFetch:
    """Fetch against a local HTTP server."""

    def test_pdf_download(self, httpserver: HTTPServer, tmp_path: Path, unit_factory: Any) -> None:
        """A 200 application/pdf lands in Files/ with a pdf extension."""
        payload = b"%PDF-1.4\n" + b"x" * 2048
        httpserver.expect_request("/docs/guide").respond_with_data(payload, content_type="application/pdf")

        ctx = _ctx(tmp_path, unit_factory, display_name="Guía")
        results = asyncio.run(DirectFetchStrategy().fetch(httpserver.url_for("/docs/guide"), ctx))

        assert len(results) == 1
        result = results[0]
        assert result.ok
        assert result.extension == "pdf"
        assert result.size == len(payload)
        assert Path(result.local_path) == tmp_path / "Files" / "11-27-09-11-Guía.pdf"
        assert Path(result.local_path).read_bytes() == payload
        assert not list(tmp_path.glob("*.tmp"))

    def test_image_routed_to_images(self, httpserver: HTTPServer, tmp_path: Path, unit_factory: Any) -> None:
        httpserver.expect_request("/p.png").respond_with_data(b"\x89PNG", content_type="image/png")
        ctx = _ctx(tmp_path, unit_factory, options={"kind": LINK_KIND_MEDIA})
        [result] = asyncio.run(DirectFetchStrategy().fetch(httpserver.url_for("/p.png"), ctx))
        assert result.ok
        assert Path(result.local_path).parent.name == "Images"

    def test_unknown_type_saved_as_bin(self, httpserver: HTTPServer, tmp_path: Path, unit_factory: Any) -> None:
        httpserver.expect_request("/blob").respond_with_data(b"data", content_type="application/x-custom")
        [result] = asyncio.run(DirectFetchStrategy().fetch(httpserver.url_for("/blob"), _ctx(tmp_path, unit_factory)))
        assert result.ok
        assert result.extension == "bin"

    def test_not_found_is_failed_result(
        self, httpserver: HTTPServer, tmp_path: Path, unit_factory: Any, no_sleep: Any
    ) -> None:
        """A 404 is reported, not raised, and not retried."""
        httpserver.expect_request("/gone").respond_with_data("nope", status=404)
        strategy = DirectFetchStrategy(sleep=no_sleep)
        [result] = asyncio.run(strategy.fetch(httpserver.url_for("/gone"), _ctx(tmp_path, unit_factory)))

        assert not result.ok
        assert "404" in result.error
        assert no_sleep.calls == []
        assert not any(tmp_path.rglob("*.*"))

    def test_transient_error_is_retried(
        self, httpserver: HTTPServer, tmp_path: Path, unit_factory: Any, no_sleep: Any
    ) -> None:
        calls = {"count": 0}

        def flaky(request: Any) -> Response:
            calls["count"] += 1
            if calls["count"] == 1:
                return Response("try later", status=503)
            return Response(b"%PDF", status=200, content_type="application/pdf")

        httpserver.expect_request("/flaky").respond_with_handler(flaky)
        strategy = DirectFetchStrategy(retry_policy=RetryPolicy(max_attempts=3), sleep=no_sleep)
        [result] = asyncio.run(strategy.fetch(httpserver.url_for("/flaky"), _ctx(tmp_path, unit_factory)))

        assert result.ok
        assert calls["count"] == 2
        assert no_sleep.calls == [1.0]

    def test_error_page_is_rejected(self, httpserver: HTTPServer, tmp_path: Path, unit_factory: Any) -> None:
        """HTML error pages served with 200 are failures, and nothing is kept."""
        httpserver.expect_request("/doc").respond_with_data(ERROR_PAGE, content_type="text/html")
        [result] = asyncio.run(DirectFetchStrategy().fetch(httpserver.url_for("/doc"), _ctx(tmp_path, unit_factory)))

        assert not result.ok
        assert "error page" in result.error
        assert not any(path.is_file() for path in tmp_path.rglob("*"))

    def test_real_html_document_is_kept(self, httpserver: HTTPServer, tmp_path: Path, unit_factory: Any) -> None:
        httpserver.expect_request("/article").respond_with_data(ARTICLE_PAGE, content_type="text/html")
        [result] = asyncio.run(
            DirectFetchStrategy().fetch(httpserver.url_for("/article"), _ctx(tmp_path, unit_factory))
        )
        assert result.ok
        assert result.extension == "html"
