"""
Tests for the local product image cache.
"""
import hashlib
from unittest.mock import MagicMock, patch

import pytest
import requests

from marketscrape.image_cache import (
    ImageCacheError,
    cache_external_image,
    detect_ext,
    is_allowed_host,
    resolve_display_image,
)

IMG = "https://s.alicdn.com/@sc04/kf/H99.jpg_960x960q80.jpg"
JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 5000
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 5000


def image_response(data=JPEG, status=200, content_type="image/jpeg"):
    resp = MagicMock()
    resp.ok = 200 <= status < 300
    resp.status_code = status
    resp.content = data
    resp.headers = {"content-type": content_type}
    return resp


def digest(url):
    return hashlib.sha1(url.encode()).hexdigest()


class TestCacheExternalImage:
    """Download, validate and store."""

    @patch("marketscrape.image_cache.requests.get")
    def test_downloads_once_then_reuses(self, mock_get, tmp_path):
        """The first call downloads; the second finds the file."""
        mock_get.return_value = image_response()
        first = cache_external_image(IMG, cache_dir=tmp_path)
        second = cache_external_image(IMG, cache_dir=tmp_path)
        assert first == second == f"/cache/{digest(IMG)}.jpg"
        assert (tmp_path / f"{digest(IMG)}.jpg").read_bytes() == JPEG
        assert mock_get.call_count == 1

    @patch("marketscrape.image_cache.requests.get")
    def test_referer_sent_for_marketplace(self, mock_get, tmp_path):
        """IndiaMART images are requested with the directory referer."""
        mock_get.return_value = image_response()
        url = "https://5.imimg.com/data5/a/b-1000x1000.jpg"
        cache_external_image(url, cache_dir=tmp_path)
        _, kwargs = mock_get.call_args
        assert kwargs["headers"]["Referer"] == "https://dir.indiamart.com/"

    @patch("marketscrape.image_cache.requests.get")
    def test_extension_from_magic_bytes(self, mock_get, tmp_path):
        """PNG bytes under a JPEG content type are stored as .png."""
        mock_get.return_value = image_response(data=PNG, content_type="image/jpeg")
        assert cache_external_image(IMG, cache_dir=tmp_path).endswith(".png")

    @patch("marketscrape.image_cache.requests.get")
    def test_mismatched_cached_file_replaced(self, mock_get, tmp_path):
        """A cached file whose bytes do not match its extension is downloaded again."""
        (tmp_path / f"{digest(IMG)}.jpg").write_bytes(b"<html>blocked</html>")
        mock_get.return_value = image_response()
        assert cache_external_image(IMG, cache_dir=tmp_path) == f"/cache/{digest(IMG)}.jpg"
        assert mock_get.call_count == 1

    @pytest.mark.parametrize("url", [
        "ftp://s.alicdn.com/a.jpg",
        "https://evil.example.com/a.jpg",
        "https://www.micstatic.com/common/img/space.png",
        "https://s.alicdn.com/@img/imgextra/badge.png",
    ])
    def test_rejected_before_download(self, url, tmp_path):
        """Bad protocols, foreign hosts, spacers and badges never hit the network."""
        with patch("marketscrape.image_cache.requests.get") as mock_get:
            with pytest.raises(ImageCacheError):
                cache_external_image(url, cache_dir=tmp_path)
            mock_get.assert_not_called()

    @patch("marketscrape.image_cache.requests.get")
    def test_tiny_payload_rejected(self, mock_get, tmp_path):
        """Payloads under the size floor are treated as placeholders."""
        mock_get.return_value = image_response(data=JPEG[:100])
        with pytest.raises(ImageCacheError):
            cache_external_image(IMG, cache_dir=tmp_path)
        assert list(tmp_path.iterdir()) == []

    @patch("marketscrape.image_cache.requests.get")
    def test_upstream_errors(self, mock_get, tmp_path):
        """Non-2xx answers and network errors raise ImageCacheError."""
        mock_get.return_value = image_response(status=404)
        with pytest.raises(ImageCacheError):
            cache_external_image(IMG, cache_dir=tmp_path)
        mock_get.side_effect = requests.ConnectionError("reset")
        with pytest.raises(ImageCacheError):
            cache_external_image(IMG, cache_dir=tmp_path)

    @patch("marketscrape.image_cache.requests.get")
    def test_encoded_url_decoded(self, mock_get, tmp_path):
        """Percent-encoded absolute URLs are decoded before use."""
        mock_get.return_value = image_response()
        encoded = "https%3A%2F%2Fs.alicdn.com%2F%40sc04%2Fkf%2FH99.jpg_960x960q80.jpg"
        assert cache_external_image(encoded, cache_dir=tmp_path) == f"/cache/{digest(IMG)}.jpg"


class TestResolveDisplayImage:
    """Display URL with graceful fallbacks."""

    def test_already_cached_path(self):
        """Local cache paths pass through."""
        assert resolve_display_image("/cache/abc.jpg") == "/cache/abc.jpg"

    def test_missing_gives_placeholder(self):
        """No URL means the placeholder."""
        assert resolve_display_image(None) == "/seed/placeholder.jpg"

    @patch("marketscrape.image_cache.requests.get")
    def test_remote_url_when_download_fails(self, mock_get, tmp_path):
        """A usable remote URL is returned when caching fails."""
        mock_get.side_effect = requests.Timeout("slow")
        assert resolve_display_image(IMG, cache_dir=tmp_path) == IMG

    def test_badge_falls_back_to_placeholder(self, tmp_path):
        """Rejected images that are also bad remotes give the placeholder."""
        assert resolve_display_image("https://s.alicdn.com/@img/imgextra/badge.png", cache_dir=tmp_path) == "/seed/placeholder.jpg"

    @patch("marketscrape.image_cache.requests.get")
    def test_cached_when_possible(self, mock_get, tmp_path):
        """A successful download gives the local path."""
        mock_get.return_value = image_response()
        assert resolve_display_image(IMG, cache_dir=tmp_path) == f"/cache/{digest(IMG)}.jpg"


class TestHelpers:
    """Host allow-list and format sniffing."""

    def test_allowed_hosts(self):
        """Marketplace CDNs and their subdomains only."""
        assert is_allowed_host("s.alicdn.com")
        assert is_allowed_host("image.made-in-china.com")
        assert not is_allowed_host("alicdn.com.evil.net")
        assert not is_allowed_host("")

    def test_detect_ext(self):
        """JPEG, PNG and WebP signatures."""
        assert detect_ext(JPEG) == "jpg"
        assert detect_ext(PNG) == "png"
        assert detect_ext(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "webp"
        assert detect_ext(b"<html>") is None
