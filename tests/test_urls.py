from __future__ import annotations

import pytest

from app.core.config import get_settings
from app.media.urls import PublicURLBuilder


def _builder(monkeypatch, **env: str) -> PublicURLBuilder:
    for key, value in env.items():
        monkeypatch.setenv(f"CLIPSTORE_{key.upper()}", value)
    get_settings.cache_clear()
    return PublicURLBuilder.from_settings(get_settings())


def test_local_urls_point_at_assets_mount(monkeypatch):
    urls = _builder(monkeypatch, public_url_strategy="local", public_base_url="http://localhost:8091/")

    assert urls.url_for("landscape/abc.mp4") == "http://localhost:8091/assets/landscape/abc.mp4"


def test_s3_urls_use_virtual_hosted_style(monkeypatch):
    urls = _builder(monkeypatch, public_url_strategy="s3", s3_bucket="clips", s3_region="eu-west-1")

    assert urls.url_for("thumbnails/v.png") == "https://clips.s3.eu-west-1.amazonaws.com/thumbnails/v.png"


def test_cdn_urls_use_distribution_host(monkeypatch):
    urls = _builder(monkeypatch, public_url_strategy="cdn", cdn_distribution="d111111abcdef8.cloudfront.net")

    assert urls.url_for("portrait/x.mp4") == "https://d111111abcdef8.cloudfront.net/portrait/x.mp4"


@pytest.mark.parametrize("strategy", ["s3", "cdn"])
def test_remote_strategies_require_their_host(monkeypatch, strategy):
    monkeypatch.delenv("CLIPSTORE_S3_BUCKET", raising=False)
    monkeypatch.delenv("CLIPSTORE_CDN_DISTRIBUTION", raising=False)

    with pytest.raises(ValueError):
        _builder(monkeypatch, public_url_strategy=strategy)
