"""
Tests for building web crawler sources from URLs.
"""

import pytest

from crucible.cloudflare import WebCrawlerSource, ai_crawler
from crucible.errors import ValidationError


class TestAiCrawler:
    def test_single_root_url(self):
        source = ai_crawler(["https://docs.example.com"])
        assert isinstance(source, WebCrawlerSource)
        assert source.domain == "docs.example.com"
        assert source.include_paths is None

    def test_paths_become_include_patterns(self):
        source = ai_crawler(["https://example.com/blog", "https://example.com/news/"])
        assert source.domain == "example.com"
        assert source.include_paths == ["**/blog**", "**/news/**"]

    def test_scheme_is_optional(self):
        assert ai_crawler(["example.com/docs"]).include_paths == ["**/docs**"]

    def test_root_path_ignored(self):
        source = ai_crawler(["https://example.com/", "https://example.com/blog"])
        assert source.include_paths == ["**/blog**"]

    def test_mixed_domains_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            ai_crawler(["https://a.example.com", "https://b.example.com"])
        assert "a.example.com, b.example.com" in str(exc_info.value)

    def test_empty_list_rejected(self):
        with pytest.raises(ValidationError):
            ai_crawler([])

    def test_missing_domain_rejected(self):
        with pytest.raises(ValidationError):
            ai_crawler(["https:///path"])
