"""Tests for methodology loading, caching and search."""

import json

import pytest
import yaml

from methodology_engine.errors import MethodologyNotFoundError
from methodology_engine.repository import (
    DirectoryFetcher,
    FetchError,
    HttpFetcher,
    MethodologyRepository,
    StaticFetcher,
    methodology_filename,
    repository_from_source,
)

MANIFEST = {
    "methodologies": [
        {"id": "scrum", "name": "Scrum", "domains": ["software"], "tags": ["agile"], "complexity": "medium",
         "i18n": {"fr": {"name": "Mêlée"}}},
        {"id": "design-thinking", "title": "Design Thinking", "domains": ["product"], "tags": ["ux"]},
        {"name": "missing id"},
    ]
}

SCRUM = {
    "metadata": {"id": "scrum", "name": "Scrum"},
    "phases": [{"id": "sprint", "tasks": [{"id": "t", "title": "Task"}]}],
}


def _repo(documents=None):
    docs = {"manifest.json": MANIFEST, "scrum.methodology.json": SCRUM}
    if documents is not None:
        docs = documents
    fetcher = StaticFetcher(docs)
    return MethodologyRepository(fetcher), fetcher


class TestManifest:
    def test_invalid_entries_skipped(self):
        repo, _ = _repo()
        ids = [m.id for m in repo.list_available()]
        assert ids == ["scrum", "design-thinking"]

    def test_manifest_cached(self):
        repo, fetcher = _repo()
        repo.list_available()
        repo.list_available()
        assert fetcher.calls.count("manifest.json") == 1

    def test_missing_manifest_is_empty_and_not_cached(self):
        repo, fetcher = _repo({})
        assert repo.list_available() == []
        fetcher.documents["manifest.json"] = MANIFEST
        assert len(repo.list_available()) == 2

    def test_malformed_manifest(self):
        repo, _ = _repo({"manifest.json": {"items": []}})
        assert repo.list_available() == []


class TestSearch:
    def test_matches_name_case_insensitively(self):
        repo, _ = _repo()
        assert [m.id for m in repo.search("SCR")] == ["scrum"]

    def test_matches_id(self):
        repo, _ = _repo()
        assert [m.id for m in repo.search("design-")] == ["design-thinking"]

    def test_localized_name(self):
        repo, _ = _repo()
        assert [m.id for m in repo.search("mêlée", lang="fr")] == ["scrum"]
        assert repo.search("mêlée") == []

    def test_blank_query_returns_everything(self):
        repo, _ = _repo()
        assert len(repo.search("  ")) == 2


class TestLoad:
    def test_load_and_cache(self):
        repo, fetcher = _repo()
        first = repo.load("scrum")
        second = repo.load("scrum")
        assert first is second
        assert first.id == "scrum"
        assert repo.is_cached("scrum")
        assert fetcher.calls.count("scrum.methodology.json") == 1

    def test_clear_drops_cache(self):
        repo, fetcher = _repo()
        repo.load("scrum")
        repo.list_available()
        repo.clear()
        assert not repo.is_cached("scrum")
        repo.load("scrum")
        repo.list_available()
        assert fetcher.calls.count("scrum.methodology.json") == 2
        assert fetcher.calls.count("manifest.json") == 2

    def test_unknown_returns_none(self):
        repo, _ = _repo()
        assert repo.load("kanban") is None
        assert not repo.is_cached("kanban")

    def test_invalid_document_rejected(self):
        bad = {"metadata": {"id": "bad"}, "phases": [{"id": "p"}, {"id": "p"}]}
        repo, _ = _repo({"bad.methodology.json": bad})
        assert repo.load("bad") is None

    def test_get_raises_not_found(self):
        repo, _ = _repo()
        with pytest.raises(MethodologyNotFoundError) as excinfo:
            repo.get("kanban")
        assert str(excinfo.value) == "Unknown methodology 'kanban'"
        assert isinstance(excinfo.value, KeyError)

    def test_filename(self):
        assert methodology_filename("scrum") == "scrum.methodology.json"


class TestDirectoryFetcher:
    def test_reads_json(self, tmp_path):
        (tmp_path / "manifest.json").write_text(json.dumps(MANIFEST), encoding="utf-8")
        (tmp_path / "scrum.methodology.json").write_text(json.dumps(SCRUM), encoding="utf-8")
        repo = repository_from_source(str(tmp_path))
        assert isinstance(repo.fetcher, DirectoryFetcher)
        assert len(repo.list_available()) == 2
        assert repo.get("scrum").phase_ids() == ["sprint"]

    def test_yaml_fallback(self, tmp_path):
        (tmp_path / "scrum.methodology.yaml").write_text(yaml.safe_dump(SCRUM), encoding="utf-8")
        fetcher = DirectoryFetcher(tmp_path)
        assert fetcher.fetch("scrum.methodology.json")["metadata"]["id"] == "scrum"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FetchError, match="not found"):
            DirectoryFetcher(tmp_path).fetch("manifest.json")

    def test_malformed_file(self, tmp_path):
        (tmp_path / "manifest.json").write_text("{nope", encoding="utf-8")
        with pytest.raises(FetchError, match="JSONDecodeError"):
            DirectoryFetcher(tmp_path).fetch("manifest.json")


class TestHttpFetcher:
    def test_source_selects_http(self):
        repo = repository_from_source("https://example.com/methodologies")
        assert isinstance(repo.fetcher, HttpFetcher)
        assert repo.fetcher.base_url == "https://example.com/methodologies/"

    def test_fetch_parses_json(self, monkeypatch):
        seen = {}

        class _Response:
            def __enter__(self):
                return self

            def __exit__(self, *exc):
                return False

            def read(self):
                return json.dumps(MANIFEST).encode("utf-8")

        def fake_urlopen(req, timeout):
            seen["url"] = req.full_url
            seen["timeout"] = timeout
            return _Response()

        monkeypatch.setattr("urllib.request.urlopen", fake_urlopen)
        data = HttpFetcher("https://example.com/m", timeout=3).fetch("manifest.json")
        assert data == MANIFEST
        assert seen == {"url": "https://example.com/m/manifest.json", "timeout": 3}

    def test_network_error_raises_fetch_error(self, monkeypatch):
        import urllib.error

        def fake_urlopen(req, timeout):
            raise urllib.error.URLError("connection refused")

        monkeypatch.setattr("urllib.request.urlopen", fake_urlopen)
        with pytest.raises(FetchError, match="connection refused"):
            HttpFetcher("https://example.com").fetch("manifest.json")

    def test_unreachable_manifest_is_non_fatal(self, monkeypatch):
        import urllib.error

        def fake_urlopen(req, timeout):
            raise urllib.error.URLError("offline")

        monkeypatch.setattr("urllib.request.urlopen", fake_urlopen)
        repo = repository_from_source("https://example.com")
        assert repo.list_available() == []
        assert repo.load("scrum") is None
