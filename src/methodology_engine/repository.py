"""Load and cache methodology definitions.

Definitions come from two kinds of documents reached through a fetcher:

- ``manifest.json``: ``{"methodologies": [{id, name, title, domains, tags, complexity}, ...]}``
- ``<id>.methodology.json``: one full methodology per file.

A failing manifest fetch is non-fatal (an empty list is returned); a failing
methodology fetch means the methodology is not found. Loaded documents are
cached on the repository until :meth:`MethodologyRepository.clear` is called.
"""

from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol

from loguru import logger

from .constants import HTTP_FETCH_TIMEOUT_SECONDS, MANIFEST_FILE, METHODOLOGY_FILE_SUFFIX
from .errors import MethodologyNotFoundError, MethodologyValidationError
from .io_utils import YAML_SUFFIXES, _load_document
from .schema import Methodology, MethodologyMetadata, parse_metadata, parse_methodology


class FetchError(Exception):
    """A document could not be retrieved from a methodology source."""


class MethodologyFetcher(Protocol):
    def fetch(self, name: str) -> Any:
        """Return the parsed document called *name*; raise on any failure."""
        ...


# ---------------------------------------------------------------------------
# Fetchers
# ---------------------------------------------------------------------------

class DirectoryFetcher:
    """Read documents from a local directory.

    A JSON name falls back to a ``.yaml``/``.yml`` sibling when the JSON file
    does not exist, so methodologies may be authored in either format.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _candidates(self, name: str) -> list[Path]:
        path = self.root / name
        candidates = [path]
        if path.suffix == ".json":
            stem = path.name[: -len(".json")]
            candidates.extend(path.with_name(stem + suffix) for suffix in sorted(YAML_SUFFIXES))
        return candidates

    def fetch(self, name: str) -> Any:
        for candidate in self._candidates(name):
            if candidate.is_file():
                try:
                    return _load_document(candidate)
                except Exception as exc:
                    raise FetchError(f"{candidate}: {exc.__class__.__name__}: {exc}") from exc
        raise FetchError(f"{self.root / name}: not found")


class HttpFetcher:
    """Fetch JSON documents relative to a base URL."""

    def __init__(self, base_url: str, timeout: float = HTTP_FETCH_TIMEOUT_SECONDS) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout

    def fetch(self, name: str) -> Any:
        url = urllib.parse.urljoin(self.base_url, urllib.parse.quote(name))
        req = urllib.request.Request(url, method="GET", headers={"Accept": "application/json"})
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as exc:
            raise FetchError(f"{url}: HTTP error: {exc.code} {exc.reason}") from exc
        except urllib.error.URLError as exc:
            raise FetchError(f"{url}: URL error: {exc.reason}") from exc
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise FetchError(f"{url}: did not return JSON") from exc


class StaticFetcher:
    """Serve documents from memory (tests, embedded definitions)."""

    def __init__(self, documents: Mapping[str, Any]) -> None:
        self.documents = dict(documents)
        self.calls: list[str] = []

    def fetch(self, name: str) -> Any:
        self.calls.append(name)
        if name not in self.documents:
            raise FetchError(f"{name}: not found")
        return self.documents[name]


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

def methodology_filename(methodology_id: str) -> str:
    return f"{methodology_id}{METHODOLOGY_FILE_SUFFIX}"


class MethodologyRepository:
    """Cache of methodology definitions and the searchable manifest."""

    def __init__(self, fetcher: MethodologyFetcher) -> None:
        self.fetcher = fetcher
        self._cache: dict[str, Methodology] = {}
        self._manifest: Optional[list[MethodologyMetadata]] = None

    # -- manifest --------------------------------------------------------------

    def load_manifest(self) -> list[MethodologyMetadata]:
        """Return manifest entries; an unavailable manifest yields ``[]``."""
        if self._manifest is not None:
            return list(self._manifest)

        try:
            data = self.fetcher.fetch(MANIFEST_FILE)
        except Exception as exc:
            logger.error("Failed to load methodology manifest: {}", exc)
            return []

        raw_entries = data.get("methodologies") if isinstance(data, dict) else None
        if not isinstance(raw_entries, list):
            logger.error("Methodology manifest has no 'methodologies' list")
            return []

        entries: list[MethodologyMetadata] = []
        for index, raw in enumerate(raw_entries):
            try:
                entries.append(parse_metadata(raw, source=f"{MANIFEST_FILE}[{index}]"))
            except MethodologyValidationError as exc:
                logger.warning("Skipping manifest entry: {}", exc)

        self._manifest = entries
        logger.debug("Loaded methodology manifest with {} entries", len(entries))
        return list(entries)

    def list_available(self) -> list[MethodologyMetadata]:
        return self.load_manifest()

    def search(self, query: str, lang: Optional[str] = None) -> list[MethodologyMetadata]:
        """Case-insensitive substring match on the (localized) name or id."""
        needle = query.strip().lower()
        if not needle:
            return self.load_manifest()
        return [
            meta for meta in self.load_manifest()
            if needle in meta.localized_name(lang).lower() or needle in meta.id.lower()
        ]

    # -- methodologies ---------------------------------------------------------

    def load(self, methodology_id: str) -> Optional[Methodology]:
        """Return the methodology, or ``None`` if it cannot be fetched or is invalid."""
        cached = self._cache.get(methodology_id)
        if cached is not None:
            return cached

        name = methodology_filename(methodology_id)
        try:
            data = self.fetcher.fetch(name)
        except Exception as exc:
            logger.error("Failed to load methodology {}: {}", methodology_id, exc)
            return None

        try:
            methodology = parse_methodology(data, source=name)
        except MethodologyValidationError as exc:
            logger.error("Rejected invalid methodology {}: {}", methodology_id, exc)
            return None

        if methodology.id != methodology_id:
            logger.warning(
                "Methodology file {} declares id '{}'", name, methodology.id,
            )
        self._cache[methodology_id] = methodology
        return methodology

    def get(self, methodology_id: str) -> Methodology:
        methodology = self.load(methodology_id)
        if methodology is None:
            raise MethodologyNotFoundError(methodology_id)
        return methodology

    def is_cached(self, methodology_id: str) -> bool:
        return methodology_id in self._cache

    def clear(self) -> None:
        """Drop every cached methodology and the cached manifest."""
        self._cache.clear()
        self._manifest = None


def repository_from_source(source: str) -> MethodologyRepository:
    """Build a repository for a directory path or an ``http(s)://`` base URL."""
    if source.startswith(("http://", "https://")):
        return MethodologyRepository(HttpFetcher(source))
    return MethodologyRepository(DirectoryFetcher(Path(source).expanduser()))
