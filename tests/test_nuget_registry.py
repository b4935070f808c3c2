"""test suite for the NuGet v3 registry client."""
import asyncio
import io
import pytest
import sys
from datetime import timedelta
from pathlib import Path
import httpx
from rich.console import Console

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sdk_download.registry.nuget import NuGetRegistry
from sdk_download.domain.errors import PackageNotFoundError, SdkDownloadError
from sdk_download.domain.models import DownloadContext, PackageIdentity
from sdk_download.ui.progress import ProgressManager

SOURCE = "https://feed.test/v3/index.json"
SERVICE_INDEX = {
    "version": "3.0.0",
    "resources": [
        {"@id": "https://feed.test/v3/search", "@type": "SearchQueryService"},
        {"@id": "https://feed.test/v3/registration5-gz-semver2/", "@type": "RegistrationsBaseUrl/3.6.0"},
        {"@id": "https://feed.test/v3-flatcontainer/", "@type": "PackageBaseAddress/3.0.0"},
    ],
}


def leaf(version: str, listed: bool = True, published: str = "2024-03-01T10:00:00+00:00") -> dict:
    return {"catalogEntry": {"id": "X", "version": version, "listed": listed, "published": published}}


class FakeFeed:
    """in-memory NuGet feed served through httpx.MockTransport."""

    def __init__(self, registration=None, pages=None, packages=None):
        self.registration = registration
        self.pages = pages or {}
        self.packages = packages or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url == SOURCE:
            return httpx.Response(200, json=SERVICE_INDEX)
        if url == "https://feed.test/v3/registration5-gz-semver2/x/index.json" and self.registration is not None:
            return httpx.Response(200, json=self.registration)
        if url in self.pages:
            return httpx.Response(200, json=self.pages[url])
        if url in self.packages:
            package = self.packages[url]
            if isinstance(package, int):
                return httpx.Response(package)
            return httpx.Response(200, content=package)
        return httpx.Response(404)

    def count(self, url: str) -> int:
        return sum(1 for r in self.requests if r == url)


def make_registry(feed: FakeFeed) -> NuGetRegistry:
    client = httpx.AsyncClient(transport=httpx.MockTransport(feed))
    progress = ProgressManager(Console(file=io.StringIO()))
    return NuGetRegistry(SOURCE, client=client, progress_manager=progress)


class TestListVersions:
    @pytest.fixture
    def feed(self):
        return FakeFeed(registration={
            "count": 1,
            "items": [{
                "@id": "https://feed.test/v3/registration5-gz-semver2/x/index.json#page/1.0.0/3.0.0",
                "items": [
                    leaf("1.0.0"),
                    leaf("2.0.0"),
                    leaf("2.1.0-beta"),
                    leaf("3.0.0", listed=False),
                    leaf("2.5.0", published="1900-01-01T00:00:00+00:00"),
                ],
            }],
        })

    def test_stable_listed_only(self, feed):
        registry = make_registry(feed)
        entries = asyncio.run(registry.list_versions("X"))
        assert [e.identity.version for e in entries] == ["1.0.0", "2.0.0"]

    def test_include_everything(self, feed):
        registry = make_registry(feed)
        entries = asyncio.run(registry.list_versions("X", include_prerelease=True, include_unlisted=True))

        versions = {e.identity.version: e for e in entries}
        assert set(versions) == {"1.0.0", "2.0.0", "2.1.0-beta", "3.0.0", "2.5.0"}
        assert versions["2.1.0-beta"].prerelease
        assert not versions["3.0.0"].listed
        assert not versions["2.5.0"].listed

    def test_registration_uses_lowercase_id(self, feed):
        registry = make_registry(feed)
        asyncio.run(registry.list_versions("X"))
        assert "https://feed.test/v3/registration5-gz-semver2/x/index.json" in feed.requests

    def test_service_index_fetched_once(self, feed):
        registry = make_registry(feed)

        async def list_twice():
            await registry.list_versions("X")
            await registry.list_versions("X")

        asyncio.run(list_twice())
        assert feed.count(SOURCE) == 1

    def test_linked_pages_are_fetched(self):
        page_url = "https://feed.test/v3/registration5-gz-semver2/x/page/1.0.0/2.0.0.json"
        feed = FakeFeed(
            registration={"count": 2, "items": [
                {"@id": page_url, "lower": "1.0.0", "upper": "2.0.0"},
                {"@id": "inline", "items": [leaf("4.0.0")]},
            ]},
            pages={page_url: {"items": [leaf("1.0.0"), leaf("2.0.0")]}},
        )
        registry = make_registry(feed)

        entries = asyncio.run(registry.list_versions("X"))

        assert [e.identity.version for e in entries] == ["1.0.0", "2.0.0", "4.0.0"]
        assert feed.count(page_url) == 1

    def test_unknown_package(self):
        registry = make_registry(FakeFeed())
        assert asyncio.run(registry.list_versions("X")) == []

    def test_missing_resource(self):
        def handler(request):
            return httpx.Response(200, json={"version": "3.0.0", "resources": []})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        registry = NuGetRegistry(SOURCE, client=client, progress_manager=ProgressManager(Console(file=io.StringIO())))

        with pytest.raises(SdkDownloadError, match="RegistrationsBaseUrl"):
            asyncio.run(registry.list_versions("X"))

    def test_server_error_propagates(self):
        def handler(request):
            return httpx.Response(503)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        registry = NuGetRegistry(SOURCE, client=client, progress_manager=ProgressManager(Console(file=io.StringIO())))

        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(registry.list_versions("X"))


class TestDownload:
    PACKAGE_URL = "https://feed.test/v3-flatcontainer/x/2.0.0/x.2.0.0.nupkg"

    @pytest.fixture
    def identity(self):
        return PackageIdentity(id="X", version="2.0.0")

    def download(self, registry, identity, context) -> bytes:
        async def fetch():
            with await registry.download(identity, context) as result:
                assert result.source == SOURCE
                return result.package_stream.read()

        return asyncio.run(fetch())

    def test_direct_download(self, identity, tmp_path):
        feed = FakeFeed(packages={self.PACKAGE_URL: b"package-bytes"})
        registry = make_registry(feed)

        data = self.download(registry, identity, DownloadContext.direct(tmp_path / "direct"))

        assert data == b"package-bytes"
        assert (tmp_path / "direct" / "x.2.0.0.nupkg").read_bytes() == b"package-bytes"

    def test_caching_download_writes_http_cache(self, identity, tmp_path):
        feed = FakeFeed(packages={self.PACKAGE_URL: b"package-bytes"})
        registry = make_registry(feed)

        data = self.download(registry, identity, DownloadContext.caching(tmp_path / "http-cache"))

        assert data == b"package-bytes"
        cache_dir = tmp_path / "http-cache" / "x"
        assert [p.name for p in cache_dir.iterdir()] == ["x.2.0.0.nupkg"]

    def test_zero_max_age_always_refetches(self, identity, tmp_path):
        feed = FakeFeed(packages={self.PACKAGE_URL: b"package-bytes"})
        registry = make_registry(feed)
        context = DownloadContext.caching(tmp_path / "http-cache")

        self.download(registry, identity, context)
        self.download(registry, identity, context)

        assert feed.count(self.PACKAGE_URL) == 2

    def test_fresh_cached_artifact_is_reused(self, identity, tmp_path):
        feed = FakeFeed(packages={self.PACKAGE_URL: b"package-bytes"})
        registry = make_registry(feed)
        context = DownloadContext.caching(tmp_path / "http-cache", timedelta(hours=1))

        self.download(registry, identity, context)
        data = self.download(registry, identity, context)

        assert data == b"package-bytes"
        assert feed.count(self.PACKAGE_URL) == 1

    def test_missing_package(self, identity, tmp_path):
        registry = make_registry(FakeFeed())

        with pytest.raises(PackageNotFoundError):
            self.download(registry, identity, DownloadContext.caching(tmp_path / "http-cache"))

        assert list((tmp_path / "http-cache" / "x").iterdir()) == []

    def test_server_error_leaves_no_partial_file(self, identity, tmp_path):
        registry = make_registry(FakeFeed(packages={self.PACKAGE_URL: 500}))

        with pytest.raises(httpx.HTTPStatusError):
            self.download(registry, identity, DownloadContext.caching(tmp_path / "http-cache"))

        assert list((tmp_path / "http-cache" / "x").iterdir()) == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
