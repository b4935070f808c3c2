"""shared fixtures for the test suite."""
import io
import sys
import zipfile
from pathlib import Path
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sdk_download.domain.models import DownloadResult, PackageIdentity, PackageMetadata
from sdk_download.registry.client import RegistryClient

SOURCE = "https://feed.test/v3/index.json"


def build_nupkg(package_id: str, version: str) -> bytes:
    """build a minimal .nupkg archive in memory."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("[Content_Types].xml", "<Types />")
        archive.writestr("_rels/.rels", "<Relationships />")
        archive.writestr("package/services/metadata/core-properties/abc.psmdcp", "<coreProperties />")
        archive.writestr(
            f"{package_id}.nuspec",
            f"<package><metadata><id>{package_id}</id><version>{version}</version></metadata></package>"
        )
        archive.writestr("lib/net6.0/Sdk.dll", b"\x00\x01binary")
        archive.writestr("README.md", "# sdk")
    return buffer.getvalue()


class FakeRegistry(RegistryClient):
    """
    registry double that records calls.

    failures lists what each download call should do before a successful one:
    an exception instance is raised, bytes are served instead of the package.
    """

    def __init__(self, versions, failures=None):
        self.versions = versions
        self.failures = list(failures or [])
        self.listed_ids = []
        self.downloads = []
        self.direct_dirs_existed = []
        self.streams = []
        self.closed = False

    async def list_versions(self, package_id, include_prerelease=False, include_unlisted=False):
        self.listed_ids.append(package_id)
        # deliberately unfiltered, the downloader must still pick a stable version
        return [
            PackageMetadata(identity=PackageIdentity(id=package_id, version=v), listed=listed)
            for v, listed in self.versions
        ]

    async def download(self, identity, context):
        self.downloads.append(context)
        if context.direct_download:
            self.direct_dirs_existed.append(context.direct_download_directory.is_dir())

        data = build_nupkg(identity.id, identity.version)
        if self.failures:
            failure = self.failures.pop(0)
            if isinstance(failure, BaseException):
                raise failure
            data = failure

        stream = io.BytesIO(data)
        self.streams.append(stream)
        return DownloadResult(identity, stream, SOURCE)

    async def aclose(self):
        self.closed = True


@pytest.fixture
def make_nupkg():
    return build_nupkg
