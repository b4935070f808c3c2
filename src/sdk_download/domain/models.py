from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Optional
from pydantic import BaseModel, ConfigDict
from packaging.version import Version

class PackageIdentity(BaseModel):
    """a package id together with one exact version."""
    model_config = ConfigDict(frozen=True)

    id: str
    version: str

    @property
    def parsed_version(self) -> Version:
        return Version(self.version)

    @property
    def lower_id(self) -> str:
        return self.id.lower()

    @property
    def normalized_version(self) -> str:
        """
        version as nuget writes it in paths: lowercase, no build metadata,
        at least three release parts and no zero fourth part.
        """
        core = self.version.split("+", 1)[0]
        release, sep, label = core.partition("-")
        try:
            numbers = [int(part) for part in release.split(".")]
        except ValueError:
            return core.lower()

        numbers += [0] * (3 - len(numbers))
        if len(numbers) == 4 and numbers[3] == 0:
            numbers = numbers[:3]
        return f"{'.'.join(str(n) for n in numbers)}{sep}{label}".lower()

    @property
    def file_stem(self) -> str:
        return f"{self.lower_id}.{self.normalized_version}"

    def __str__(self) -> str:
        return f"{self.id}.{self.version}"

class PackageMetadata(BaseModel):
    """one version entry as published on the registry."""
    identity: PackageIdentity
    listed: bool = True

    @property
    def prerelease(self) -> bool:
        # semver 2 pre-release label, ignoring build metadata
        return "-" in self.identity.version.split("+", 1)[0]

    @property
    def is_stable_listed(self) -> bool:
        return self.listed and not self.prerelease

class InstallStatus(str, Enum):
    INSTALLED = "installed"
    ALREADY_PRESENT = "already_present"

class DownloadContext(BaseModel):
    """
    where and how a package artifact may be downloaded.

    a caching context reuses artifacts in a shared http cache folder as long as
    they are younger than max_age. a direct context writes into an isolated
    directory and never reads anything back from a cache.
    """
    cache_folder: Optional[Path] = None
    max_age: timedelta = timedelta(0)
    direct_download: bool = False
    direct_download_directory: Optional[Path] = None

    @classmethod
    def caching(cls, cache_folder: Path, max_age: timedelta = timedelta(0)) -> "DownloadContext":
        return cls(cache_folder=cache_folder, max_age=max_age)

    @classmethod
    def direct(cls, directory: Path) -> "DownloadContext":
        return cls(direct_download=True, direct_download_directory=directory)

class DownloadResult:
    """an open byte stream for one downloaded artifact. close it when done."""

    def __init__(self, identity: PackageIdentity, package_stream: BinaryIO, source: str):
        self.identity = identity
        self.package_stream = package_stream
        self.source = source

    def close(self):
        self.package_stream.close()

    def __enter__(self) -> "DownloadResult":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
