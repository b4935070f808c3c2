from abc import ABC, abstractmethod
from typing import List
from ..domain.models import DownloadContext, DownloadResult, PackageIdentity, PackageMetadata

class RegistryClient(ABC):
    @abstractmethod
    async def list_versions(
        self,
        package_id: str,
        include_prerelease: bool = False,
        include_unlisted: bool = False
    ) -> List[PackageMetadata]:
        """Get the published version entries of a package."""
        pass

    @abstractmethod
    async def download(self, identity: PackageIdentity, context: DownloadContext) -> DownloadResult:
        """Download the package artifact and return an open stream to it."""
        pass

    async def aclose(self):
        """Release any network resources held by the client."""
        pass
