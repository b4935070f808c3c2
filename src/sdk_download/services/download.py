import logging
import shutil
import tempfile
from pathlib import Path
from typing import Optional
from ..config import DownloaderSettings, SDK_PACKAGE_ID
from ..cache.global_packages import GlobalPackagesFolder
from ..domain.errors import DownloadFailedError, InstallFailedError
from ..domain.models import DownloadContext, InstallStatus, PackageIdentity
from ..registry.client import RegistryClient
from ..registry.nuget import NuGetRegistry
from ..resolution.resolver import select_latest_stable
from ..ui.progress import ProgressManager

logger = logging.getLogger(__name__)


class SdkDownloader:
    """installs the latest stable DataMiner SDK into the global packages folder."""

    def __init__(
        self,
        settings: DownloaderSettings,
        registry_client: Optional[RegistryClient] = None,
        cache: Optional[GlobalPackagesFolder] = None,
        progress_manager: Optional[ProgressManager] = None
    ):
        self.settings = settings
        self.progress_manager = progress_manager or ProgressManager()
        self.registry_client = registry_client or NuGetRegistry(
            settings.package_source,
            timeout=settings.timeout,
            progress_manager=self.progress_manager
        )
        self.cache = cache or GlobalPackagesFolder(settings.global_packages_folder)

    @property
    def root_path(self) -> Path:
        """the global packages folder packages are installed into."""
        return self.settings.global_packages_folder

    async def add_or_update_sdk(self) -> PackageIdentity:
        """make sure the latest stable Skyline.DataMiner.Sdk is in the local cache."""
        return await self.ensure_present(SDK_PACKAGE_ID)

    async def ensure_present(self, package_id: str) -> PackageIdentity:
        """
        resolve the latest listed stable version of a package and install it if missing.

        args:
            package_id: id of the package on the feed

        returns:
            identity of the resolved version, present in the cache on return
        """
        with self.progress_manager.spinner(f"resolving {package_id}"):
            entries = await self.registry_client.list_versions(
                package_id,
                include_prerelease=False,
                include_unlisted=False
            )

        identity = select_latest_stable(package_id, entries)
        logger.debug("Latest stable version of %s is %s", package_id, identity.version)

        await self.install_if_not_found(identity)
        return identity

    async def install_if_not_found(self, identity: PackageIdentity) -> InstallStatus:
        """
        install a package unless it is already in the cache.

        the first attempt goes through the shared http cache. if it fails for
        any reason, a single retry downloads into a fresh temporary directory
        which is removed afterwards.
        """
        if self.cache.exists(identity):
            logger.info(f"OK - {identity} was already present in local cache")
            return InstallStatus.ALREADY_PRESENT

        context = DownloadContext.caching(
            self.settings.http_cache_folder,
            self.settings.http_cache_max_age
        )
        try:
            status = await self._download_and_add(identity, context)
        except DownloadFailedError as e:
            logger.debug("Retrying to add package without caching: %s", e)
            status = await self._install_without_cache(identity, e)

        logger.info(f"OK - {identity} was installed to local cache.")
        return status

    async def _install_without_cache(self, identity: PackageIdentity, primary_error: DownloadFailedError) -> InstallStatus:
        try:
            if self.settings.temp_folder:
                self.settings.temp_folder.mkdir(parents=True, exist_ok=True)
            temp_dir = Path(tempfile.mkdtemp(prefix="sdk-download-", dir=self.settings.temp_folder))
        except OSError as e:
            raise InstallFailedError(identity, primary_error.cause, e) from e

        try:
            return await self._download_and_add(identity, DownloadContext.direct(temp_dir))
        except DownloadFailedError as e:
            raise InstallFailedError(identity, primary_error.cause, e.cause) from e.cause
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)
            if temp_dir.exists():
                logger.warning("Could not remove temporary directory %s", temp_dir)

    async def _download_and_add(self, identity: PackageIdentity, context: DownloadContext) -> InstallStatus:
        try:
            with await self.registry_client.download(identity, context) as result:
                status = await self.cache.add_package(result.source, identity, result.package_stream)
        except Exception as e:
            raise DownloadFailedError(identity, e) from e

        logger.debug(
            f"Finished installing package {identity.id} {identity.version} "
            f"with status: {status.value}"
        )
        return status

    async def close(self):
        await self.registry_client.aclose()
