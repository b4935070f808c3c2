import logging
import os
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Sequence
import httpx
from .client import RegistryClient
from ..domain.errors import PackageNotFoundError, SdkDownloadError
from ..domain.models import DownloadContext, DownloadResult, PackageIdentity, PackageMetadata
from ..ui.progress import ProgressManager

logger = logging.getLogger(__name__)

REGISTRATION_TYPES = (
    "RegistrationsBaseUrl/3.6.0",
    "RegistrationsBaseUrl/3.4.0",
    "RegistrationsBaseUrl",
)
PACKAGE_BASE_ADDRESS_TYPES = ("PackageBaseAddress/3.0.0",)

class NuGetRegistry(RegistryClient):
    """client for a NuGet v3 feed, limited to version listing and package download."""

    def __init__(
        self,
        source: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 100.0,
        progress_manager: Optional[ProgressManager] = None
    ):
        self.source = source
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self.progress_manager = progress_manager or ProgressManager()
        self._index_cache: Optional[dict] = None

    async def list_versions(
        self,
        package_id: str,
        include_prerelease: bool = False,
        include_unlisted: bool = False
    ) -> List[PackageMetadata]:
        base_url = await self._get_resource_url(REGISTRATION_TYPES)
        registration = await self._get_json(f"{base_url.rstrip('/')}/{package_id.lower()}/index.json")
        if registration is None:
            # unknown ids have no registration, same as no versions
            return []

        entries = []
        for page in registration.get("items", []):
            leaves = page.get("items")
            if leaves is None:
                # large registrations link their pages instead of inlining them
                page_data = await self._get_json(page["@id"])
                leaves = (page_data or {}).get("items", [])

            for leaf in leaves:
                metadata = self._parse_catalog_entry(package_id, leaf.get("catalogEntry", {}))
                if metadata is None:
                    continue
                if not include_prerelease and metadata.prerelease:
                    continue
                if not include_unlisted and not metadata.listed:
                    continue
                entries.append(metadata)

        logger.debug("Found %d matching versions of %s on %s", len(entries), package_id, self.source)
        return entries

    async def download(self, identity: PackageIdentity, context: DownloadContext) -> DownloadResult:
        base_url = await self._get_resource_url(PACKAGE_BASE_ADDRESS_TYPES)
        file_name = f"{identity.file_stem}.nupkg"
        url = f"{base_url.rstrip('/')}/{identity.lower_id}/{identity.normalized_version}/{file_name}"

        if context.direct_download:
            directory = context.direct_download_directory
            directory.mkdir(parents=True, exist_ok=True)
            target = directory / file_name
            await self._fetch_to_file(url, target, identity)
            return DownloadResult(identity, open(target, "rb"), self.source)

        target = context.cache_folder / identity.lower_id / file_name
        if self._is_fresh(target, context.max_age):
            logger.debug("Using cached artifact %s", target)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            # write next to the final name so concurrent readers never see a partial file
            partial = target.with_name(f"{file_name}.{uuid.uuid4().hex}.tmp")
            try:
                await self._fetch_to_file(url, partial, identity)
                os.replace(partial, target)
            finally:
                if partial.exists():
                    partial.unlink()

        return DownloadResult(identity, open(target, "rb"), self.source)

    async def aclose(self):
        await self.client.aclose()

    def _parse_catalog_entry(self, package_id: str, entry: dict) -> Optional[PackageMetadata]:
        version = entry.get("version")
        if not version:
            return None

        listed = entry.get("listed", True)
        # the feed marks unlisted packages with a 1900 publish date
        if str(entry.get("published", "")).startswith("1900"):
            listed = False

        identity = PackageIdentity(id=entry.get("id") or package_id, version=version)
        return PackageMetadata(identity=identity, listed=listed)

    @staticmethod
    def _is_fresh(path: Path, max_age: timedelta) -> bool:
        if max_age <= timedelta(0) or not path.exists():
            return False
        modified = datetime.fromtimestamp(path.stat().st_mtime)
        return datetime.now() - modified < max_age

    async def _fetch_to_file(self, url: str, target: Path, identity: PackageIdentity):
        logger.debug("GET %s", url)
        with self.progress_manager.download_progress() as progress:
            task_id = progress.add_task(f"downloading {identity}", total=None)
            async with self.client.stream("GET", url) as response:
                if response.status_code == 404:
                    raise PackageNotFoundError(identity.id, identity.version)
                response.raise_for_status()

                if "content-length" in response.headers:
                    progress.update(task_id, total=int(response.headers["content-length"]))

                downloaded = 0
                with open(target, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
                        downloaded += len(chunk)
                        progress.update(task_id, completed=downloaded)

        logger.debug("Downloaded %s (%d bytes) to %s", identity, downloaded, target)

    async def _get_json(self, url: str) -> Optional[dict]:
        logger.debug("GET %s", url)
        response = await self.client.get(url)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    async def _get_index(self) -> dict:
        if self._index_cache is not None:
            return self._index_cache

        response = await self.client.get(self.source)
        response.raise_for_status()
        self._index_cache = response.json()
        return self._index_cache

    async def _get_resource_url(self, resource_types: Sequence[str]) -> str:
        index = await self._get_index()
        resources = index.get("resources", [])
        for resource_type in resource_types:
            for resource in resources:
                if resource.get("@type") == resource_type and resource.get("@id"):
                    return resource["@id"]

        raise SdkDownloadError(f"Feed {self.source} does not provide a {resource_types[0]} resource")
