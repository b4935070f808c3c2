import asyncio
import base64
import hashlib
import json
import logging
import os
import shutil
import threading
import uuid
import zipfile
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional
from ..domain.errors import InvalidPackageError, SdkDownloadError
from ..domain.models import InstallStatus, PackageIdentity

logger = logging.getLogger(__name__)

METADATA_FILE = ".nupkg.metadata"
# packaging parts of the archive that are not package content
EXCLUDED_PARTS = ("[Content_Types].xml",)
EXCLUDED_DIRS = ("_rels/", "package/")

class GlobalPackagesFolder:
    """
    the local package cache, laid out as {root}/{id}/{version}/ with lowercase names.

    a package counts as present once its .nupkg.metadata marker exists. the
    marker is written last, inside a staging directory that is renamed into
    place, so an interrupted add never leaves a package that looks installed.
    """

    def __init__(self, root: Path):
        self.root = root

    def get_install_path(self, identity: PackageIdentity) -> Path:
        return self.root / identity.lower_id / identity.normalized_version

    def exists(self, identity: PackageIdentity) -> bool:
        return (self.get_install_path(identity) / METADATA_FILE).exists()

    async def add_package(self, source: str, identity: PackageIdentity, stream: BinaryIO) -> InstallStatus:
        """
        extract a package stream into the cache.

        args:
            source: feed the package came from, recorded in the metadata file.
            identity: package being added.
            stream: readable binary stream of the .nupkg.

        returns:
            INSTALLED, or ALREADY_PRESENT if another process finished first.
        """
        loop = asyncio.get_running_loop()
        cancelled = threading.Event()
        try:
            return await loop.run_in_executor(None, self._add_package, source, identity, stream, cancelled)
        except asyncio.CancelledError:
            # the worker thread keeps running; stop it before it publishes the package
            cancelled.set()
            raise

    def _add_package(
        self,
        source: str,
        identity: PackageIdentity,
        stream: BinaryIO,
        cancelled: Optional[threading.Event] = None
    ) -> InstallStatus:
        if self.exists(identity):
            return InstallStatus.ALREADY_PRESENT

        target = self.get_install_path(identity)
        target.parent.mkdir(parents=True, exist_ok=True)
        staging = target.parent / f".{identity.normalized_version}.{uuid.uuid4().hex}"
        staging.mkdir()

        try:
            nupkg_path = staging / f"{identity.file_stem}.nupkg"
            with open(nupkg_path, "wb") as f:
                shutil.copyfileobj(stream, f)

            if not zipfile.is_zipfile(nupkg_path):
                raise InvalidPackageError(identity, "not a zip archive")

            with open(nupkg_path, "rb") as f:
                content_hash = base64.b64encode(hashlib.sha512(f.read()).digest()).decode("ascii")

            self._extract(identity, nupkg_path, staging)
            (staging / f"{identity.file_stem}.nupkg.sha512").write_text(content_hash)

            metadata = {"version": 2, "contentHash": content_hash, "source": source}
            (staging / METADATA_FILE).write_text(json.dumps(metadata, indent=2))

            if cancelled is not None and cancelled.is_set():
                raise SdkDownloadError(f"Adding {identity} to the local cache was cancelled")

            if target.exists() and not self.exists(identity):
                # leftover of an interrupted install
                shutil.rmtree(target)
            try:
                os.rename(staging, target)
            except OSError:
                if self.exists(identity):
                    return InstallStatus.ALREADY_PRESENT
                raise
        finally:
            if staging.exists():
                shutil.rmtree(staging)

        logger.debug("Extracted %s to %s", identity, target)
        return InstallStatus.INSTALLED

    def _extract(self, identity: PackageIdentity, nupkg_path: Path, destination: Path):
        with zipfile.ZipFile(nupkg_path) as archive:
            nuspec_written = False
            for member in archive.infolist():
                name = member.filename
                if member.is_dir() or name in EXCLUDED_PARTS or name.startswith(EXCLUDED_DIRS):
                    continue

                relative = PurePosixPath(name)
                # drive letters and backslashes would leave the folder on windows
                if (
                    relative.is_absolute()
                    or ".." in relative.parts
                    or any(":" in part or "\\" in part for part in relative.parts)
                ):
                    raise InvalidPackageError(identity, f"entry '{name}' escapes the package folder")

                # the manifest sits at the archive root and is stored under the lowercase id
                if len(relative.parts) == 1 and relative.suffix.lower() == ".nuspec":
                    out_path = destination / f"{identity.lower_id}.nuspec"
                    nuspec_written = True
                else:
                    out_path = destination.joinpath(*relative.parts)
                    if not out_path.resolve().is_relative_to(destination.resolve()):
                        raise InvalidPackageError(identity, f"entry '{name}' escapes the package folder")

                out_path.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(member) as src, open(out_path, "wb") as dst:
                    shutil.copyfileobj(src, dst)

            if not nuspec_written:
                raise InvalidPackageError(identity, "archive has no .nuspec manifest")
