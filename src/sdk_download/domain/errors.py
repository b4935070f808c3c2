from typing import Optional

class SdkDownloadError(Exception):
    """base class for exceptions in the SDK downloader."""
    pass

class NoEligibleVersionError(SdkDownloadError):
    """raised when the registry has no listed, stable version of a package."""
    def __init__(self, package_id: str):
        self.package_id = package_id
        super().__init__(f"No listed stable version found for package '{package_id}'")

class PackageNotFoundError(SdkDownloadError):
    """raised when the feed has no such package or version."""
    def __init__(self, package_id: str, version: Optional[str] = None):
        self.package_id = package_id
        self.version = version
        target = f"{package_id} {version}" if version else package_id
        super().__init__(f"Package '{target}' was not found on the feed")

class InvalidPackageError(SdkDownloadError):
    """raised when a downloaded stream is not a usable package archive."""
    def __init__(self, identity, reason: str):
        self.identity = identity
        self.reason = reason
        super().__init__(f"Invalid package {identity}: {reason}")

class DownloadFailedError(SdkDownloadError):
    """raised when the cached download/install path fails. triggers the fallback."""
    def __init__(self, identity, cause: Exception):
        self.identity = identity
        self.cause = cause
        super().__init__(f"Failed to download {identity}: {cause}")

class InstallFailedError(SdkDownloadError):
    """raised when both the cached and the uncached install attempts failed."""
    def __init__(self, identity, primary_error: Exception, fallback_error: Exception):
        self.identity = identity
        self.primary_error = primary_error
        self.fallback_error = fallback_error
        super().__init__(
            f"Failed to install {identity}: {fallback_error} (first attempt: {primary_error})"
        )
