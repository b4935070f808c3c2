from typing import Iterable
from ..domain.models import PackageIdentity, PackageMetadata
from ..domain.errors import NoEligibleVersionError

def select_latest_stable(package_id: str, entries: Iterable[PackageMetadata]) -> PackageIdentity:
    """
    pick the highest listed, non-prerelease version.

    args:
        package_id: id the entries were queried for, used in the error message.
        entries: registry metadata entries.

    returns:
        identity of the highest eligible version.
    """
    eligible = [m for m in entries if m.is_stable_listed]
    if not eligible:
        raise NoEligibleVersionError(package_id)

    latest = max(eligible, key=lambda m: m.identity.parsed_version)
    return latest.identity
