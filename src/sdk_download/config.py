import os
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional
from xml.etree import ElementTree as ET
from pydantic import BaseModel

NUGET_ORG_SOURCE = "https://api.nuget.org/v3/index.json"
SDK_PACKAGE_ID = "Skyline.DataMiner.Sdk"

class DownloaderSettings(BaseModel):
    """process-wide settings, read once at startup and handed to the downloader."""
    package_source: str = NUGET_ORG_SOURCE
    global_packages_folder: Path
    http_cache_folder: Path
    # zero means a cached artifact is always re-fetched from the feed
    http_cache_max_age: timedelta = timedelta(0)
    temp_folder: Optional[Path] = None
    timeout: float = 100.0

def get_user_config_file() -> Path:
    """location of the user-wide NuGet.Config."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "NuGet" / "NuGet.Config"
    return Path.home() / ".nuget" / "NuGet" / "NuGet.Config"

def read_config_value(config_file: Path, key: str) -> Optional[str]:
    """read a <config><add key=... value=.../></config> entry from a NuGet.Config file."""
    if not config_file.exists():
        return None

    try:
        root = ET.parse(config_file).getroot()
    except (ET.ParseError, OSError):
        # unreadable config is treated as absent
        return None

    for entry in root.findall("./config/add"):
        if entry.get("key", "").lower() == key.lower():
            return entry.get("value")
    return None

def get_global_packages_folder(config_file: Optional[Path] = None) -> Path:
    env_value = os.environ.get("NUGET_PACKAGES")
    if env_value:
        return Path(env_value).expanduser()

    config_file = config_file or get_user_config_file()
    configured = read_config_value(config_file, "globalPackagesFolder")
    if configured:
        path = Path(os.path.expandvars(configured)).expanduser()
        if not path.is_absolute():
            path = config_file.parent / path
        return path

    return Path.home() / ".nuget" / "packages"

def get_http_cache_folder() -> Path:
    env_value = os.environ.get("NUGET_HTTP_CACHE_PATH")
    if env_value:
        return Path(env_value).expanduser()

    if sys.platform == "win32":
        local_appdata = os.environ.get("LOCALAPPDATA")
        if local_appdata:
            return Path(local_appdata) / "NuGet" / "v3-cache"
    return Path.home() / ".local" / "share" / "NuGet" / "http-cache"

def load_default_settings(config_file: Optional[Path] = None) -> DownloaderSettings:
    """build settings from the environment and the user NuGet.Config."""
    return DownloaderSettings(
        global_packages_folder=get_global_packages_folder(config_file),
        http_cache_folder=get_http_cache_folder(),
    )
