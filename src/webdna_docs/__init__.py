"""WebDNA documentation lookup server."""

from .config import CacheConfig, EngineConfig, ScraperConfig, Settings, get_package_version

__version__ = get_package_version()

__all__ = ["CacheConfig", "EngineConfig", "ScraperConfig", "Settings", "__version__"]
