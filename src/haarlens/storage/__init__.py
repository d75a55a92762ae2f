# Storage Layer - Model asset cache and fetchers
from .asset_store import ModelAssetStore
from .fetchers import (
    BUNDLED_CASCADES,
    HttpAssetFetcher,
    DirectoryAssetFetcher,
    OpenCVDataFetcher,
    build_fetcher,
)

__all__ = [
    "ModelAssetStore",
    "BUNDLED_CASCADES",
    "HttpAssetFetcher",
    "DirectoryAssetFetcher",
    "OpenCVDataFetcher",
    "build_fetcher",
]
