#!/usr/bin/env python3
"""
Asset Fetchers
==============
Ways to get a named cascade payload as raw bytes:
- HTTP static location (e.g. the web root serving /haar_face.xml)
- Local directory
- Cascades bundled with opencv-python (cv2.data.haarcascades)
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Optional

import requests

from ..core.config import AssetConfig
from ..core.errors import FetchFailed
from ..core.protocols import AssetFetcher

logger = logging.getLogger(__name__)


# Detector name -> file shipped in cv2.data.haarcascades
BUNDLED_CASCADES: Dict[str, str] = {
    "face": "haarcascade_frontalface_default.xml",
    "eye": "haarcascade_eye.xml",
    "smile": "haarcascade_smile.xml",
}


class HttpAssetFetcher:
    """Fetch payloads from a static HTTP location: GET {base_url}/{file}."""

    def __init__(
        self,
        base_url: str,
        resolve: Callable[[str], str],
        timeout: float = 10.0,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip("/")
        self._resolve = resolve
        self.timeout = timeout
        self._http = session or requests

    def url_for(self, name: str) -> str:
        return f"{self.base_url}/{self._resolve(name)}"

    def __call__(self, name: str) -> bytes:
        url = self.url_for(name)
        logger.debug(f"GET {url}")
        try:
            response = self._http.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchFailed(name, f"GET {url} failed: {e}") from e
        return response.content


class DirectoryAssetFetcher:
    """Read payloads from a local folder."""

    def __init__(self, directory: str, resolve: Callable[[str], str]):
        self.directory = Path(directory)
        self._resolve = resolve

    def path_for(self, name: str) -> Path:
        return self.directory / self._resolve(name)

    def __call__(self, name: str) -> bytes:
        path = self.path_for(name)
        try:
            return path.read_bytes()
        except OSError as e:
            raise FetchFailed(name, f"cannot read {path}: {e}") from e


class OpenCVDataFetcher:
    """Read the Haar cascades that ship with opencv-python."""

    def __init__(self, directory: Optional[str] = None, cascades: Optional[Dict[str, str]] = None):
        if directory is None:
            import cv2
            directory = cv2.data.haarcascades
        self.directory = Path(directory)
        self.cascades = dict(cascades or BUNDLED_CASCADES)

    def __call__(self, name: str) -> bytes:
        filename = self.cascades.get(name)
        if filename is None:
            raise FetchFailed(name, f"no bundled cascade (known: {sorted(self.cascades)})")
        path = self.directory / filename
        try:
            return path.read_bytes()
        except OSError as e:
            raise FetchFailed(name, f"cannot read {path}: {e}") from e


def build_fetcher(config: AssetConfig) -> AssetFetcher:
    """Create the fetcher for config.source."""
    if config.source == "http":
        return HttpAssetFetcher(config.base_url, config.model_name, timeout=config.timeout)
    if config.source == "directory":
        return DirectoryAssetFetcher(config.directory, config.model_name)
    return OpenCVDataFetcher()
