#!/usr/bin/env python3
"""
Tests for ModelAssetStore and the asset fetchers.
"""

import sys
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import MagicMock

import requests

# Add src and tests to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from fakes import CountingFetcher

from haarlens.core.config import DEFAULT_DETECTORS, AssetConfig
from haarlens.core.errors import FetchFailed, LoadError, RegistrationFailed
from haarlens.storage.asset_store import ModelAssetStore
from haarlens.storage.fetchers import (
    BUNDLED_CASCADES, DirectoryAssetFetcher, HttpAssetFetcher, OpenCVDataFetcher, build_fetcher
)


class Registry:
    """Records registrations; rejects duplicates like the real engine."""

    def __init__(self, fail_with=None):
        self.models = {}
        self.fail_with = fail_with

    def __call__(self, model_name, payload):
        if self.fail_with is not None:
            raise self.fail_with
        if model_name in self.models:
            raise FileExistsError(model_name)
        self.models[model_name] = payload


class TestModelAssetStore(unittest.TestCase):
    """Load-once caching."""

    def setUp(self):
        self.fetcher = CountingFetcher()
        self.registry = Registry()
        self.loaded = []
        self.store = ModelAssetStore(self.fetcher, self.registry, on_loaded=self.loaded.append)

    def test_loads_once(self):
        self.store.ensure_loaded("face")
        self.store.ensure_loaded("face")

        self.assertEqual(self.fetcher.count("face"), 1)
        self.assertEqual(self.store.fetch_count, 1)
        self.assertEqual(list(self.registry.models), ["haar_face.xml"])
        self.assertEqual([a.name for a in self.loaded], ["face"])
        self.assertTrue(self.store.is_loaded("face"))

    def test_asset_metadata(self):
        self.store.ensure_loaded("eye")
        asset = self.store.get("eye")
        self.assertEqual(asset.model_name, "haar_eye.xml")
        self.assertEqual(asset.size, len(self.fetcher.payload))
        self.assertEqual(self.store.loaded_names, ["eye"])

    def test_already_registered_is_success(self):
        """A model already in the library namespace is reused."""
        self.registry.models["haar_face.xml"] = b"older"
        self.store.ensure_loaded("face")
        self.assertTrue(self.store.is_loaded("face"))
        self.assertEqual(self.registry.models["haar_face.xml"], b"older")

    def test_fetch_error_wrapped(self):
        self.fetcher.failing.add("face")
        with self.assertRaises(FetchFailed) as ctx:
            self.store.ensure_loaded("face")
        self.assertEqual(ctx.exception.name, "face")
        self.assertIsInstance(ctx.exception.__cause__, ConnectionError)

    def test_load_error_passes_through(self):
        original = FetchFailed("face", "404")
        store = ModelAssetStore(MagicMock(side_effect=original), self.registry)
        with self.assertRaises(FetchFailed) as ctx:
            store.ensure_loaded("face")
        self.assertIs(ctx.exception, original)

    def test_empty_payload(self):
        store = ModelAssetStore(CountingFetcher(payload=b""), self.registry)
        with self.assertRaises(FetchFailed):
            store.ensure_loaded("face")
        self.assertEqual(self.registry.models, {})

    def test_registration_failure(self):
        store = ModelAssetStore(self.fetcher, Registry(fail_with=OSError("disk full")))
        with self.assertRaises(RegistrationFailed) as ctx:
            store.ensure_loaded("face")
        self.assertIsInstance(ctx.exception, LoadError)
        self.assertIn("disk full", ctx.exception.reason)
        self.assertFalse(store.is_loaded("face"))

    def test_failure_not_cached(self):
        self.fetcher.failing.add("face")
        with self.assertRaises(FetchFailed):
            self.store.ensure_loaded("face")
        self.assertFalse(self.store.is_loaded("face"))

        self.fetcher.failing.clear()
        self.store.ensure_loaded("face")

        self.assertEqual(self.fetcher.count("face"), 2)
        self.assertEqual(len(self.loaded), 1)

    def test_custom_model_name(self):
        store = ModelAssetStore(self.fetcher, self.registry, model_name=lambda n: f"{n}.cascade")
        store.ensure_loaded("smile")
        self.assertIn("smile.cascade", self.registry.models)

    def test_model_name_owned_by_one_asset(self):
        """A second asset resolving to a taken model name is refused unfetched."""
        store = ModelAssetStore(self.fetcher, self.registry, model_name=lambda n: "shared.xml")
        store.ensure_loaded("face")

        with self.assertRaises(RegistrationFailed) as ctx:
            store.ensure_loaded("eye")

        self.assertIn("face", ctx.exception.reason)
        self.assertEqual(self.fetcher.count("eye"), 0)
        self.assertEqual(store.fetch_count, 1)
        self.assertFalse(store.is_loaded("eye"))
        self.assertEqual(store.get("face").model_name, "shared.xml")

    def test_concurrent_loads_fetch_once(self):
        threads = [threading.Thread(target=self.store.ensure_loaded, args=("face",)) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(self.fetcher.count("face"), 1)


class TestHttpAssetFetcher(unittest.TestCase):
    """GET {base_url}/{file} via requests."""

    def _session(self, content=b"<xml/>", error=None):
        response = MagicMock()
        response.content = content
        if error is not None:
            response.raise_for_status.side_effect = error
        session = MagicMock()
        session.get.return_value = response
        return session

    def test_url(self):
        fetcher = HttpAssetFetcher("http://localhost:3000/", AssetConfig().model_name)
        self.assertEqual(fetcher.url_for("face"), "http://localhost:3000/haar_face.xml")

    def test_success(self):
        session = self._session()
        fetcher = HttpAssetFetcher("http://host", lambda n: f"{n}.xml", timeout=2.5, session=session)

        self.assertEqual(fetcher("eye"), b"<xml/>")
        session.get.assert_called_once_with("http://host/eye.xml", timeout=2.5)

    def test_http_error(self):
        session = self._session(error=requests.HTTPError("404 Not Found"))
        fetcher = HttpAssetFetcher("http://host", lambda n: f"{n}.xml", session=session)
        with self.assertRaises(FetchFailed) as ctx:
            fetcher("eye")
        self.assertIn("404", ctx.exception.reason)

    def test_connection_error(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("refused")
        fetcher = HttpAssetFetcher("http://host", lambda n: f"{n}.xml", session=session)
        with self.assertRaises(FetchFailed):
            fetcher("eye")


class TestLocalFetchers(unittest.TestCase):
    """Directory and bundled-cascade fetchers."""

    def test_directory(self):
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "haar_face.xml").write_bytes(b"payload")
            fetcher = DirectoryAssetFetcher(tmp, AssetConfig().model_name)
            self.assertEqual(fetcher("face"), b"payload")
            with self.assertRaises(FetchFailed):
                fetcher("eye")

    def test_bundled_unknown_name(self):
        with self.assertRaises(FetchFailed):
            OpenCVDataFetcher()("nose")

    def test_bundled_face(self):
        payload = OpenCVDataFetcher()("face")
        self.assertIn(b"opencv_storage", payload)

    def test_bundled_cascades_cover_presets(self):
        """Every bundled cascade backs one of the preset detectors."""
        self.assertEqual(set(BUNDLED_CASCADES), {d.name for d in DEFAULT_DETECTORS})
        for name in BUNDLED_CASCADES:
            self.assertIn(b"opencv_storage", OpenCVDataFetcher()(name))

    def test_bundled_custom_directory(self):
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "mine.xml").write_bytes(b"x")
            fetcher = OpenCVDataFetcher(tmp, {"face": "mine.xml"})
            self.assertEqual(fetcher("face"), b"x")

    def test_build_fetcher(self):
        self.assertIsInstance(build_fetcher(AssetConfig(source="http")), HttpAssetFetcher)
        self.assertIsInstance(build_fetcher(AssetConfig(source="directory")), DirectoryAssetFetcher)
        self.assertIsInstance(build_fetcher(AssetConfig()), OpenCVDataFetcher)


if __name__ == "__main__":
    unittest.main(verbosity=2)
