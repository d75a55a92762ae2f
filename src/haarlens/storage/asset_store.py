#!/usr/bin/env python3
"""
Model Asset Store
=================
Process-lifetime cache of cascade payloads.
Each name is fetched and registered at most once; failures are not cached.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional

from ..core.config import default_model_name
from ..core.errors import FetchFailed, LoadError, RegistrationFailed
from ..core.models import ModelAsset
from ..core.protocols import AssetFetcher, AssetRegistrar

logger = logging.getLogger(__name__)


class ModelAssetStore:
    """
    Lazily loads named classifier models into the vision library.

    Features:
    - At most one successful fetch per name
    - Duplicate registration in the library counts as success,
      unless another name of this store already owns that model
    - Injectable fetch/register so tests can count I/O
    - Thread-safe
    """

    def __init__(
        self,
        fetch: AssetFetcher,
        register: AssetRegistrar,
        model_name: Callable[[str], str] = default_model_name,
        on_loaded: Optional[Callable[[ModelAsset], None]] = None
    ):
        """
        Initialize store.

        Args:
            fetch: name -> payload bytes
            register: (model_name, payload) -> None, e.g. engine.register_model
            model_name: name -> model name inside the library namespace
            on_loaded: Called once per newly loaded asset
        """
        self._fetch = fetch
        self._register = register
        self._model_name = model_name
        self._on_loaded = on_loaded

        self._assets: Dict[str, ModelAsset] = {}
        self._owners: Dict[str, str] = {}    # model name -> asset name
        self._lock = threading.Lock()
        self.fetch_count = 0

    def ensure_loaded(self, name: str) -> None:
        """
        Make the named model available to classifiers.

        Raises:
            FetchFailed: payload could not be retrieved
            RegistrationFailed: library rejected the payload, or the model
                name already holds another asset of this store
        """
        with self._lock:
            if name in self._assets:
                return
            asset = self._load(name)
            self._assets[name] = asset
            self._owners[asset.model_name] = name

        logger.info(f"Loaded model asset {name} as {asset.model_name} ({asset.size} bytes)")
        if self._on_loaded:
            self._on_loaded(asset)

    def _load(self, name: str) -> ModelAsset:
        model_name = self._model_name(name)
        owner = self._owners.get(model_name)
        if owner is not None:
            raise RegistrationFailed(name, f"model {model_name} already holds the {owner} asset")

        self.fetch_count += 1
        try:
            payload = self._fetch(name)
        except LoadError:
            raise
        except Exception as e:
            raise FetchFailed(name, f"fetch raised: {e}") from e
        if not payload:
            raise FetchFailed(name, "empty payload")

        try:
            self._register(model_name, bytes(payload))
        except FileExistsError:
            logger.debug(f"Model {model_name} already registered, reusing it")
        except Exception as e:
            raise RegistrationFailed(name, f"registration of {model_name} failed: {e}") from e

        return ModelAsset(name=name, model_name=model_name, payload=bytes(payload))

    def is_loaded(self, name: str) -> bool:
        with self._lock:
            return name in self._assets

    def get(self, name: str) -> Optional[ModelAsset]:
        with self._lock:
            return self._assets.get(name)

    @property
    def loaded_names(self) -> List[str]:
        with self._lock:
            return list(self._assets)
