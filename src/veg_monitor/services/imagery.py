"""Imagery and computation service backed by a STAC API.

``StacImageryService`` is the single entry point the monthly statistics
and frame builders use for imagery:

- ``search_month``: catalog query for one calendar month over the AOI
- ``load_scenes``: lazy reflectance and SCL stacks on a target grid
- ``compute``: evaluation of lazy arrays to numpy

Each call is retried on transient network or catalog errors with a linear
backoff. ``compute`` also holds a bounded semaphore, so no more than
``max_concurrent_aggregations`` evaluations run at once no matter how many
threads call it.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

import dask
import numpy as np
import requests
import xarray as xr
from pystac import Item
from pystac_client import Client
from pystac_client.exceptions import APIError
from rasterio.errors import RasterioIOError
from shapely.geometry.base import BaseGeometry

from ..config import MAX_CONCURRENT_AGGREGATIONS, MonitorConfig, RetryConfig
from ..config.models import (
    DEFAULT_MAX_CLOUD_COVER,
    DEFAULT_SCL_DILATION,
    DEFAULT_STAC_URL,
    DEFAULT_TILE_SCALE,
)
from ..sentinel2.cloud_masking import stack_scl
from ..sentinel2.grid import GridSpec
from ..sentinel2.stac_client import SceneStack, compute_chunk_size, fetch_month_items, stack_bands
from ..sentinel2.windows import month_label

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# Errors worth another attempt; anything else is fatal to the request
TRANSIENT_ERRORS: Tuple[type, ...] = (
    requests.ConnectionError,
    requests.Timeout,
    APIError,
    RasterioIOError,
)


class StacImageryService:
    """Sentinel-2 L2A search, load, and compute over a STAC API.

    ``scl_dilation`` is read by the quality filter applied to loaded scenes.
    """

    def __init__(
        self,
        stac_url: str = DEFAULT_STAC_URL,
        max_cloud_cover: float = DEFAULT_MAX_CLOUD_COVER,
        tile_scale: int = DEFAULT_TILE_SCALE,
        scl_dilation: int = DEFAULT_SCL_DILATION,
        retry: Optional[RetryConfig] = None,
        max_concurrent_aggregations: int = MAX_CONCURRENT_AGGREGATIONS,
        client: Optional[Client] = None,
    ) -> None:
        if max_concurrent_aggregations < 1:
            raise ValueError(
                f"max_concurrent_aggregations must be at least 1, got {max_concurrent_aggregations}"
            )
        self.stac_url = stac_url
        self.max_cloud_cover = max_cloud_cover
        self.tile_scale = tile_scale
        self.scl_dilation = scl_dilation
        self.retry = retry or RetryConfig()
        self._client = client
        self._client_lock = threading.Lock()
        self._aggregations = threading.BoundedSemaphore(max_concurrent_aggregations)

    @classmethod
    def from_config(cls, config: MonitorConfig) -> "StacImageryService":
        return cls(
            stac_url=config.stac_url,
            max_cloud_cover=config.max_cloud_cover,
            tile_scale=config.tile_scale,
            scl_dilation=config.scl_dilation,
            retry=config.retry,
            max_concurrent_aggregations=config.max_concurrent_aggregations,
        )

    @property
    def client(self) -> Client:
        with self._client_lock:
            if self._client is None:
                LOGGER.info("Opening STAC API %s", self.stac_url)
                self._client = self._with_retries(
                    f"open {self.stac_url}", lambda: Client.open(self.stac_url)
                )
            return self._client

    def _with_retries(self, action: str, func: Callable[[], T]) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return func()
            except TRANSIENT_ERRORS as exc:
                if attempt > self.retry.retries:
                    LOGGER.error("%s failed after %d attempt(s): %s", action, attempt, exc)
                    raise
                wait = self.retry.backoff_seconds * attempt
                LOGGER.warning(
                    "%s failed (attempt %d): %s; retrying in %.1f s",
                    action,
                    attempt,
                    exc,
                    wait,
                )
                time.sleep(wait)

    def search_month(self, geometry: BaseGeometry, month_start: date) -> List[Item]:
        """Distinct Sentinel-2 products over ``geometry`` in the month of ``month_start``."""
        client = self.client
        return self._with_retries(
            f"search {month_label(month_start)}",
            lambda: fetch_month_items(client, geometry, month_start, self.max_cloud_cover),
        )

    def load_scenes(
        self,
        items: Sequence[Item],
        grid: GridSpec,
        bands: Sequence[str],
    ) -> SceneStack:
        """Lazy reflectance and SCL stacks for ``items`` on ``grid``."""
        chunks = compute_chunk_size(grid, self.tile_scale)

        def _load() -> SceneStack:
            return SceneStack(
                reflectance=stack_bands(items, grid, bands, chunks=chunks),
                scl=stack_scl(items, grid, chunks=chunks),
            )

        return self._with_retries(f"load {len(items)} scene(s)", _load)

    def compute(self, *arrays: xr.DataArray) -> Tuple[np.ndarray, ...]:
        """Evaluate lazy arrays together and return them as numpy arrays."""
        with self._aggregations:
            computed = self._with_retries(
                f"compute {len(arrays)} array(s)", lambda: dask.compute(*arrays)
            )
        return tuple(np.asarray(value) for value in computed)


__all__ = [
    "TRANSIENT_ERRORS",
    "StacImageryService",
]
