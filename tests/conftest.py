"""Shared test fixtures for veg_monitor tests."""

import threading
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence

import numpy as np
import pystac
import pytest
import xarray as xr
from shapely.geometry import box, mapping

from veg_monitor.sentinel2.grid import GridSpec, grid_for_geometry
from veg_monitor.sentinel2.stac_client import SceneStack, product_id
from veg_monitor.sentinel2.windows import month_label

# Small square inside the Complejo Pajarales sector (~550 m a side)
AOI_BOUNDS = (-74.590, 10.820, -74.585, 10.825)


@pytest.fixture
def aoi_geometry():
    """WGS84 polygon near the Cienaga Grande de Santa Marta."""
    return box(*AOI_BOUNDS)


@pytest.fixture
def analysis_grid_30m(aoi_geometry) -> GridSpec:
    """30 m UTM grid covering the AOI."""
    return grid_for_geometry(aoi_geometry, 30.0)


def make_item(
    item_id: str,
    when: datetime,
    product_uri: Optional[str] = None,
    datatake_id: Optional[str] = None,
    cloud_cover: float = 10.0,
) -> pystac.Item:
    """Build a Sentinel-2 L2A-like STAC item with the assets the pipeline reads."""
    properties = {"eo:cloud_cover": cloud_cover, "platform": "sentinel-2a"}
    if product_uri is not None:
        properties["s2:product_uri"] = product_uri
    if datatake_id is not None:
        properties["s2:datatake_id"] = datatake_id
    item = pystac.Item(
        id=item_id,
        geometry=mapping(box(*AOI_BOUNDS)),
        bbox=list(AOI_BOUNDS),
        datetime=when,
        properties=properties,
    )
    for asset in ("blue", "green", "red", "nir", "scl"):
        item.add_asset(asset, pystac.Asset(href=f"https://example.com/{item_id}/{asset}.tif"))
    return item


@pytest.fixture
def item_factory():
    """Factory for STAC items (see ``make_item``)."""
    return make_item


class FakeImageryService:
    """In-memory imagery service.

    Each scene is described by constant band values:
    ``{"red": .., "nir": .., "green": .., "blue": .., "scl": .., "coverage": ..}``.
    ``coverage`` is the fraction of grid columns (from the left) inside the
    scene footprint; outside it reflectance and SCL are 0, as stackstac
    fills them.
    """

    BAND_KEYS = {"B02": "blue", "B03": "green", "B04": "red", "B08": "nir"}

    def __init__(
        self,
        items_by_month: Dict[str, List[pystac.Item]],
        scene_values: Dict[str, dict],
        failing_months: Sequence[str] = (),
        scl_dilation: int = 0,
    ) -> None:
        self.items_by_month = items_by_month
        self.scene_values = scene_values
        self.failing_months = set(failing_months)
        self.scl_dilation = scl_dilation
        self.searched: List[str] = []
        self.loaded: List[List[str]] = []
        self.compute_calls = 0
        self.max_in_flight = 0
        self._in_flight = 0
        self._lock = threading.Lock()

    def search_month(self, geometry, month_start: date) -> List[pystac.Item]:
        label = month_label(month_start)
        with self._lock:
            self.searched.append(label)
        if label in self.failing_months:
            raise RuntimeError(f"catalog unavailable for {label}")
        return list(self.items_by_month.get(label, []))

    def _values(self, item: pystac.Item) -> dict:
        values = {"red": 0.05, "nir": 0.3, "green": 0.06, "blue": 0.04, "scl": 4, "coverage": 1.0}
        values.update(self.scene_values.get(product_id(item), {}))
        values.update(self.scene_values.get(item.id, {}))
        return values

    def load_scenes(self, items, grid: GridSpec, bands) -> SceneStack:
        with self._lock:
            self.loaded.append([item.id for item in items])
        height, width = grid.shape
        y, x = grid.coords()
        reflectance = np.zeros((len(items), len(bands), height, width), dtype="float32")
        scl = np.zeros((len(items), height, width), dtype="uint8")
        for t, item in enumerate(items):
            values = self._values(item)
            covered = int(round(values["coverage"] * width))
            for b, band in enumerate(bands):
                reflectance[t, b, :, :covered] = values[self.BAND_KEYS[band]]
            scl[t, :, :covered] = values["scl"]
        times = [item.datetime.replace(tzinfo=None) for item in items]
        return SceneStack(
            reflectance=xr.DataArray(
                reflectance,
                dims=("time", "band", "y", "x"),
                coords={"time": times, "band": list(bands), "y": y, "x": x},
            ),
            scl=xr.DataArray(
                scl,
                dims=("time", "y", "x"),
                coords={"time": times, "y": y, "x": x},
            ),
        )

    def compute(self, *arrays):
        with self._lock:
            self.compute_calls += 1
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            return tuple(np.asarray(array.values) for array in arrays)
        finally:
            with self._lock:
                self._in_flight -= 1


@pytest.fixture
def fake_service_factory():
    """Factory building a ``FakeImageryService``."""
    return FakeImageryService


def utc(year: int, month: int, day: int, hour: int = 15) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


@pytest.fixture
def utc_datetime():
    return utc
