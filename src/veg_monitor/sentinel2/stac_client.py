"""STAC client utilities for Sentinel-2 data access.

This module provides functions for querying Sentinel-2 imagery from
STAC (SpatioTemporal Asset Catalog) APIs, de-duplicating the results,
and creating xarray data stacks on a fixed target grid.

STAC Query Workflow
-------------------
1. Search one calendar month over the AOI using `fetch_month_items()`
2. Drop duplicate ingestions of the same product with `distinct_products()`
3. Count satellite passes (datatakes) with `count_acquisitions()`
4. Stack the selected bands into an xarray DataArray using `stack_bands()`

Two de-duplication axes are applied on purpose: products (one per
processed granule) and acquisitions (one per satellite pass, shared by
every granule of that pass). Scene counts are reported per acquisition.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import rioxarray  # noqa: F401  registers the .rio accessor
import stackstac
import xarray as xr
from pystac import Item
from pystac_client import Client
from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

from .grid import GridSpec
from .windows import month_interval

LOGGER = logging.getLogger(__name__)

# =============================================================================
# STAC and Sentinel-2 Constants
# =============================================================================

# STAC collection identifier for Sentinel-2 Level-2A data
SENTINEL_COLLECTION = "sentinel-2-l2a"

RED_BAND = "B04"
NIR_BAND = "B08"

# Bands needed for the vegetation index
INDEX_BANDS: Tuple[str, ...] = (RED_BAND, NIR_BAND)

# Bands rendered as true colour, in display order
TRUE_COLOR_BANDS: Tuple[str, ...] = ("B04", "B03", "B02")

# Bands read for the visual frames
FRAME_BANDS: Tuple[str, ...] = ("B02", "B03", "B04", "B08")

# Mapping from Sentinel-2 band names to STAC asset IDs
BAND_TO_ASSET = {
    "B02": "blue",
    "B03": "green",
    "B04": "red",
    "B08": "nir",
}

# Sentinel-2 L2A products store reflectance * 10000
SENTINEL_SCALE_FACTOR = 1 / 10000

CLOUD_COVER_PROPERTY = "eo:cloud_cover"

# Identifier of a processed product; re-ingestions of one capture share it
PRODUCT_ID_PROPERTY = "s2:product_uri"

# Identifier of a satellite pass, shared by all granules of that pass
DATATAKE_ID_PROPERTY = "s2:datatake_id"


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class SceneStack:
    """Lazy scene data for one request, on a single grid.

    Attributes:
        reflectance: (time, band, y, x) reflectance scaled to [0, 1].
        scl: (time, y, x) Scene Classification Layer values.
    """
    reflectance: xr.DataArray
    scl: xr.DataArray


# =============================================================================
# Identifiers and de-duplication
# =============================================================================

def product_id(item: Item) -> str:
    """Stable product identifier, falling back to the STAC item ID."""
    value = item.properties.get(PRODUCT_ID_PROPERTY)
    return str(value) if value else item.id


def acquisition_id(item: Item) -> str:
    """Acquisition-group (datatake) identifier for a scene.

    Falls back to ``<platform>_<acquisition date>`` when the datatake
    property is missing, then to the product identifier.
    """
    value = item.properties.get(DATATAKE_ID_PROPERTY)
    if value:
        return str(value)
    platform = item.properties.get("platform")
    if platform and item.datetime is not None:
        return f"{platform}_{item.datetime:%Y%m%d}"
    return product_id(item)


def distinct_products(items: Sequence[Item]) -> List[Item]:
    """Drop items that repeat an already-seen product identifier.

    Order is preserved and the first occurrence wins.
    """
    seen: set = set()
    unique: List[Item] = []
    for item in items:
        key = product_id(item)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    if len(unique) != len(items):
        LOGGER.debug("Dropped %d duplicate product(s)", len(items) - len(unique))
    return unique


def count_acquisitions(items: Sequence[Item]) -> int:
    """Number of distinct acquisition groups among ``items``."""
    return len({acquisition_id(item) for item in items})


# =============================================================================
# Catalog search
# =============================================================================

def fetch_month_items(
    client: Client,
    geometry: BaseGeometry,
    month_start: date,
    cloud_cover: float,
) -> List[Item]:
    """Query the STAC catalog for Sentinel-2 scenes in one calendar month.

    Args:
        client: PySTAC client connected to a STAC API.
        geometry: Area of interest as a Shapely geometry (EPSG:4326).
        month_start: Any date in the month; the month is searched half-open.
        cloud_cover: Maximum scene cloud cover percentage (0-100).

    Returns:
        Items intersecting the geometry, with duplicate item IDs and
        duplicate products removed, sorted by acquisition time.
    """
    interval = month_interval(month_start)
    search = client.search(
        collections=[SENTINEL_COLLECTION],
        intersects=mapping(geometry),
        datetime=interval.stac_datetime(),
        query={CLOUD_COVER_PROPERTY: {"lt": cloud_cover}},
    )
    items: Dict[str, Item] = {}
    for item in search.items():
        items[item.id] = item
    ordered = sorted(items.values(), key=lambda item: (item.datetime is None, item.datetime, item.id))
    return distinct_products(ordered)


# =============================================================================
# Stacking
# =============================================================================

def compute_chunk_size(
    grid: GridSpec,
    tile_scale: int = 1,
    min_chunk: int = 128,
    max_chunk: int = 2048,
) -> int:
    """Compute a dask chunk size for a grid.

    Targets about four chunks per dimension, divided further by
    ``tile_scale`` so larger values trade speed for lower peak memory.

    Returns:
        Chunk size in pixels, a power of 2 clamped to [min_chunk, max_chunk].
    """
    max_dim = max(grid.width, grid.height)
    if max_dim <= 0:
        return min_chunk
    target = max_dim // (4 * max(tile_scale, 1))
    if target > 0:
        target = 2 ** round(math.log2(target))
    else:
        target = min_chunk
    return max(min_chunk, min(max_chunk, target))


def stack_bands(
    items: Sequence[Item],
    grid: GridSpec,
    bands: Sequence[str],
    chunks: Optional[int] = 2048,
) -> xr.DataArray:
    """Create an xarray DataArray stack from Sentinel-2 STAC items.

    Args:
        items: Sequence of Sentinel-2 STAC items.
        grid: Target grid; every item is warped onto it.
        bands: Sentinel-2 band names (keys of BAND_TO_ASSET).
        chunks: Dask chunk size for x and y. None disables chunking.

    Returns:
        Lazy 4D DataArray (time, band, y, x) scaled by SENTINEL_SCALE_FACTOR.
        Pixels outside a scene's footprint are 0.

    Raises:
        ValueError: If items is empty, a band is unknown, or the first
            item lacks a required asset.
    """
    if not items:
        raise ValueError("No Sentinel-2 items available for stacking.")

    asset_ids = []
    for band in bands:
        if band not in BAND_TO_ASSET:
            raise ValueError(f"Unsupported Sentinel-2 band '{band}'.")
        asset_id = BAND_TO_ASSET[band]
        if asset_id not in items[0].assets:
            raise ValueError(f"Missing Sentinel-2 asset '{asset_id}' on first item.")
        asset_ids.append(asset_id)

    data = stackstac.stack(
        items,
        assets=asset_ids,
        resolution=grid.resolution,
        epsg=grid.epsg,
        bounds=grid.bounds,
        chunksize={"x": chunks, "y": chunks} if chunks else None,
        dtype="float32",
        fill_value=np.float32(0),
        rescale=False,
        properties=False,
    )
    data = data.reset_coords(drop=True)
    data = data.assign_coords({"band": list(bands)})
    data.rio.write_crs(grid.crs, inplace=True)
    return data * SENTINEL_SCALE_FACTOR


__all__ = [
    # Constants
    "SENTINEL_COLLECTION",
    "RED_BAND",
    "NIR_BAND",
    "INDEX_BANDS",
    "TRUE_COLOR_BANDS",
    "FRAME_BANDS",
    "BAND_TO_ASSET",
    "SENTINEL_SCALE_FACTOR",
    "CLOUD_COVER_PROPERTY",
    "PRODUCT_ID_PROPERTY",
    "DATATAKE_ID_PROPERTY",
    # Data classes
    "SceneStack",
    # Functions
    "product_id",
    "acquisition_id",
    "distinct_products",
    "count_acquisitions",
    "fetch_month_items",
    "compute_chunk_size",
    "stack_bands",
]
