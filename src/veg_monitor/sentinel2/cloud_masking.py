"""Cloud and cirrus masking utilities for Sentinel-2 imagery.

This module builds per-scene quality masks from the Sentinel-2 Scene
Classification Layer (SCL) combined with a non-zero reflectance check.

SCL Values Reference
--------------------
| Value | Class Description              | Masked? |
|-------|--------------------------------|---------|
| 0     | No data                        | Yes     |
| 1     | Saturated or defective         | No      |
| 2     | Dark area pixels               | No      |
| 3     | Cloud shadows                  | No      |
| 4     | Vegetation                     | No      |
| 5     | Not vegetated                  | No      |
| 6     | Water                          | No      |
| 7     | Unclassified                   | No      |
| 8     | Cloud medium probability       | Yes     |
| 9     | Cloud high probability         | Yes     |
| 10    | Thin cirrus                    | Yes     |
| 11    | Snow                           | No      |

Only the cloud and cirrus classes (plus no-data) are masked, which is
what the opaque-cloud and cirrus bits (10 and 11) of the older QA60 band
flag.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Set

import numpy as np
import stackstac
import xarray as xr
from pystac import Item
from scipy import ndimage

from .grid import GridSpec
from .stac_client import NIR_BAND, RED_BAND

LOGGER = logging.getLogger(__name__)

# SCL asset identifier in STAC items
SCL_ASSET_ID = "scl"

# Default SCL values to mask: no data (0), cloud medium (8),
# cloud high (9), thin cirrus (10)
SCL_MASK_VALUES: Set[int] = {0, 8, 9, 10}


def stack_scl(
    items: Sequence[Item],
    grid: GridSpec,
    chunks: Optional[int] = 2048,
) -> xr.DataArray:
    """Create Scene Classification Layer (SCL) stack from STAC items.

    Args:
        items: Sentinel-2 STAC items to stack.
        grid: Target grid shared with the reflectance stack.
        chunks: Dask chunk size for x/y dimensions. None disables chunking.

    Returns:
        3D DataArray with dimensions (time, y, x) containing SCL values.
        Pixels outside a scene's footprint are 0 (no data).

    Raises:
        ValueError: If items is empty or the first item lacks the SCL asset.
    """
    if not items:
        raise ValueError("No Sentinel-2 items available for stacking.")
    if SCL_ASSET_ID not in items[0].assets:
        raise ValueError(f"Sentinel-2 item missing {SCL_ASSET_ID} asset.")

    # Nearest-neighbour is stackstac's default, which keeps class values intact
    scl = stackstac.stack(
        items,
        assets=[SCL_ASSET_ID],
        resolution=grid.resolution,
        epsg=grid.epsg,
        bounds=grid.bounds,
        chunksize={"x": chunks, "y": chunks} if chunks else None,
        dtype="uint8",
        fill_value=np.uint8(0),
        rescale=False,
        properties=False,
    ).squeeze("band", drop=True)

    scl = scl.reset_coords(drop=True)
    scl.rio.write_crs(grid.crs, inplace=True)
    return scl


def build_mask(
    scl: xr.DataArray,
    dilation: int = 0,
    mask_values: Optional[Set[int]] = None,
) -> xr.DataArray:
    """Build binary clear-sky mask from Scene Classification Layer.

    Args:
        scl: Scene Classification Layer DataArray with dimensions (time, y, x).
        dilation: Number of pixels to grow the masked area by. Default 0.
        mask_values: Set of SCL values to mask. Defaults to SCL_MASK_VALUES.

    Returns:
        Boolean DataArray where True = clear pixel, False = masked pixel.
    """
    if mask_values is None:
        mask_values = SCL_MASK_VALUES

    mask = xr.ones_like(scl, dtype=bool)
    for value in mask_values:
        mask = mask & (scl != value)

    if dilation > 0:
        cloudy = ~mask

        def _dilate(arr: np.ndarray) -> np.ndarray:
            return ndimage.binary_dilation(arr, iterations=dilation)

        dilated = xr.apply_ufunc(
            _dilate,
            cloudy,
            input_core_dims=[["y", "x"]],
            output_core_dims=[["y", "x"]],
            vectorize=True,
            dask="parallelized",
            output_dtypes=[bool],
            # dilation needs whole scenes, not spatial chunks
            dask_gufunc_kwargs={"allow_rechunk": True},
        )
        mask = mask & ~dilated

    return mask


def nonzero_reflectance(reflectance: xr.DataArray) -> xr.DataArray:
    """True where both red and NIR reflectance are strictly positive."""
    red = reflectance.sel(band=RED_BAND, drop=True)
    nir = reflectance.sel(band=NIR_BAND, drop=True)
    return (red > 0) & (nir > 0)


def quality_mask(
    scl: xr.DataArray,
    reflectance: xr.DataArray,
    mask_values: Optional[Set[int]] = None,
    dilation: int = 0,
) -> xr.DataArray:
    """Per-scene validity: clear SCL class and non-zero red/NIR reflectance.

    Args:
        scl: (time, y, x) Scene Classification Layer.
        reflectance: (time, band, y, x) reflectance containing B04 and B08.
        mask_values: SCL classes treated as invalid.
        dilation: Pixels to grow the masked SCL area by.

    Returns:
        Boolean (time, y, x) DataArray, True where the pixel is usable.
    """
    clear = build_mask(scl, dilation=dilation, mask_values=mask_values)
    return clear & nonzero_reflectance(reflectance)


__all__ = [
    "SCL_ASSET_ID",
    "SCL_MASK_VALUES",
    "stack_scl",
    "build_mask",
    "nonzero_reflectance",
    "quality_mask",
]
