"""Export sink writing tables, frames, and charts to a local folder.

Outputs land directly in the destination folder, named after the export
description:

- ``<description>.csv``: monthly statistics table
- ``<description>.tif``: 3-band uint8 GeoTIFF frame
- ``<description>.png``: area trend chart
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd
import rasterio
import rioxarray  # noqa: F401  registers the .rio accessor
import xarray as xr

from ..sentinel2.monthly import TABLE_COLUMNS, MonthlyRecord

if TYPE_CHECKING:
    from ..sentinel2.frames import ExportFrame

LOGGER = logging.getLogger(__name__)

FRAME_BAND_LABELS = ("Red", "Green", "Blue")


def records_to_frame(records: Sequence[MonthlyRecord]) -> pd.DataFrame:
    """Tabulate records with the export column order."""
    return pd.DataFrame([record.as_row() for record in records], columns=list(TABLE_COLUMNS))


class FolderExportSink:
    """Writes exports into ``folder``, creating it on first use."""

    def __init__(self, folder: Path) -> None:
        self.folder = Path(folder)

    def _target(self, description: str, suffix: str) -> Path:
        self.folder.mkdir(parents=True, exist_ok=True)
        return self.folder / f"{description}{suffix}"

    def export_table(self, records: Sequence[MonthlyRecord], description: str) -> Path:
        """Write the statistics table as CSV.

        Args:
            records: Ordered monthly records.
            description: File name without extension.

        Returns:
            Path to the CSV file.
        """
        path = self._target(description, ".csv")
        records_to_frame(records).to_csv(path, index=False)
        LOGGER.info("Wrote %d row(s) to %s", len(records), path)
        return path

    def export_image(self, frame: "ExportFrame", description: str) -> Path:
        """Write a rendered frame as a georeferenced RGB GeoTIFF.

        Raises:
            ValueError: If the frame image does not match its grid.
        """
        if frame.image.shape != (3,) + frame.grid.shape:
            raise ValueError(
                f"Frame image shape {frame.image.shape} does not match grid {frame.grid.shape}"
            )
        path = self._target(description, ".tif")
        y, x = frame.grid.coords()
        array = xr.DataArray(
            frame.image,
            dims=("band", "y", "x"),
            coords={"band": [1, 2, 3], "y": y, "x": x},
        )
        array.rio.write_crs(frame.grid.crs, inplace=True)
        array.rio.write_transform(frame.grid.transform, inplace=True)
        array.rio.to_raster(path, dtype="uint8", compress="deflate", tiled=True)

        with rasterio.open(path, "r+") as dst:
            for idx, label in enumerate(FRAME_BAND_LABELS, start=1):
                dst.set_band_description(idx, label)
        return path

    def export_chart(
        self,
        records: Sequence[MonthlyRecord],
        description: str,
        title: str,
    ) -> Path:
        """Render ``area_ha`` over ``month`` as a PNG line chart."""
        path = self._target(description, ".png")
        table = records_to_frame(records)
        fig, ax = plt.subplots(figsize=(10, 5))
        try:
            ax.plot(table["month"], table["area_ha"], marker="o", linewidth=2, markersize=4)
            ax.set_title(title)
            ax.set_xlabel("Month")
            ax.set_ylabel("Area (ha)")
            ax.tick_params(axis="x", labelrotation=45)
            ax.grid(True, alpha=0.3)
            fig.tight_layout()
            fig.savefig(path, dpi=150)
        finally:
            plt.close(fig)
        LOGGER.info("Wrote chart to %s", path)
        return path


__all__ = [
    "FRAME_BAND_LABELS",
    "records_to_frame",
    "FolderExportSink",
]
