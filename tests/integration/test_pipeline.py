"""End-to-end monitoring run against an in-memory imagery service."""

from datetime import date

import pandas as pd
import pytest
import rasterio

from veg_monitor.config import MonitorConfig
from veg_monitor.sentinel2.monitoring import run_pipeline
from veg_monitor.services.export import FolderExportSink

MONTHS7 = ("2024-10", "2024-12", "2025-02", "2025-04", "2025-06", "2025-08", "2025-10")
NOW = date(2025, 11, 5)


@pytest.fixture
def config(tmp_path, aoi_geometry):
    return MonitorConfig(
        aoi=aoi_geometry.wkt,
        export_folder=tmp_path / "CGSM_ComplejoPajarales",
        export_scale=30.0,
        buffer_meters=300.0,
        frame_month_labels=MONTHS7,
        frame_workers=2,
    )


@pytest.fixture
def service(fake_service_factory, item_factory, utc_datetime):
    make_item, utc = item_factory, utc_datetime
    items = {
        "2025-06": [
            make_item("jun-a", utc(2025, 6, 3), product_uri="P1", datatake_id="DT1"),
            make_item("jun-b", utc(2025, 6, 13), product_uri="P2", datatake_id="DT2"),
        ],
        "2025-08": [
            make_item("aug-a", utc(2025, 8, 7), product_uri="P3", datatake_id="DT3"),
        ],
        "2025-10": [
            make_item("oct-a", utc(2025, 10, 2), product_uri="P4", datatake_id="DT4"),
        ],
    }
    values = {
        "P3": {"red": 0.2, "nir": 0.25},  # NDVI 0.11, below threshold
        "P4": {"scl": 9},  # fully clouded
    }
    return fake_service_factory(items, values)


class TestRunPipeline:
    """Tests for run_pipeline() outputs."""

    def test_statistics_table(self, config, service):
        sink = FolderExportSink(config.export_folder)

        result = run_pipeline(config, now=NOW, service=service, sink=sink)

        assert len(result.records) == 18
        assert result.records[0].month == "2024-05"
        assert result.records[-1].month == "2025-10"
        assert result.table_path == config.export_folder / "Pajarales_NDVI040_monthly_median_18m.csv"

        table = pd.read_csv(result.table_path, dtype={"month": str}).set_index("month")
        assert list(table.columns) == ["area_ha", "n_scenes", "valid_frac"]
        assert table.loc["2025-06", "n_scenes"] == 2
        assert table.loc["2025-06", "area_ha"] > 0
        assert table.loc["2025-06", "valid_frac"] == pytest.approx(1.0)
        assert table.loc["2025-08", "area_ha"] == 0.0
        assert table.loc["2025-08", "valid_frac"] == pytest.approx(1.0)
        assert table.loc["2025-10", "valid_frac"] == 0.0
        assert table.loc["2025-01", "n_scenes"] == 0

    def test_chart_and_summary(self, config, service):
        result = run_pipeline(config, now=NOW, service=service, sink=FolderExportSink(config.export_folder))

        assert result.chart_path is not None
        assert result.chart_path.exists()
        assert result.summary.months == 18
        assert result.summary.max_area_ha == pytest.approx(result.records[13].area_ha)

    def test_frames_for_listed_months(self, config, service):
        result = run_pipeline(config, now=NOW, service=service, sink=FolderExportSink(config.export_folder))

        assert [outcome.month for outcome in result.frames] == list(MONTHS7)
        assert not result.failed_frames
        by_month = {outcome.month: outcome for outcome in result.frames}
        assert by_month["2024-10"].identifier == "Pajarales_2024-10_0ha"
        assert by_month["2025-06"].area_ha > 0
        with rasterio.open(by_month["2025-06"].path) as src:
            assert src.count == 3
            assert src.dtypes[0] == "uint8"

    def test_frame_area_matches_table(self, config, service):
        result = run_pipeline(config, now=NOW, service=service, sink=FolderExportSink(config.export_folder))

        june = next(record for record in result.records if record.month == "2025-06")
        frame = next(outcome for outcome in result.frames if outcome.month == "2025-06")
        assert frame.area_ha == pytest.approx(june.area_ha)

    def test_stats_only(self, config, service, tmp_path):
        config = MonitorConfig(
            aoi=config.aoi,
            export_folder=tmp_path / "stats",
            export_frames=False,
            export_chart=False,
            stats_months=3,
        )

        result = run_pipeline(config, now=NOW, service=service, sink=FolderExportSink(config.export_folder))

        assert [record.month for record in result.records] == ["2025-08", "2025-09", "2025-10"]
        assert result.frames == []
        assert result.chart_path is None
        assert sorted(p.name for p in (tmp_path / "stats").iterdir()) == [
            "Pajarales_NDVI040_monthly_median_3m.csv"
        ]

    def test_frames_only(self, config, service):
        config = MonitorConfig(
            aoi=config.aoi,
            export_folder=config.export_folder,
            export_scale=30.0,
            buffer_meters=300.0,
            export_stats=False,
            frame_months=2,
        )

        result = run_pipeline(config, now=NOW, service=service, sink=FolderExportSink(config.export_folder))

        assert result.records == []
        assert result.table_path is None
        assert [outcome.month for outcome in result.frames] == ["2025-09", "2025-10"]
        assert sorted(service.searched) == ["2025-09", "2025-10"]
