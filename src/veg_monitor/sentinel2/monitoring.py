"""End-to-end monitoring run: statistics table, trend chart, and frames."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

from ..config import MonitorConfig
from .aoi import area_hectares, parse_aoi
from .frames import FrameOutcome, export_frames, frame_months
from .monthly import (
    MonthlyRecord,
    TrendSummary,
    build_monthly_table,
    chart_title,
    summarize_trend,
    table_description,
)
from .windows import DateLike, month_label, month_window

if TYPE_CHECKING:
    from ..services.export import FolderExportSink
    from ..services.imagery import StacImageryService

LOGGER = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """What a monitoring run produced."""

    months: List[date] = field(default_factory=list)
    records: List[MonthlyRecord] = field(default_factory=list)
    summary: Optional[TrendSummary] = None
    table_path: Optional[Path] = None
    chart_path: Optional[Path] = None
    frames: List[FrameOutcome] = field(default_factory=list)

    @property
    def failed_frames(self) -> List[FrameOutcome]:
        return [outcome for outcome in self.frames if not outcome.success]


def run_pipeline(
    config: MonitorConfig,
    now: Optional[DateLike] = None,
    service: Optional["StacImageryService"] = None,
    sink: Optional["FolderExportSink"] = None,
) -> PipelineResult:
    """Run the monthly statistics and frame exports for ``config``.

    Args:
        config: Validated run configuration.
        now: Reference instant; defaults to the current UTC time.
        service: Imagery service; built from ``config`` when omitted.
        sink: Export sink; writes to ``config.export_folder`` when omitted.

    Returns:
        PipelineResult with the records, summary, and export locations.
    """
    config.validate()
    if now is None:
        now = datetime.now(timezone.utc)
    if service is None:
        from ..services.imagery import StacImageryService

        service = StacImageryService.from_config(config)
    if sink is None:
        from ..services.export import FolderExportSink

        sink = FolderExportSink(config.export_folder)

    geometry = parse_aoi(config.aoi)
    LOGGER.info(
        "AOI %.1f ha, NDVI threshold %.2f, reference %s",
        area_hectares(geometry),
        config.ndvi_threshold,
        now.isoformat(),
    )

    result = PipelineResult()

    if config.export_stats:
        result.months = month_window(now, config.stats_months)
        if result.months:
            LOGGER.info(
                "Statistics window %s .. %s (%d month(s))",
                month_label(result.months[0]),
                month_label(result.months[-1]),
                len(result.months),
            )
        result.records = build_monthly_table(service, result.months, geometry, config)
        result.summary = summarize_trend(result.records)
        LOGGER.info(
            "Trend %s -> %s: mean %.1f ha (min %.1f, max %.1f), change %+.1f ha, mean valid %.2f",
            result.summary.first_month,
            result.summary.last_month,
            result.summary.mean_area_ha,
            result.summary.min_area_ha,
            result.summary.max_area_ha,
            result.summary.change_ha,
            result.summary.mean_valid_frac,
        )
        description = table_description(config.export_prefix, config.ndvi_threshold, config.stats_months)
        result.table_path = sink.export_table(result.records, description)
        if config.export_chart:
            result.chart_path = sink.export_chart(
                result.records,
                description,
                chart_title(config.ndvi_threshold, config.stats_months),
            )

    if config.export_frames:
        months = frame_months(config, now)
        LOGGER.info("Exporting %d frame(s): %s", len(months), ", ".join(month_label(m) for m in months))
        result.frames = export_frames(service, sink, months, geometry, config)

    return result


__all__ = [
    "PipelineResult",
    "run_pipeline",
]
