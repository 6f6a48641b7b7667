#!/usr/bin/env python3
"""
Daily LST Batch Processing Entry Point

Builds the AOI, queries the Landsat 8 catalog for acquisition dates and
computes one Land Surface Temperature raster per date:

    composite (scale factors, cloud mask, median, clip)
        -> NDVI / fraction of vegetation / emissivity
        -> Planck-law inversion
        -> export

Dates are independent; they run in a bounded thread pool and a failure on
one date is recorded in its outcome without affecting the others.
"""

import os
import sys
import logging
import traceback
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Union

from lst_pipeline.config import PipelineConfig
from lst_pipeline.models.aoi import DateRange
from lst_pipeline.models.processing import BatchSummary, DateOutcome
from lst_pipeline.models.scene import LandsatBand, SceneRecord
from lst_pipeline.services.aoi_service import AOIService
from lst_pipeline.services.errors import LSTPipelineError
from lst_pipeline.services.export_service import ExportService
from lst_pipeline.services.lst_calculator import LSTCalculator
from lst_pipeline.services.preview_renderer import PreviewRenderer
from lst_pipeline.services.raster_processor import RasterProcessor
from lst_pipeline.services.s3_storage_service import S3StorageService
from lst_pipeline.services.stac_service import STACQueryService
from lst_pipeline.services.temporal_compositor import TemporalCompositor
from lst_pipeline.services.vegetation_index_calculator import VegetationIndexCalculator

logger = logging.getLogger(__name__)

SceneSource = Union[Sequence[SceneRecord], Callable[[str], Sequence[SceneRecord]]]


class DailyLSTProcessor:
    """
    Daily LST batch job handler.

    The AOI and date range are immutable configuration values built once and
    passed explicitly to every per-date step.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        catalog: Optional[STACQueryService] = None,
        export_service: Optional[ExportService] = None,
        preview_renderer: Optional[PreviewRenderer] = None
    ):
        """Initialize the processor with required services."""
        self.config = config or PipelineConfig.from_env()

        logger.info(f"Initializing DailyLSTProcessor for site: {self.config.site_name}")
        logger.info(f"Date range: {self.config.start_date.date()} - {self.config.end_date.date()}")
        logger.info(f"S3 Bucket: {self.config.s3_bucket or '(local output only)'}")

        self.raster_processor = RasterProcessor()
        self.aoi_service = AOIService()
        self.temporal_compositor = TemporalCompositor(self.raster_processor)
        self.index_calculator = VegetationIndexCalculator(
            self.raster_processor,
            scale=self.config.export_scale,
            max_pixels=self.config.max_pixels
        )
        self.lst_calculator = LSTCalculator(self.raster_processor)
        self.catalog = catalog or STACQueryService(
            stac_url=self.config.stac_url,
            raster_processor=self.raster_processor,
            max_items=self.config.max_items
        )

        if export_service is None:
            storage = None
            if self.config.s3_bucket:
                storage = S3StorageService(
                    bucket_name=self.config.s3_bucket,
                    region=self.config.aws_region
                )
            export_service = ExportService(
                raster_processor=self.raster_processor,
                storage=storage,
                output_dir=self.config.output_dir,
                site_name=self.config.site_name,
                folder=self.config.export_folder,
                scale=self.config.export_scale,
                max_retries=self.config.export_retries,
                retry_delay=self.config.export_retry_delay
            )
        self.export_service = export_service

        if preview_renderer is None and self.config.render_previews:
            preview_renderer = PreviewRenderer()
        self.preview_renderer = preview_renderer

        self.aoi = self.aoi_service.build_from_point(
            self.config.aoi_lon,
            self.config.aoi_lat,
            self.config.aoi_buffer_m
        )
        self.aoi_service.validate_geometry(self.aoi)
        self.date_range = DateRange(start=self.config.start_date, end=self.config.end_date)

        logger.info(f"AOI area: {self.aoi_service.calculate_area_km2(self.aoi)} km2")

    def process_date(self, date: str, scenes: Sequence[SceneRecord]) -> DateOutcome:
        """
        Compute and export the LST raster for one date.

        Args:
            date: Acquisition date (YYYY-MM-DD)
            scenes: Candidate scenes; only those acquired on `date` are used

        Returns:
            DateOutcome with status 'exported'

        Raises:
            EmptySceneSetError, DegenerateStatisticsError, GridMismatchError,
            ExportFailureError: per-date domain errors
        """
        daily = self.temporal_compositor.select_scenes_for_date(scenes, date)
        composite = self.temporal_compositor.composite_daily(daily, date, self.aoi)

        emissivity = self.index_calculator.estimate_emissivity(composite, self.aoi)

        thermal = composite[LandsatBand.ST_B10.value].rename('thermal')
        lst = self.lst_calculator.calculate_lst(
            thermal,
            emissivity['EM'],
            name=f"LST_{self.config.site_name}_{date}",
            date=date
        )
        if composite.rio.crs is not None:
            lst = lst.rio.write_crs(composite.rio.crs)

        logger.info(f"LST {date}: {self.raster_processor.get_raster_info(lst)}")

        job = self.export_service.build_job(lst, date, self.aoi)
        output_url = self.export_service.submit(job)

        if self.preview_renderer is not None:
            preview_path = os.path.join(
                self.export_service.output_dir, 'previews', f"{job.description}.png"
            )
            self.preview_renderer.render(lst, preview_path, title=f"Land Surface Temperature {date}")

        return DateOutcome(
            date=date,
            status='exported',
            description=job.description,
            output_url=output_url,
            scene_count=len(daily),
        )

    def _process_date_isolated(self, date: str, scenes: SceneSource) -> DateOutcome:
        """Run one date, converting any failure into a failed outcome."""
        try:
            date_scenes = scenes(date) if callable(scenes) else scenes
            outcome = self.process_date(date, date_scenes)
            logger.info(f"Date {date} exported to {outcome.output_url}")
            return outcome

        except LSTPipelineError as e:
            logger.warning(f"Skipping {date}: {type(e).__name__}: {e}")
            return DateOutcome(
                date=date,
                status='failed',
                description=self.export_service.build_description(date),
                error_kind=type(e).__name__,
                error=str(e),
            )

        except Exception as e:
            logger.error(f"Unexpected error processing {date}: {e}")
            logger.error(traceback.format_exc())
            return DateOutcome(
                date=date,
                status='failed',
                description=self.export_service.build_description(date),
                error_kind=type(e).__name__,
                error=str(e),
            )

    def run(self, dates: Sequence[str], scenes: SceneSource) -> BatchSummary:
        """
        Process every date independently.

        Args:
            dates: Dates to process (YYYY-MM-DD)
            scenes: All candidate scenes, or a callable returning the scenes of a date

        Returns:
            BatchSummary with one outcome per date, ordered by date
        """
        start_time = datetime.now(timezone.utc)
        outcomes: List[DateOutcome] = []

        if dates:
            workers = min(self.config.max_workers, len(dates))
            logger.info(f"Processing {len(dates)} dates with {workers} workers")

            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    executor.submit(self._process_date_isolated, date, scenes): date
                    for date in dates
                }
                for future in as_completed(futures):
                    outcomes.append(future.result())

        outcomes.sort(key=lambda o: o.date)
        processing_time = (datetime.now(timezone.utc) - start_time).total_seconds()

        summary = BatchSummary(
            outcomes=outcomes,
            processing_time_seconds=round(processing_time, 2)
        )
        logger.info(
            f"Batch finished in {processing_time:.2f} seconds: "
            f"{len(summary.exported)} exported, {len(summary.failed)} failed"
        )
        return summary

    def run_from_catalog(self) -> BatchSummary:
        """
        Query the catalog for the configured AOI and date range and process every date.

        Returns:
            BatchSummary
        """
        items = self.catalog.search_landsat8(self.aoi, self.date_range)
        dates = self.catalog.list_acquisition_dates(items)
        logger.info(f"Found {len(dates)} acquisition dates")

        grid = self.aoi_service.build_grid(self.aoi, scale=self.config.export_scale)

        def load_scenes(date: str) -> List[SceneRecord]:
            return list(self.catalog.iter_scenes(self.catalog.items_for_date(items, date), grid))

        return self.run(dates, load_scenes)


def main():
    """Main entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    logger.info("=" * 80)
    logger.info("Daily LST Processor Starting")
    logger.info("=" * 80)

    try:
        processor = DailyLSTProcessor()
        summary = processor.run_from_catalog()
        exit_code = 0 if not summary.failed else 1

        for outcome in summary.failed:
            logger.warning(f"{outcome.date}: {outcome.error_kind}: {outcome.error}")

        logger.info("=" * 80)
        logger.info(f"Daily LST Processor Finished (exit code: {exit_code})")
        logger.info("=" * 80)

        sys.exit(exit_code)

    except Exception as e:
        logger.error("=" * 80)
        logger.error(f"Fatal error: {e}")
        logger.error(traceback.format_exc())
        logger.error("=" * 80)
        sys.exit(1)


if __name__ == '__main__':
    main()
