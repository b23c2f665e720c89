"""
Traffic feed ingestion pipeline
Fetch -> parse -> locate -> aggregate -> upsert, with injected fetch and store collaborators
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Protocol, Sequence
import logging
import time

from traffic_feed.core.errors import AppError
from traffic_feed.models.feed import MeasuringPointSnapshot
from traffic_feed.models.schemas import IngestionResult
from traffic_feed.services.aggregator import aggregate_snapshots, vehicle_class_rows
from traffic_feed.services.bulk_upsert import UpsertResult
from traffic_feed.services.locations import LocationDirectory
from traffic_feed.services.parser import parse_location_feed, parse_measurement_feed

logger = logging.getLogger(__name__)


class FeedSource(Protocol):
    def fetch(self, url: str) -> str:
        ...


class MeasurementStore(Protocol):
    def upsert_locations(self, rows: Sequence[Dict[str, Any]]) -> UpsertResult:
        ...

    def upsert_measurements(self, rows: Sequence[Dict[str, Any]]) -> UpsertResult:
        ...

    def upsert_vehicle_measurements(self, rows: Sequence[Dict[str, Any]]) -> UpsertResult:
        ...


class TrafficIngestionPipeline:
    """
    One ingestion run over the MIV measurement and configuration feeds

    Measuring points whose id has no location in the configuration feed are
    skipped. Locations are written before measurements. Any stage failure
    ends the run; chunks committed before the failure are kept.
    """

    def __init__(
        self,
        fetcher: FeedSource,
        store: MeasurementStore,
        persist_vehicle_classes: bool = False
    ):
        self.fetcher = fetcher
        self.store = store
        self.persist_vehicle_classes = persist_vehicle_classes
        self.stats = {
            "points_received": 0,
            "points_skipped": 0,
            "locations_written": 0,
            "measurements_written": 0,
            "vehicle_rows_written": 0,
        }

    def run(self, measurements_url: str, locations_url: str) -> IngestionResult:
        """
        Execute the run and report the outcome instead of raising

        Returns:
            IngestionResult with counts, or success=False and the error payload
        """
        start_time = time.time()

        try:
            # Step 1: Fetch both documents concurrently
            measurements_xml, locations_xml = self._fetch_feeds(measurements_url, locations_url)

            # Step 2: Decode
            measurement_feed = parse_measurement_feed(measurements_xml)
            location_feed = parse_location_feed(locations_xml)
            self.stats["points_received"] = len(measurement_feed.measuring_points)

            # Step 3: Location directory and skip points without a location
            directory = LocationDirectory.from_records(location_feed.locations)
            located = self._located_points(measurement_feed.measuring_points, directory)

            # Step 4: Aggregate
            measurements = aggregate_snapshots(located)

            # Step 5: Persist, locations first
            self.stats["locations_written"] = self.store.upsert_locations(directory.to_locations()).rows_inserted
            self.stats["measurements_written"] = self.store.upsert_measurements(measurements).rows_inserted

            if self.persist_vehicle_classes:
                vehicle_rows = [row for point in located for row in vehicle_class_rows(point)]
                self.stats["vehicle_rows_written"] = self.store.upsert_vehicle_measurements(vehicle_rows).rows_inserted

        except AppError as e:
            logger.error(f"Ingestion run failed: {e}", exc_info=True)
            return IngestionResult(
                success=False,
                processing_time_ms=self._elapsed_ms(start_time),
                error=e.to_payload(),
                **self.stats
            )

        processing_time = self._elapsed_ms(start_time)
        logger.info(
            f"Ingestion run complete: {self.stats['measurements_written']} measurements, "
            f"{self.stats['locations_written']} locations, "
            f"{self.stats['points_skipped']} points skipped, {processing_time}ms"
        )
        return IngestionResult(success=True, processing_time_ms=processing_time, **self.stats)

    def _fetch_feeds(self, measurements_url: str, locations_url: str):
        with ThreadPoolExecutor(max_workers=2) as executor:
            measurements = executor.submit(self.fetcher.fetch, measurements_url)
            locations = executor.submit(self.fetcher.fetch, locations_url)
            return measurements.result(), locations.result()

    def _located_points(
        self,
        points: List[MeasuringPointSnapshot],
        directory: LocationDirectory
    ) -> List[MeasuringPointSnapshot]:
        located = [p for p in points if p.location_id in directory]
        skipped = len(points) - len(located)
        self.stats["points_skipped"] = skipped

        if skipped:
            logger.warning(f"Skipped {skipped} measuring points without a known location")
        return located

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.time() - start_time) * 1000)


def run_ingestion(
    fetcher: FeedSource,
    store: MeasurementStore,
    measurements_url: str,
    locations_url: str,
    persist_vehicle_classes: bool = False
) -> IngestionResult:
    """Run a single ingestion with the given collaborators"""
    pipeline = TrafficIngestionPipeline(fetcher, store, persist_vehicle_classes)
    return pipeline.run(measurements_url, locations_url)
