"""
Batched conflict-skip upserts
Writes rows in bounded multi-row INSERT ... ON CONFLICT DO NOTHING statements
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import logging

from sqlalchemy import Table
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from traffic_feed.core.config import settings
from traffic_feed.core.errors import BatchWriteError, RowArityError, StoreError
from traffic_feed.models.database import Location, TrafficMeasurement, TrafficVehicleMeasurement

logger = logging.getLogger(__name__)

Row = Union[Mapping[str, Any], Sequence[Any]]

LOCATION_COLUMNS = ("location_id", "latitude", "longitude")
MEASUREMENT_COLUMNS = (
    "location_id", "observation_time", "occupancy_rate", "availability_rate",
    "total_vehicles_passed", "average_speed", "max_speed",
)
VEHICLE_MEASUREMENT_COLUMNS = (
    "location_id", "observation_time", "vehicle_class", "traffic_intensity",
    "vehicle_speed_arithmetic", "vehicle_speed_harmonic",
)

_DIALECT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


@dataclass(frozen=True)
class UpsertResult:
    table: str
    rows_submitted: int
    chunks_written: int
    # rows actually inserted; conflicting keys are skipped and not counted
    rows_inserted: int = 0


class BatchUpsertEngine:
    """
    Persists rows idempotently in chunks of at most batch_size

    Each chunk is its own transaction. A failing chunk stops the call:
    earlier chunks stay committed and later ones are never attempted.
    Existing rows are never updated.
    """

    def __init__(self, db: Session, batch_size: Optional[int] = None):
        self.db = db
        self.batch_size = batch_size or settings.MAX_BATCH_SIZE
        if self.batch_size < 1:
            raise ValueError("batch_size must be positive")

    def upsert_locations(self, rows: Sequence[Row]) -> UpsertResult:
        return self.upsert(Location.__table__, LOCATION_COLUMNS, rows, ("location_id",))

    def upsert_measurements(self, rows: Sequence[Row]) -> UpsertResult:
        return self.upsert(
            TrafficMeasurement.__table__, MEASUREMENT_COLUMNS, rows,
            ("location_id", "observation_time")
        )

    def upsert_vehicle_measurements(self, rows: Sequence[Row]) -> UpsertResult:
        return self.upsert(
            TrafficVehicleMeasurement.__table__, VEHICLE_MEASUREMENT_COLUMNS, rows,
            ("location_id", "observation_time", "vehicle_class")
        )

    def upsert(
        self,
        table: Table,
        columns: Sequence[str],
        rows: Sequence[Row],
        conflict_target: Sequence[str]
    ) -> UpsertResult:
        """
        Insert rows, skipping any whose conflict_target key already exists

        Raises:
            RowArityError: a row does not match columns (nothing is written)
            BatchWriteError: a chunk failed; carries its zero-based index
        """
        values = self._validate(table.name, columns, rows)
        if not values:
            return UpsertResult(table.name, 0, 0)

        insert = self._dialect_insert()
        chunks_written = 0
        rows_inserted = 0

        for i in range(0, len(values), self.batch_size):
            chunk = values[i:i + self.batch_size]
            stmt = insert(table).values(chunk).on_conflict_do_nothing(
                index_elements=list(conflict_target)
            )
            try:
                result = self.db.execute(stmt, execution_options={"preserve_rowcount": True})
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(
                    f"Upsert into {table.name} failed at chunk {chunks_written} "
                    f"({chunks_written} chunk(s) already committed): {e}"
                )
                raise BatchWriteError(table.name, chunks_written, chunks_written, e) from e
            chunks_written += 1
            rows_inserted += max(result.rowcount, 0)

        logger.info(
            f"Upserted {len(values)} rows into {table.name} in {chunks_written} chunk(s), "
            f"{rows_inserted} new"
        )
        return UpsertResult(table.name, len(values), chunks_written, rows_inserted)

    def _dialect_insert(self):
        dialect = self.db.get_bind().dialect.name
        try:
            return _DIALECT_INSERTS[dialect]
        except KeyError:
            raise StoreError(f"Conflict-skip upserts are not supported on '{dialect}'")

    @staticmethod
    def _validate(table: str, columns: Sequence[str], rows: Sequence[Row]) -> List[Dict[str, Any]]:
        values = []
        for index, row in enumerate(rows):
            values.append(dict(zip(columns, _row_values(table, columns, index, row))))
        return values


def _row_values(table: str, columns: Sequence[str], index: int, row: Row) -> Tuple[Any, ...]:
    if isinstance(row, Mapping):
        if len(row) != len(columns) or any(c not in row for c in columns):
            raise RowArityError(table, index, len(columns), len(row))
        return tuple(row[c] for c in columns)

    if len(row) != len(columns):
        raise RowArityError(table, index, len(columns), len(row))
    return tuple(row)
