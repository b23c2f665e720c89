"""
Tests for batched conflict-skip upserts
"""
from datetime import datetime, timedelta, timezone
import math

import pytest
from faker import Faker
from sqlalchemy import event, func, select

from traffic_feed.core.errors import BatchWriteError, RowArityError
from traffic_feed.models.database import (
    Location, TrafficMeasurement, TrafficVehicleMeasurement, VehicleClass
)
from traffic_feed.services.bulk_upsert import BatchUpsertEngine

fake = Faker()

BASE_TIME = datetime(2024, 1, 20, 9, 30, tzinfo=timezone.utc)


def measurement(location_id, minutes=0, **overrides):
    row = {
        "location_id": location_id,
        "observation_time": BASE_TIME + timedelta(minutes=minutes),
        "occupancy_rate": 5,
        "availability_rate": 100,
        "total_vehicles_passed": 20,
        "average_speed": 90,
        "max_speed": 110,
    }
    row.update(overrides)
    return row


@pytest.fixture
def insert_statements(db_engine):
    """Capture the INSERT statements sent to the database"""
    statements = []

    def capture(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("INSERT"):
            statements.append(statement)

    event.listen(db_engine, "before_cursor_execute", capture)
    yield statements
    event.remove(db_engine, "before_cursor_execute", capture)


class TestLocations:

    def test_insert_locations(self, db_session):
        engine = BatchUpsertEngine(db_session)

        result = engine.upsert_locations([
            {"location_id": 1, "latitude": 51.0, "longitude": 4.0},
            {"location_id": 2, "latitude": 50.9, "longitude": 4.1},
        ])

        assert result.rows_submitted == 2
        assert result.rows_inserted == 2
        assert result.chunks_written == 1
        assert db_session.scalar(select(func.count()).select_from(Location)) == 2

    def test_existing_location_is_not_overwritten(self, db_session):
        engine = BatchUpsertEngine(db_session)

        engine.upsert_locations([{"location_id": 1, "latitude": 51.0, "longitude": 4.0}])
        result = engine.upsert_locations([{"location_id": 1, "latitude": 10.0, "longitude": 20.0}])

        assert result.rows_submitted == 1
        assert result.rows_inserted == 0

        location = db_session.get(Location, 1)
        assert (location.latitude, location.longitude) == (51.0, 4.0)


class TestMeasurements:

    def test_existing_measurement_is_not_overwritten(self, db_session):
        engine = BatchUpsertEngine(db_session)

        engine.upsert_measurements([measurement(7, average_speed=90, total_vehicles_passed=20)])
        engine.upsert_measurements([measurement(7, average_speed=30, total_vehicles_passed=99)])

        rows = db_session.execute(select(TrafficMeasurement)).scalars().all()
        assert len(rows) == 1
        assert rows[0].average_speed == 90
        assert rows[0].total_vehicles_passed == 20

    def test_duplicate_key_within_one_call(self, db_session):
        engine = BatchUpsertEngine(db_session)

        result = engine.upsert_measurements([measurement(7, max_speed=110), measurement(7, max_speed=50)])

        assert result.rows_inserted == 1

        rows = db_session.execute(select(TrafficMeasurement)).scalars().all()
        assert len(rows) == 1

    def test_nullable_speeds(self, db_session):
        engine = BatchUpsertEngine(db_session)

        engine.upsert_measurements([measurement(7, average_speed=None, max_speed=None)])

        row = db_session.execute(select(TrafficMeasurement)).scalar_one()
        assert row.average_speed is None
        assert row.max_speed is None

    def test_empty_input_writes_nothing(self, db_session, insert_statements):
        result = BatchUpsertEngine(db_session).upsert_measurements([])

        assert result.chunks_written == 0
        assert insert_statements == []


class TestChunking:

    @pytest.mark.parametrize("count", [1, 999, 1000, 1001, 2500])
    def test_one_statement_per_chunk(self, db_session, insert_statements, count):
        rows = [measurement(i % 50, minutes=i // 50) for i in range(count)]

        result = BatchUpsertEngine(db_session).upsert_measurements(rows)

        assert result.chunks_written == math.ceil(count / 1000)
        assert len(insert_statements) == math.ceil(count / 1000)
        assert db_session.scalar(select(func.count()).select_from(TrafficMeasurement)) == count

    def test_values_survive_chunk_boundaries(self, db_session):
        rows = [
            measurement(
                i,
                occupancy_rate=fake.pyint(min_value=0, max_value=100),
                total_vehicles_passed=fake.pyint(min_value=0, max_value=500),
                average_speed=fake.pyint(min_value=0, max_value=130),
                max_speed=fake.pyint(min_value=0, max_value=200),
            )
            for i in range(2100)
        ]

        BatchUpsertEngine(db_session).upsert_measurements(rows)

        stored = {
            m.location_id: m
            for m in db_session.execute(select(TrafficMeasurement)).scalars()
        }
        for row in (rows[0], rows[999], rows[1000], rows[1001], rows[2099]):
            m = stored[row["location_id"]]
            assert m.occupancy_rate == row["occupancy_rate"]
            assert m.total_vehicles_passed == row["total_vehicles_passed"]
            assert m.average_speed == row["average_speed"]
            assert m.max_speed == row["max_speed"]

    def test_custom_batch_size(self, db_session, insert_statements):
        rows = [{"location_id": i, "latitude": 51.0, "longitude": 4.0} for i in range(25)]

        result = BatchUpsertEngine(db_session, batch_size=10).upsert_locations(rows)

        assert result.chunks_written == 3
        assert len(insert_statements) == 3

    def test_inserted_count_excludes_existing_rows_in_every_chunk(self, db_session):
        engine = BatchUpsertEngine(db_session)
        engine.upsert_measurements([measurement(i) for i in range(1500)])

        result = engine.upsert_measurements([measurement(i) for i in range(2500)])

        assert result.rows_submitted == 2500
        assert result.chunks_written == 3
        assert result.rows_inserted == 1000


class TestFailures:

    def test_row_arity_mismatch_writes_nothing(self, db_session, insert_statements):
        rows = [(1, 51.0, 4.0), (2, 50.9)]

        with pytest.raises(RowArityError) as exc_info:
            BatchUpsertEngine(db_session).upsert_locations(rows)

        assert exc_info.value.row_index == 1
        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2
        assert exc_info.value.to_payload()["code"] == "ROW_ARITY_ERROR"
        assert insert_statements == []

    def test_mapping_with_missing_column_is_rejected(self, db_session):
        with pytest.raises(RowArityError):
            BatchUpsertEngine(db_session).upsert_locations([{"location_id": 1, "latitude": 51.0}])

    def test_failed_chunk_keeps_earlier_chunks(self, db_session):
        rows = [measurement(i) for i in range(2500)]
        # NOT NULL violation in the second chunk
        rows[1500]["occupancy_rate"] = None

        with pytest.raises(BatchWriteError) as exc_info:
            BatchUpsertEngine(db_session).upsert_measurements(rows)

        assert exc_info.value.chunk_index == 1
        assert exc_info.value.committed_chunks == 1
        assert exc_info.value.status == 500
        assert db_session.scalar(select(func.count()).select_from(TrafficMeasurement)) == 1000


def test_vehicle_measurements_conflict_on_class(db_session):
    engine = BatchUpsertEngine(db_session)
    row = {
        "location_id": 7,
        "observation_time": BASE_TIME,
        "vehicle_class": VehicleClass.CARS,
        "traffic_intensity": 12,
        "vehicle_speed_arithmetic": 98,
        "vehicle_speed_harmonic": 95,
    }

    engine.upsert_vehicle_measurements([row, {**row, "vehicle_class": VehicleClass.VANS}])
    engine.upsert_vehicle_measurements([{**row, "traffic_intensity": 1}])

    stored = db_session.execute(select(TrafficVehicleMeasurement)).scalars().all()
    assert len(stored) == 2
    cars = next(s for s in stored if s.vehicle_class is VehicleClass.CARS)
    assert cars.traffic_intensity == 12
