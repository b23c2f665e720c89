"""
In-memory location directory built from the configuration feed
"""
from typing import Dict, Iterable, List, Optional, Tuple
import logging

import pandas as pd

from traffic_feed.models.feed import LocationRecord

logger = logging.getLogger(__name__)

Coordinates = Tuple[float, float]


class LocationDirectory:
    """
    Lookup from measuring point id to (latitude, longitude)
    Rebuilt from scratch on every ingestion run
    """

    def __init__(self, coordinates: Dict[int, Coordinates]):
        self._coordinates = coordinates

    @classmethod
    def from_records(cls, records: Iterable[LocationRecord]) -> "LocationDirectory":
        """
        Build the directory; when an id appears twice the first occurrence wins
        """
        df = pd.DataFrame(
            [r.model_dump() for r in records],
            columns=["unique_id", "latitude", "longitude"]
        )
        if df.empty:
            return cls({})

        initial_count = len(df)
        df_unique = df.drop_duplicates(subset=["unique_id"], keep="first")

        duplicates_removed = initial_count - len(df_unique)
        if duplicates_removed > 0:
            logger.warning(f"Ignored {duplicates_removed} duplicate location ids")

        coordinates = {
            int(row.unique_id): (float(row.latitude), float(row.longitude))
            for row in df_unique.itertuples(index=False)
        }
        return cls(coordinates)

    def get(self, location_id: int) -> Optional[Coordinates]:
        return self._coordinates.get(location_id)

    def __contains__(self, location_id: object) -> bool:
        return location_id in self._coordinates

    def __len__(self) -> int:
        return len(self._coordinates)

    def to_locations(self) -> List[Dict[str, float]]:
        """Location rows ready for the upsert engine"""
        return [
            {"location_id": location_id, "latitude": lat, "longitude": lon}
            for location_id, (lat, lon) in self._coordinates.items()
        ]
