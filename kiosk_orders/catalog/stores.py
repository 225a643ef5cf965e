"""Store seed data and distance helpers."""
import math
from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class StoreSeed:
    id: str
    name: str
    city: str
    latitude: float
    longitude: float


SEED_STORES: List[StoreSeed] = [
    StoreSeed("store-kungens-kurva", "IKEA Kungens Kurva", "Stockholm", 59.2753, 17.9295),
    StoreSeed("store-barkarby", "IKEA Barkarby", "Stockholm", 59.4054, 17.8469),
    StoreSeed("store-malmo", "IKEA Malmö", "Malmö", 55.5710, 13.0003),
    StoreSeed("store-goteborg", "IKEA Göteborg", "Göteborg", 57.7239, 12.0160),
    StoreSeed("store-linkoping", "IKEA Linköping", "Linköping", 58.3880, 15.6710),
]

EARTH_RADIUS_KM = 6371.0


def haversine_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
