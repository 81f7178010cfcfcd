from datetime import datetime, timezone
from shapely.ops import transform
from pyproj import CRS, Transformer

def unixtimestamp(iso_str: str|None = None) -> float:
    if iso_str is not None:
        return datetime.fromisoformat(iso_str).timestamp()
    else:
        return datetime.now(timezone.utc).timestamp()

def web_mercator(geometry: object) -> object:
    transformer = Transformer.from_crs(
        CRS("EPSG:4326"),
        CRS("EPSG:3857"),
        always_xy=True
    )

    return transform(transformer.transform, geometry)

def clamp(value: float|int, min_value: float|int, max_value: float|int) -> float|int:
    return max(min_value, min(max_value, value))

def parse_timestamp(value: object) -> float:
    # clients send either unix seconds, unix milliseconds or ISO 8601 strings
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return unixtimestamp(value)

    timestamp: float = float(value)
    if timestamp > 1e11:
        timestamp = timestamp / 1000.0

    return timestamp
