from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass

from ingest.fetch import BMKG_BASE_URL
from ingest.parsers.bmkg import parse_bmkg_document, records_of


LOGGER = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
_LINTANG_RE = re.compile(r"(?P<value>\d+(?:\.\d+)?)\s*(?P<hem>LU|LS)", re.IGNORECASE)
_BUJUR_RE = re.compile(r"(?P<value>\d+(?:\.\d+)?)\s*(?P<hem>BT|BB)", re.IGNORECASE)


class InvalidRecordError(ValueError):
    pass


@dataclass(frozen=True)
class EarthquakeRecord:
    latitude: float
    longitude: float
    magnitude: float = 0.0
    depth_km: float = 0.0
    datetime_local: str | None = None
    datetime_utc: str | None = None
    region: str | None = None
    tsunami_potential: str | None = None
    felt_report: str | None = None
    shakemap_url: str | None = None
    coordinate_string: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _leading_number(value: object) -> float:
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _NUMBER_RE.search(str(value))
        if match is None:
            return 0.0
        number = float(match.group(0))
    # Magnitude and depth are never negative.
    return max(0.0, number)


def _split_pair(value: object) -> tuple[str, str] | None:
    if isinstance(value, (list, tuple)) and len(value) >= 2:
        return (str(value[0]), str(value[1]))
    if isinstance(value, str) and "," in value:
        first, second = value.split(",", 1)
        return (first.strip(), second.strip())
    return None


def _coords_from_point(raw: dict) -> tuple[float, float] | None:
    point = raw.get("point")
    if not isinstance(point, dict):
        return None
    pair = _split_pair(point.get("coordinates"))
    if pair is None:
        return None
    lon, lat = pair
    return (float(lat), float(lon))


def _coords_from_string(raw: dict) -> tuple[float, float] | None:
    pair = _split_pair(raw.get("Coordinates"))
    if pair is None:
        return None
    lat, lon = pair
    return (float(lat), float(lon))


def _coords_from_hemispheres(raw: dict) -> tuple[float, float] | None:
    lintang = _LINTANG_RE.search(str(raw.get("Lintang") or ""))
    bujur = _BUJUR_RE.search(str(raw.get("Bujur") or ""))
    if lintang is None or bujur is None:
        return None
    lat = float(lintang.group("value"))
    if lintang.group("hem").upper() == "LS":
        lat = -lat
    lon = float(bujur.group("value"))
    if bujur.group("hem").upper() == "BB":
        lon = -lon
    return (lat, lon)


def _extract_coords(raw: dict) -> tuple[float, float]:
    for extractor in (_coords_from_point, _coords_from_string, _coords_from_hemispheres):
        try:
            coords = extractor(raw)
        except ValueError as e:
            raise InvalidRecordError(f"unparseable coordinates: {e}") from e
        if coords is not None:
            lat, lon = coords
            if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
                raise InvalidRecordError(f"coordinates out of range: {lat}, {lon}")
            return coords
    raise InvalidRecordError("earthquake record has no coordinates")


def _local_datetime(raw: dict) -> str | None:
    tanggal = _optional_str(raw.get("Tanggal"))
    jam = _optional_str(raw.get("Jam"))
    if tanggal is None:
        return None
    if jam is not None and "," not in tanggal:
        return f"{tanggal}, {jam}"
    return tanggal


def normalize_bmkg_record(raw: dict) -> EarthquakeRecord:
    lat, lon = _extract_coords(raw)

    shakemap = _optional_str(raw.get("Shakemap"))
    shakemap_url = BMKG_BASE_URL + shakemap.lstrip("/") if shakemap else None

    return EarthquakeRecord(
        latitude=lat,
        longitude=lon,
        magnitude=_leading_number(raw.get("Magnitude")),
        depth_km=_leading_number(raw.get("Kedalaman")),
        datetime_local=_local_datetime(raw),
        datetime_utc=_optional_str(raw.get("DateTime")),
        region=_optional_str(raw.get("Wilayah")),
        tsunami_potential=_optional_str(raw.get("Potensi")),
        felt_report=_optional_str(raw.get("Dirasakan")),
        shakemap_url=shakemap_url,
        coordinate_string=_optional_str(raw.get("Coordinates")),
    )


def normalize_bmkg_document(doc: object) -> list[EarthquakeRecord]:
    records: list[EarthquakeRecord] = []
    for raw in records_of(parse_bmkg_document(doc)):
        try:
            records.append(normalize_bmkg_record(raw))
        except InvalidRecordError as e:
            LOGGER.warning("skipping BMKG record: %s (%r)", e, raw)
    return records
