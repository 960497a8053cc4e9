"""Immutable in-memory place index built from a GeoNames cities dump.

The index is loaded once at startup and shared read-only by every request,
so records are frozen and the collection exposes no mutation API.
"""

from __future__ import annotations

import csv
import logging
import os
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Tuple

from citysuggest.core.config import settings
from citysuggest.nlp.normalizer import normalize

logger = logging.getLogger(__name__)

COLUMNS = (
    "id",
    "name",
    "ascii",
    "alt_name",
    "lat",
    "long",
    "feat_class",
    "feat_code",
    "country",
    "cc2",
    "admin1",
    "admin2",
    "admin3",
    "admin4",
    "population",
    "elevation",
    "dem",
    "tz",
    "modified_at",
)

US_STATES = {
    "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas",
    "CA": "California", "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware",
    "DC": "District of Columbia", "FL": "Florida", "GA": "Georgia", "HI": "Hawaii",
    "ID": "Idaho", "IL": "Illinois", "IN": "Indiana", "IA": "Iowa",
    "KS": "Kansas", "KY": "Kentucky", "LA": "Louisiana", "ME": "Maine",
    "MD": "Maryland", "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota",
    "MS": "Mississippi", "MO": "Missouri", "MT": "Montana", "NE": "Nebraska",
    "NV": "Nevada", "NH": "New Hampshire", "NJ": "New Jersey", "NM": "New Mexico",
    "NY": "New York", "NC": "North Carolina", "ND": "North Dakota", "OH": "Ohio",
    "OK": "Oklahoma", "OR": "Oregon", "PA": "Pennsylvania", "RI": "Rhode Island",
    "SC": "South Carolina", "SD": "South Dakota", "TN": "Tennessee", "TX": "Texas",
    "UT": "Utah", "VT": "Vermont", "VA": "Virginia", "WA": "Washington",
    "WV": "West Virginia", "WI": "Wisconsin", "WY": "Wyoming", "PR": "Puerto Rico",
}

# GeoNames uses numeric admin1 codes for Canada
CA_PROVINCES = {
    "01": "Alberta",
    "02": "British Columbia",
    "03": "Manitoba",
    "04": "New Brunswick",
    "05": "Newfoundland and Labrador",
    "07": "Nova Scotia",
    "08": "Ontario",
    "09": "Prince Edward Island",
    "10": "Quebec",
    "11": "Saskatchewan",
    "12": "Yukon",
    "13": "Northwest Territories",
    "14": "Nunavut",
}

REGIONS = {"US": US_STATES, "CA": CA_PROVINCES}


class PlaceIndexError(RuntimeError):
    """Raised when the place dataset cannot be turned into a usable index."""


@dataclass(frozen=True)
class PlaceRecord:
    id: str
    name: str
    region: str
    country: str
    latitude: float
    longitude: float
    population: int
    key: str
    alt_keys: Tuple[str, ...] = ()
    display_key: str = ""

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.name, self.region, self.country) if p]
        return ", ".join(parts)


def build_record(
    id: str,
    name: str,
    region: str,
    country: str,
    latitude: float,
    longitude: float,
    population: int = 0,
    alt_names: Iterable[str] = (),
) -> PlaceRecord:
    """Create a record with its normalized search keys precomputed."""
    key = normalize(name)
    display_key = normalize(", ".join(p for p in (name, region, country) if p))

    alt_keys = []
    for alt in alt_names:
        alt_key = normalize(alt)
        if alt_key and alt_key not in (key, display_key) and alt_key not in alt_keys:
            alt_keys.append(alt_key)

    return PlaceRecord(
        id=str(id),
        name=name,
        region=region,
        country=country,
        latitude=float(latitude),
        longitude=float(longitude),
        population=int(population),
        key=key,
        alt_keys=tuple(alt_keys),
        display_key=display_key,
    )


class PlaceIndex:
    """Read-only ordered collection of place records."""

    def __init__(self, records: Iterable[PlaceRecord]):
        self._records: Tuple[PlaceRecord, ...] = tuple(records)

    @property
    def records(self) -> Tuple[PlaceRecord, ...]:
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[PlaceRecord]:
        return iter(self._records)


def resolve_region(country: str, admin1: str) -> str:
    return REGIONS.get(country, {}).get(admin1, admin1)


def _parse_row(row: dict, load_alt_names: bool) -> PlaceRecord:
    alt_names = []
    if load_alt_names and row.get("alt_name"):
        alt_names = [a for a in row["alt_name"].split(",") if a.strip()]
    if row.get("ascii") and row["ascii"] != row["name"]:
        alt_names.append(row["ascii"])

    return build_record(
        id=row["id"],
        name=row["name"],
        region=resolve_region(row["country"], row["admin1"]),
        country=row["country"],
        latitude=float(row["lat"]),
        longitude=float(row["long"]),
        population=int(row["population"] or 0),
        alt_names=alt_names,
    )


def load_place_index(
    path: Optional[str] = None,
    min_population: Optional[int] = None,
    load_alt_names: Optional[bool] = None,
) -> PlaceIndex:
    if path is None:
        path = settings.PLACES_PATH
    if min_population is None:
        min_population = settings.PLACES_MIN_POPULATION
    if load_alt_names is None:
        load_alt_names = settings.PLACES_LOAD_ALT_NAMES

    if not os.path.exists(path):
        raise PlaceIndexError(f"Place dataset {path} not found.")

    records = []
    skipped = 0
    try:
        with open(path, encoding="utf-8", newline="") as fh:
            reader = csv.reader(fh, delimiter="\t", quoting=csv.QUOTE_NONE)
            for line_no, values in enumerate(reader, start=1):
                if not values or values[0] == "id":
                    continue
                row = dict(zip(COLUMNS, values))
                try:
                    record = _parse_row(row, load_alt_names)
                except (KeyError, ValueError) as e:
                    skipped += 1
                    logger.warning(f"Skipping malformed row {line_no} in {path}: {e}")
                    continue
                if record.population < min_population:
                    continue
                records.append(record)
    except OSError as e:
        raise PlaceIndexError(f"Cannot read place dataset {path}: {e}") from e

    if not records:
        raise PlaceIndexError(f"Place dataset {path} produced an empty index.")

    logger.info(f"Loaded {len(records)} places from {path} ({skipped} rows skipped)")
    return PlaceIndex(records)
