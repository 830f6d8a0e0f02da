"""
Geography classification service.

One set of lookup tables, loaded once and shared by the identifier normalizer
and the regional aggregator:
- State FIPS codes and names
- Census Bureau regions for each state
- International region codes used by the ACS flows tables
- Optional externally supplied entity -> region mappings
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

import pandas as pd

logger = logging.getLogger(__name__)


STATE_NAMES: Dict[str, str] = {
    "01": "Alabama",
    "02": "Alaska",
    "04": "Arizona",
    "05": "Arkansas",
    "06": "California",
    "08": "Colorado",
    "09": "Connecticut",
    "10": "Delaware",
    "11": "District of Columbia",
    "12": "Florida",
    "13": "Georgia",
    "15": "Hawaii",
    "16": "Idaho",
    "17": "Illinois",
    "18": "Indiana",
    "19": "Iowa",
    "20": "Kansas",
    "21": "Kentucky",
    "22": "Louisiana",
    "23": "Maine",
    "24": "Maryland",
    "25": "Massachusetts",
    "26": "Michigan",
    "27": "Minnesota",
    "28": "Mississippi",
    "29": "Missouri",
    "30": "Montana",
    "31": "Nebraska",
    "32": "Nevada",
    "33": "New Hampshire",
    "34": "New Jersey",
    "35": "New Mexico",
    "36": "New York",
    "37": "North Carolina",
    "38": "North Dakota",
    "39": "Ohio",
    "40": "Oklahoma",
    "41": "Oregon",
    "42": "Pennsylvania",
    "44": "Rhode Island",
    "45": "South Carolina",
    "46": "South Dakota",
    "47": "Tennessee",
    "48": "Texas",
    "49": "Utah",
    "50": "Vermont",
    "51": "Virginia",
    "53": "Washington",
    "54": "West Virginia",
    "55": "Wisconsin",
    "56": "Wyoming",
    "72": "Puerto Rico",
}

# Census Bureau regions (Puerto Rico belongs to none)
CENSUS_REGIONS: Dict[str, str] = {
    **{code: "Northeast" for code in ("09", "23", "25", "33", "34", "36", "42", "44", "50")},
    **{code: "Midwest" for code in (
        "17", "18", "19", "20", "26", "27", "29", "31", "38", "39", "46", "55",
    )},
    **{code: "South" for code in (
        "01", "05", "10", "11", "12", "13", "21", "22", "24",
        "28", "37", "40", "45", "47", "48", "51", "54",
    )},
    **{code: "West" for code in (
        "02", "04", "06", "08", "15", "16", "30", "32", "35", "41", "49", "53", "56",
    )},
}

# Counterpart codes for moves from abroad in the ACS flows tables
INTERNATIONAL_REGIONS: Dict[str, str] = {
    "AFR": "Africa",
    "ASI": "Asia",
    "CAM": "Central America",
    "CAR": "Caribbean",
    "EUR": "Europe",
    "NAM": "Northern America",
    "OCE": "Oceania and At Sea",
    "SAM": "South America",
}


class GeographyRegistry:
    """
    Shared classification service for geographic identifiers.

    Parameters
    ----------
    region_mapping : Optional[Mapping[str, str]]
        Explicit entity id -> region label overrides. Entities not present
        fall back to the Census region of their state.
    county_names : Optional[Mapping[str, str]]
        Display names for 5-digit county ids, if known.
    """

    def __init__(
        self,
        region_mapping: Optional[Mapping[str, str]] = None,
        county_names: Optional[Mapping[str, str]] = None,
    ):
        self.state_names = dict(STATE_NAMES)
        self.census_regions = dict(CENSUS_REGIONS)
        self.international_regions = dict(INTERNATIONAL_REGIONS)
        self.region_mapping: Dict[str, str] = dict(region_mapping or {})
        self.county_names: Dict[str, str] = dict(county_names or {})

    @classmethod
    def from_csv(
        cls,
        path: Union[str, Path],
        id_column: str = "entity_id",
        region_column: str = "region",
    ) -> "GeographyRegistry":
        """
        Build a registry whose region overrides come from a CSV file.

        Ids are read as strings so FIPS leading zeros survive.
        """
        frame = pd.read_csv(path, dtype=str)
        missing = {id_column, region_column} - set(frame.columns)
        if missing:
            raise ValueError(f"Region mapping {path} lacks columns: {sorted(missing)}")

        frame = frame.dropna(subset=[id_column, region_column])
        mapping = dict(zip(frame[id_column].str.strip(), frame[region_column].str.strip()))
        logger.info(f"Loaded {len(mapping)} region assignments from {path}")
        return cls(region_mapping=mapping)

    def is_state_code(self, code: str) -> bool:
        return code in self.state_names

    def is_international_code(self, code: str) -> bool:
        return code in self.international_regions

    def state_name(self, code: str) -> Optional[str]:
        return self.state_names.get(code)

    def international_name(self, code: str) -> Optional[str]:
        return self.international_regions.get(code)

    def county_name(self, geoid: str) -> Optional[str]:
        return self.county_names.get(geoid)

    def state_region(self, state_code: str) -> Optional[str]:
        return self.census_regions.get(state_code)

    def region_for(self, entity_id: str) -> Optional[str]:
        """
        Region label of a canonical entity id.

        Explicit overrides win; otherwise counties and states resolve to the
        Census region of their state.
        """
        if entity_id in self.region_mapping:
            return self.region_mapping[entity_id]
        if len(entity_id) == 5 and entity_id.isdigit():
            return self.census_regions.get(entity_id[:2])
        return self.census_regions.get(entity_id)
