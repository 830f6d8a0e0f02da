"""
Census Bureau API client for ACS migration flows.

This module provides:
- CensusFlowsClient.query: one-anchor flow rows from the ACS flows API
- CensusFlowsClient.entity_metadata: name and population of an entity

The flows API answers for one anchor geography at a time. Rows from a
county-anchored query describe counterpart geographies; MOVEDIN is populated
for moves into the anchor while MOVEDOUT is frequently null (always for
state-level and abroad counterparts), so callers must not assume both
directions are present.

Data Sources:
- https://api.census.gov/data/{year}/acs/flows
- https://api.census.gov/data/{year}/acs/acs5 (B01003_001E, total population)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from config.settings import get_config
from flow_asymmetry.exceptions import MalformedRecordError, TransientSourceError

logger = logging.getLogger(__name__)

FLOW_FIELDS = ["GEOID2", "FULL2_NAME", "MOVEDIN", "MOVEDOUT"]
POPULATION_VARIABLE = "B01003_001E"

# Status codes worth retrying
TRANSIENT_STATUS = {429, 500, 502, 503, 504}


def _geography_params(entity_id: str) -> Dict[str, str]:
    """Translate a canonical county or state id into API geography params."""
    if len(entity_id) == 5 and entity_id.isdigit():
        return {"for": f"county:{entity_id[2:]}", "in": f"state:{entity_id[:2]}"}
    if len(entity_id) == 2 and entity_id.isdigit():
        return {"for": f"state:{entity_id}"}
    raise MalformedRecordError(f"Cannot query the Census API for entity {entity_id!r}")


def _to_number(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        # Left as-is so the ingestor can count it as malformed
        return value


class CensusFlowsClient:
    """Client for the ACS county-to-county migration flows API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the Census client.

        Parameters
        ----------
        api_key : Optional[str]
            Census API key. Uses CENSUS_API_KEY if None.
        base_url : Optional[str]
            API root. Uses the configured default if None.
        timeout : Optional[int]
            Request timeout in seconds
        session : Optional[requests.Session]
            Session to reuse connections; a plain requests.get is used if None
        """
        config = get_config().census
        self.api_key = api_key if api_key is not None else config.api_key
        self.base_url = (base_url or config.base_url).rstrip("/")
        self.timeout = timeout or config.request_timeout
        self.session = session
        self.headers = {
            "Accept": "application/json",
            "User-Agent": config.user_agent,
        }

    def _get(self, url: str, params: Dict[str, str]) -> List[List[Any]]:
        if self.api_key:
            params = {**params, "key": self.api_key}
        getter = self.session.get if self.session is not None else requests.get

        try:
            response = getter(url, params=params, headers=self.headers, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientSourceError(f"Request to {url} failed: {e}") from e

        if response.status_code in TRANSIENT_STATUS:
            raise TransientSourceError(
                f"Census API returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return []
        if response.status_code >= 400:
            raise MalformedRecordError(
                f"Census API rejected query ({response.status_code}): {response.text[:200]}"
            )

        try:
            table = response.json()
        except ValueError as e:
            raise MalformedRecordError(f"Census API returned non-JSON body: {e}") from e

        if not isinstance(table, list) or not table or not isinstance(table[0], list):
            raise MalformedRecordError("Census API response is not a header-first table")
        return table

    def query(self, anchor_id: str, anchor_role: Any, year: int) -> List[Dict[str, Any]]:
        """
        Fetch flow rows for one anchor entity.

        Parameters
        ----------
        anchor_id : str
            Canonical county (5-digit) or state (2-digit) id
        anchor_role : AnchorRole
            Role the caller will read the rows in; the API serves both
            columns from the same call, so it only affects logging
        year : int
            ACS release year

        Returns
        -------
        List[Dict[str, Any]]
            Rows with counterpart_id, counterpart_name, magnitude_in and
            magnitude_out (either magnitude may be None)
        """
        params = {"get": ",".join(FLOW_FIELDS), **_geography_params(anchor_id)}
        url = f"{self.base_url}/{year}/acs/flows"
        logger.debug(f"Querying flows for {anchor_id} ({getattr(anchor_role, 'value', anchor_role)}) {year}")

        table = self._get(url, params)
        if not table:
            return []

        header, body = table[0], table[1:]
        missing = [f for f in FLOW_FIELDS if f not in header]
        if missing:
            raise MalformedRecordError(f"Flows response lacks columns {missing}")
        index = {name: header.index(name) for name in FLOW_FIELDS}

        rows = []
        for values in body:
            rows.append({
                "counterpart_id": values[index["GEOID2"]],
                "counterpart_name": values[index["FULL2_NAME"]],
                "magnitude_in": _to_number(values[index["MOVEDIN"]]),
                "magnitude_out": _to_number(values[index["MOVEDOUT"]]),
            })
        return rows

    def entity_metadata(self, entity_id: str, year: Optional[int] = None) -> Dict[str, Any]:
        """
        Fetch display name and total population for an entity.

        Returns
        -------
        Dict[str, Any]
            {"name": str, "population": Optional[int]}
        """
        year = year or get_config().census.year
        params = {"get": f"NAME,{POPULATION_VARIABLE}", **_geography_params(entity_id)}
        table = self._get(f"{self.base_url}/{year}/acs/acs5", params)
        if len(table) < 2:
            return {"name": entity_id, "population": None}

        header, values = table[0], table[1]
        record = dict(zip(header, values))
        population = record.get(POPULATION_VARIABLE)
        return {
            "name": record.get("NAME", entity_id),
            "population": int(population) if population not in (None, "") else None,
        }
