"""
Identifier normalization for flow-query results.

The flows source encodes counterpart identifiers at a different granularity
than the anchor: a county-anchored query returns other counties as 5-digit
GEOIDs, whole states as zero-padded 3-digit codes ("006"), and moves from
abroad as 3-letter world-region codes ("EUR"). Identifiers are therefore
classified by shape alone and resolved to canonical GeographicEntity objects.
"""

from __future__ import annotations

import logging
import numbers
import re
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .geography import GeographyRegistry
from .models import AnchorRole, EntityKind, GeographicEntity

logger = logging.getLogger(__name__)

_COUNTY_SUFFIX = re.compile(r"\s+(County|Parish|Borough|Census Area|Municipality)$")


@dataclass(frozen=True)
class QueryContext:
    """The query that produced an identifier."""

    anchor_id: str
    anchor_role: AnchorRole


def clean_display_name(name: Optional[str]) -> Optional[str]:
    """
    Strip the state suffix and county designator from a Census place name.

    >>> clean_display_name("Harris County, Texas")
    'Harris'
    """
    if name is None:
        return None
    name = str(name).strip()
    if not name:
        return None
    name = name.split(",", 1)[0].strip()
    return _COUNTY_SUFFIX.sub("", name) or None


def _as_code(raw_id: Any) -> str:
    # Integer FIPS codes have lost their leading zeros: 6037 is 06037, 6 is 06
    if isinstance(raw_id, numbers.Integral) and not isinstance(raw_id, bool) and raw_id >= 0:
        digits = str(int(raw_id))
        if len(digits) in (4, 5):
            return digits.zfill(5)
        if len(digits) in (1, 2):
            return digits.zfill(2)
        return digits
    return str(raw_id).strip()


class IdentifierNormalizer:
    """
    Resolve raw identifiers into canonical, cached GeographicEntity objects.

    Never raises: unrecognized shapes become UNCLASSIFIED entities so callers
    can filter them out instead of aborting a batch. Entities are created on
    first encounter and returned unchanged thereafter, so the normalizer is
    safe to share across ingestion threads.

    Parameters
    ----------
    registry : Optional[GeographyRegistry]
        Classification service providing state, region and name tables.
    """

    def __init__(self, registry: Optional[GeographyRegistry] = None):
        self.registry = registry or GeographyRegistry()
        self._entities: Dict[str, GeographicEntity] = {}
        self._lock = threading.Lock()

    def normalize(
        self,
        raw_id: Any,
        context: Optional[QueryContext] = None,
        name: Optional[str] = None,
    ) -> GeographicEntity:
        """
        Normalize a raw identifier.

        Parameters
        ----------
        raw_id : Any
            Identifier as returned by the source (str, int or None)
        context : Optional[QueryContext]
            Query that produced the identifier, used for diagnostics
        name : Optional[str]
            Display name supplied alongside the identifier

        Returns
        -------
        GeographicEntity
            Canonical entity; kind UNCLASSIFIED when the shape is unknown
        """
        code = "" if raw_id is None else _as_code(raw_id)
        kind, canonical_id = self._classify(code)

        with self._lock:
            entity = self._entities.get(canonical_id)
            if entity is None:
                entity = self._build_entity(canonical_id, kind, name)
                self._entities[canonical_id] = entity
                if kind is EntityKind.UNCLASSIFIED:
                    logger.debug(
                        f"Unclassified identifier {code!r}"
                        + (f" from {context.anchor_role.value} query {context.anchor_id}" if context else "")
                    )
        return entity

    def get(self, entity_id: str) -> Optional[GeographicEntity]:
        """Return a previously normalized entity, if any."""
        return self._entities.get(entity_id)

    @property
    def entities(self) -> Dict[str, GeographicEntity]:
        with self._lock:
            return dict(self._entities)

    def _classify(self, code: str):
        registry = self.registry

        if code.isdigit() and code.isascii():
            if len(code) == 5:
                return EntityKind.COUNTY, code
            if len(code) == 2 and registry.is_state_code(code):
                return EntityKind.STATE, code
            if len(code) == 3 and code.startswith("0") and registry.is_state_code(code[1:]):
                return EntityKind.STATE, code[1:]

        elif len(code) == 3 and code.isalpha() and registry.is_international_code(code.upper()):
            return EntityKind.COUNTRY, code.upper()

        return EntityKind.UNCLASSIFIED, code

    def _build_entity(
        self,
        canonical_id: str,
        kind: EntityKind,
        name: Optional[str],
    ) -> GeographicEntity:
        registry = self.registry
        display = clean_display_name(name)

        if kind is EntityKind.COUNTY:
            return GeographicEntity(
                entity_id=canonical_id,
                name=display or registry.county_name(canonical_id) or canonical_id,
                kind=kind,
                parent_region=canonical_id[:2],
            )
        if kind is EntityKind.STATE:
            return GeographicEntity(
                entity_id=canonical_id,
                name=registry.state_name(canonical_id) or display or canonical_id,
                kind=kind,
                parent_region=registry.state_region(canonical_id),
            )
        if kind is EntityKind.COUNTRY:
            return GeographicEntity(
                entity_id=canonical_id,
                name=registry.international_name(canonical_id) or display or canonical_id,
                kind=kind,
            )
        return GeographicEntity(
            entity_id=canonical_id,
            name=display or canonical_id or "<blank>",
            kind=kind,
        )
