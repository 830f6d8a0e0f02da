"""
Concurrent per-anchor flow ingestion.

The flows source answers one anchor at a time and, per query, only one
direction is reliable: a destination-anchored query yields inbound rows
(counterpart -> anchor, read from magnitude_in); outbound rows require a
separate origin-anchored query (anchor -> counterpart, read from
magnitude_out). Each (anchor, role) query runs as an independent task that
returns its own private AnchorResult; the coordinating thread merges them
once tasks complete.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import Counter
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from tqdm import tqdm

from config.settings import IngestionConfig, get_config
from flow_asymmetry.exceptions import IngestionError, MalformedRecordError, TransientSourceError

from .manifest import RunManifest
from .models import AnchorRole, RawFlowEdge, SourceTag
from .normalization import IdentifierNormalizer, QueryContext

logger = logging.getLogger(__name__)


class FlowSource(Protocol):
    """Data-retrieval collaborator answering one-anchor flow queries."""

    def query(self, anchor_id: str, anchor_role: AnchorRole, year: int) -> List[Dict[str, Any]]:
        ...


@dataclass
class AnchorResult:
    """Outcome of one (anchor, role) query task."""

    anchor_id: str
    anchor_role: AnchorRole
    status: str  # ok | no_data | failed | timeout | cancelled
    edges: List[RawFlowEdge] = field(default_factory=list)
    attempts: int = 0
    dropped: Counter = field(default_factory=Counter)
    detail: Optional[str] = None


@dataclass
class IngestionResult:
    """Merged output of an ingestion batch."""

    edges: List[RawFlowEdge]
    manifest: RunManifest
    anchor_results: List[AnchorResult]
    cancelled: bool = False

    @property
    def succeeded(self) -> List[str]:
        return [r.anchor_id for r in self.anchor_results if r.status == "ok"]


class FlowIngestor:
    """
    Issue bounded-concurrency flow queries and collect raw edges.

    Parameters
    ----------
    source : FlowSource
        Object exposing query(anchor_id, anchor_role, year)
    normalizer : Optional[IdentifierNormalizer]
        Shared normalizer; a fresh one is created if None
    config : Optional[IngestionConfig]
        Concurrency, retry and timeout settings. Uses default if None.
    progress : bool
        Show a tqdm progress bar
    """

    def __init__(
        self,
        source: FlowSource,
        normalizer: Optional[IdentifierNormalizer] = None,
        config: Optional[IngestionConfig] = None,
        progress: bool = False,
    ):
        self.source = source
        self.normalizer = normalizer or IdentifierNormalizer()
        self.config = config or get_config().ingestion
        self.progress = progress
        self._cancel_event = threading.Event()

    def cancel(self) -> None:
        """Stop issuing queries; completed anchors stay in the result."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def ingest(
        self,
        anchor_ids: Iterable[str],
        roles: Sequence[AnchorRole] = (AnchorRole.DESTINATION,),
        year: Optional[int] = None,
    ) -> IngestionResult:
        """
        Query every anchor in every requested role.

        Parameters
        ----------
        anchor_ids : Iterable[str]
            Raw or canonical anchor identifiers
        roles : Sequence[AnchorRole]
            Roles to query each anchor in. Pass both roles to observe
            outbound as well as inbound flows.
        year : Optional[int]
            Data year. Uses the configured Census year if None.

        Returns
        -------
        IngestionResult
            Raw edges plus a manifest of skipped anchors and dropped rows

        Raises
        ------
        IngestionError
            If no anchor produced any usable edge
        """
        year = year or get_config().census.year
        self._cancel_event.clear()
        manifest = RunManifest()

        tasks: List[Tuple[str, AnchorRole]] = []
        for raw_id in anchor_ids:
            entity = self.normalizer.normalize(raw_id)
            if not entity.is_primary:
                logger.warning(f"Skipping anchor {raw_id!r}: not a county or state identifier")
                manifest.skip_anchor(str(raw_id), "-", "invalid_anchor")
                continue
            for role in roles:
                tasks.append((entity.entity_id, AnchorRole(role)))
        tasks = list(dict.fromkeys(tasks))

        logger.info(
            f"Ingesting {len(tasks)} anchor queries for {year} "
            f"(max_concurrency={self.config.max_concurrency})"
        )
        results = self._run_tasks(tasks, year)

        edges: List[RawFlowEdge] = []
        for result in results:
            for reason, count in result.dropped.items():
                manifest.drop_rows(reason, count)
            if result.status == "ok":
                manifest.succeeded_anchors.append(result.anchor_id)
                edges.extend(result.edges)
            else:
                manifest.skip_anchor(
                    result.anchor_id, result.anchor_role.value, result.status,
                    attempts=result.attempts, detail=result.detail,
                )

        skipped = manifest.skipped_by_reason()
        if skipped:
            logger.warning(f"Skipped anchor queries: {skipped}")
        if manifest.dropped_rows:
            logger.info(f"Dropped rows: {dict(manifest.dropped_rows)}")
        logger.info(
            f"Collected {len(edges):,} raw edges from "
            f"{len(set(manifest.succeeded_anchors))} anchors"
        )

        if not manifest.succeeded_anchors:
            raise IngestionError(
                f"No anchor produced usable flow data ({len(tasks)} queries attempted)",
                manifest=manifest,
            )

        return IngestionResult(
            edges=edges,
            manifest=manifest,
            anchor_results=results,
            cancelled=any(r.status == "cancelled" for r in results),
        )

    def _run_tasks(self, tasks: List[Tuple[str, AnchorRole]], year: int) -> List[AnchorResult]:
        """Run all tasks under the concurrency limit and overall timeout."""
        results: List[AnchorResult] = []
        if not tasks:
            return results

        executor = ThreadPoolExecutor(max_workers=self.config.max_concurrency)
        futures = {
            executor.submit(self._fetch_anchor, anchor_id, role, year): (anchor_id, role)
            for anchor_id, role in tasks
        }
        pending = set(futures)
        deadline = time.monotonic() + self.config.ingestion_timeout

        progress = tqdm(total=len(futures), desc="Ingesting flows", disable=not self.progress)
        collected = set()

        def collect(future):
            anchor_id, role = futures[future]
            try:
                results.append(future.result())
            except Exception as e:
                logger.exception(f"Unexpected error fetching {role.value} flows for {anchor_id}")
                results.append(AnchorResult(anchor_id, role, "failed", detail=repr(e)))
            collected.add(future)
            progress.update(1)

        try:
            while pending:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                done, pending = wait(pending, timeout=remaining, return_when=FIRST_COMPLETED)
                for future in done:
                    collect(future)
        except KeyboardInterrupt:
            logger.warning("Ingestion interrupted; keeping completed anchors")
            self.cancel()
            # Futures that finished during the interrupted wait still count
            for future in futures:
                if future not in collected and future.done() and not future.cancelled():
                    collect(future)
            pending = {future for future in futures if future not in collected}
        finally:
            progress.close()

        if pending:
            reason = "cancelled" if self.cancelled else "timeout"
            if reason == "timeout":
                logger.warning(
                    f"Ingestion timeout ({self.config.ingestion_timeout:.0f}s) reached "
                    f"with {len(pending)} queries outstanding"
                )
            # Running tasks see the event before their next attempt
            self._cancel_event.set()
            for future in pending:
                anchor_id, role = futures[future]
                results.append(AnchorResult(anchor_id, role, reason))

        executor.shutdown(wait=False, cancel_futures=True)
        return results

    def _fetch_anchor(self, anchor_id: str, role: AnchorRole, year: int) -> AnchorResult:
        """Query one anchor with retries; runs on a worker thread."""
        attempts = 0
        while True:
            if self._cancel_event.is_set():
                return AnchorResult(anchor_id, role, "cancelled", attempts=attempts)

            attempts += 1
            try:
                rows = self.source.query(anchor_id, role, year)
                break
            except TransientSourceError as e:
                if attempts > self.config.max_retries:
                    logger.warning(
                        f"Giving up on {role.value} flows for {anchor_id} after {attempts} attempts: {e}"
                    )
                    return AnchorResult(anchor_id, role, "failed", attempts=attempts, detail=str(e))

                delay = min(self.config.backoff_base * 2 ** (attempts - 1), self.config.backoff_max)
                logger.warning(
                    f"Query attempt {attempts} for {anchor_id} failed: {e}; retrying in {delay:.1f}s"
                )
                # Exponential backoff, cut short by cancellation
                if self._cancel_event.wait(delay):
                    return AnchorResult(anchor_id, role, "cancelled", attempts=attempts)
            except MalformedRecordError as e:
                logger.warning(f"Malformed response for {anchor_id}: {e}")
                return AnchorResult(anchor_id, role, "no_data", attempts=attempts, detail=str(e))

        if not isinstance(rows, list) or not rows:
            logger.warning(f"No {role.value} flow data returned for {anchor_id}")
            return AnchorResult(anchor_id, role, "no_data", attempts=attempts, detail="empty response")

        edges, dropped = self._rows_to_edges(anchor_id, role, year, rows)
        if not edges:
            return AnchorResult(
                anchor_id, role, "no_data", attempts=attempts, dropped=dropped,
                detail=f"all {len(rows)} rows dropped",
            )
        return AnchorResult(anchor_id, role, "ok", edges=edges, attempts=attempts, dropped=dropped)

    def _rows_to_edges(
        self,
        anchor_id: str,
        role: AnchorRole,
        year: int,
        rows: List[Any],
    ) -> Tuple[List[RawFlowEdge], Counter]:
        """Relabel rows from the anchor's perspective into directed raw edges."""
        context = QueryContext(anchor_id, role)
        tag = SourceTag(anchor_id, role, year)
        magnitude_key = "magnitude_in" if role is AnchorRole.DESTINATION else "magnitude_out"

        edges: List[RawFlowEdge] = []
        dropped: Counter = Counter()

        for row in rows:
            try:
                reason, edge = self._row_to_edge(row, context, tag, magnitude_key)
            except MalformedRecordError as e:
                logger.debug(f"Dropping row from {tag}: {e}")
                dropped["malformed_row"] += 1
                continue
            if edge is None:
                dropped[reason] += 1
            else:
                edges.append(edge)

        return edges, dropped

    def _row_to_edge(
        self,
        row: Any,
        context: QueryContext,
        tag: SourceTag,
        magnitude_key: str,
    ) -> Tuple[Optional[str], Optional[RawFlowEdge]]:
        if not isinstance(row, dict):
            raise MalformedRecordError(f"row is {type(row).__name__}, not a mapping")

        raw_counterpart = row.get("counterpart_id")
        if raw_counterpart is None or str(raw_counterpart).strip() == "":
            raise MalformedRecordError("row has no counterpart id")

        counterpart = self.normalizer.normalize(raw_counterpart, context, row.get("counterpart_name"))
        if not counterpart.is_primary and not self.config.include_non_primary:
            return "non_primary_counterpart", None

        value = row.get(magnitude_key)
        if value is None:
            return "missing_magnitude", None
        try:
            magnitude = float(value)
        except (TypeError, ValueError):
            raise MalformedRecordError(f"non-numeric {magnitude_key}: {value!r}")
        if math.isnan(magnitude):
            return "missing_magnitude", None
        if magnitude <= 0:
            return "non_positive_magnitude", None

        if context.anchor_role is AnchorRole.DESTINATION:
            origin_id, destination_id = counterpart.entity_id, context.anchor_id
        else:
            origin_id, destination_id = context.anchor_id, counterpart.entity_id

        return None, RawFlowEdge(origin_id, destination_id, magnitude, tag)
