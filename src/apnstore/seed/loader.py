"""Seed loading: applying seed documents to the carriers table."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

from ..config import INVALID_SUBSCRIPTION_ID
from ..core import provenance
from ..core.bitmask import BEARER_BITMASK, NETWORK_TYPE_BITMASK, bitmask_from_string, sync_bitmasks
from ..core.merge import ConflictMerger
from ..domain.models.apn import (
    COLUMNS_BY_NAME,
    ID,
    REQUIRED_SEED_FIELDS,
    EditProvenance,
    normalize_values,
)
from ..domain.models.query import ApnFilter
from ..errors import ConflictError, MalformedSeedRecordError, SeedVersionMismatchError, WriteFailedError
from ..store.repository import ApnRepository
from ..utils.logging import get_logger
from .source import SeedDocument

logger = get_logger()

# Attribute spellings used by vendor seed files.
_ALIASES = {"carrier": "name"}


@dataclass
class SeedReport:
    inserted: int = 0
    merged: int = 0
    skipped: int = 0
    purged: int = 0
    version: Optional[int] = None
    override_rejected: bool = False

    @property
    def applied(self) -> int:
        return self.inserted + self.merged


def _parse_bitmask(value: Any) -> int:
    if isinstance(value, str):
        return bitmask_from_string(value)
    return int(value)


def normalize_candidate(
    candidate: Mapping[str, Any],
    default_sub_id: int = INVALID_SUBSCRIPTION_ID,
) -> Dict[str, Any]:
    """Turn a raw seed candidate into column values ready for insertion.

    Raises:
        MalformedSeedRecordError: If the operator cannot be identified.
    """
    raw: Dict[str, Any] = {}
    for key, value in candidate.items():
        column = _ALIASES.get(key, key)
        if column == ID:
            continue
        if column not in COLUMNS_BY_NAME:
            logger.debug("Ignoring unknown seed attribute %r", key)
            continue
        if value is None:
            continue
        raw[column] = value

    mcc = str(raw.get("mcc") or "").strip()
    mnc = str(raw.get("mnc") or "").strip()
    if not mcc or not mnc:
        raise MalformedSeedRecordError(f"Seed candidate without mcc/mnc: {dict(candidate)}")
    raw["mcc"], raw["mnc"] = mcc, mnc
    if not raw.get("numeric"):
        raw["numeric"] = mcc + mnc

    if "mvno_type" not in raw or "mvno_match_data" not in raw:
        raw.pop("mvno_type", None)
        raw.pop("mvno_match_data", None)

    has_network = raw.get(NETWORK_TYPE_BITMASK) is not None
    if has_network:
        raw[NETWORK_TYPE_BITMASK] = _parse_bitmask(raw[NETWORK_TYPE_BITMASK])
    if raw.get(BEARER_BITMASK) is not None:
        raw[BEARER_BITMASK] = _parse_bitmask(raw[BEARER_BITMASK])
        if has_network:
            # Derived from the network list by sync_bitmasks.
            del raw[BEARER_BITMASK]
    sync_bitmasks(raw)

    raw.setdefault("sub_id", default_sub_id)
    values = normalize_values(raw)
    for name in REQUIRED_SEED_FIELDS:
        if not values.get(name):
            raise MalformedSeedRecordError(f"Seed candidate without {name}: {dict(candidate)}")
    return values


class SeedLoader:
    """Applies seed documents and settles deleted rows afterwards.

    Args:
        repo: Repository over the live carriers table.
        merger: Merge used when a candidate collides with a stored row.
        default_sub_id: Subscription id given to candidates without one.
    """

    def __init__(
        self,
        repo: ApnRepository,
        merger: ConflictMerger,
        default_sub_id: int = INVALID_SUBSCRIPTION_ID,
    ) -> None:
        self.repo = repo
        self.merger = merger
        self.default_sub_id = default_sub_id

    def load(
        self,
        fallback: Optional[SeedDocument],
        override: Optional[SeedDocument] = None,
    ) -> SeedReport:
        """Apply *fallback* then *override* in one transaction.

        The override is rejected when its version differs from the
        fallback's; the fallback pass still stands.
        """
        report = SeedReport()
        with self.repo.transaction():
            if fallback is not None:
                report.version = fallback.version
                self._apply(fallback.candidates, report)
            if override is not None:
                try:
                    self._check_version(fallback, override)
                except SeedVersionMismatchError as exc:
                    logger.error("%s", exc)
                    report.override_rejected = True
                else:
                    if report.version is None:
                        report.version = override.version
                    self._apply(override.candidates, report)
            report.purged = self.settle()
        logger.info(
            "Seed applied: %d inserted, %d merged, %d skipped, %d purged",
            report.inserted,
            report.merged,
            report.skipped,
            report.purged,
        )
        return report

    @staticmethod
    def _check_version(fallback: Optional[SeedDocument], override: SeedDocument) -> None:
        if fallback is None:
            return
        if override.version != fallback.version:
            raise SeedVersionMismatchError(
                f"Seed override {override.path} has version {override.version}, "
                f"expected {fallback.version}; skipping it"
            )

    def _apply(self, candidates: Iterable[Mapping[str, Any]], report: SeedReport) -> None:
        for candidate in candidates:
            try:
                values = normalize_candidate(candidate, self.default_sub_id)
            except (MalformedSeedRecordError, ValueError) as exc:
                logger.warning("Skipping seed candidate: %s", exc)
                report.skipped += 1
                continue
            self._insert_candidate(values, report)

    def _insert_candidate(self, values: Dict[str, Any], report: SeedReport) -> None:
        try:
            self.repo.insert(values)
        except ConflictError as exc:
            existing = exc.existing
            if existing is None:
                logger.error("Conflicting row for %s could not be found", values.get("numeric"))
                report.skipped += 1
                return
            current = provenance.coerce(existing.get("edited")) or EditProvenance.UNEDITED
            escalated = provenance.escalate_for_seed(current)
            try:
                self.merger.merge(
                    self.repo,
                    existing,
                    values,
                    provenance_override=escalated if escalated is not current else None,
                )
            except WriteFailedError as merge_exc:
                logger.warning("Skipping seed candidate %s: %s", values.get("apn"), merge_exc)
                report.skipped += 1
                return
            report.merged += 1
        except WriteFailedError as exc:
            logger.warning("Skipping seed candidate %s: %s", values.get("apn"), exc)
            report.skipped += 1
        else:
            report.inserted += 1

    def settle(self) -> int:
        """Purge rows deleted and no longer seeded; reset the rest."""
        with self.repo.transaction():
            purged = self.repo.delete(
                ApnFilter().where_in("edited", [int(state) for state in provenance.PURGED_AFTER_SEED])
            )
            for present, plain in provenance.SEED_SETTLEMENT:
                self.repo.update(ApnFilter().where("edited", int(present)), {"edited": int(plain)})
        if purged:
            logger.info("Purged %d deleted rows no longer in the seed", purged)
        return purged


__all__ = ["SeedLoader", "SeedReport", "normalize_candidate"]
