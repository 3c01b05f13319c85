# importers/_base_Importer.py

from __future__ import annotations

import io
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterable, Optional

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from deliveryMetrics.models import (
    CanonicalLocation,
    Client,
    ImportLog,
    UnmappedLocation,
    normalize_location_label,
)
from deliveryMetrics.utils.dates import normalize_platform_date
from importers._columns import read_platform_csv
from importers._match_location import (
    METHOD_STORE_ID,
    CrossReferenceEntry,
    LocationResolver,
    MatchCandidate,
    ResolveContext,
    build_location_snapshot,
)
from importers.errors import IngestionAborted, ParseFailure, UpsertConflictFailure

logger = logging.getLogger(__name__)


def parse_money(value) -> Decimal:
    """Convert export currency strings ('$1,234.50', '-2.66', '') into Decimal."""
    if value is None:
        return Decimal("0.00")
    clean = str(value).replace("$", "").replace(",", "").strip()
    if not clean:
        return Decimal("0.00")
    if clean.startswith("(") and clean.endswith(")"):
        clean = f"-{clean[1:-1]}"
    try:
        return Decimal(clean)
    except (InvalidOperation, TypeError, ValueError):
        raise ParseFailure(f"Unreadable amount: {value!r}") from None


class BaseImporter:
    """
    Shared ingestion pipeline for a platform CSV export.

    Subclasses declare the transaction ``model`` and implement ``parse_row``;
    this class handles:
    - dry_run support
    - location resolution, once per distinct store string
    - chunked idempotent upserts keyed by the model's natural key
    - structured logging (to console or buffer) and summary counters
    """

    platform = ""
    model = None

    def __init__(
        self,
        owner: Client,
        dry_run: bool = False,
        log_to_console: bool = False,
        *,
        chunk_size: Optional[int] = None,
        resolver: Optional[LocationResolver] = None,
        crossref: Iterable[CrossReferenceEntry] = (),
    ):
        self.owner = owner
        self.dry_run = dry_run
        self.log_to_console = log_to_console
        self.chunk_size = chunk_size or getattr(settings, "INGESTION_CHUNK_SIZE", 500)
        self.resolver = resolver or LocationResolver()
        self.crossref = tuple(crossref)
        self._reset()

    def _reset(self) -> None:
        self.buffer = io.StringIO()
        self.state = "pending"
        self.stats = {
            "rows_parsed": 0,
            "matched": 0,
            "unmapped": 0,
            "skipped": 0,
            "failed": 0,
            "upserted": 0,
            "distinct_locations": 0,
        }
        self.matches: dict[tuple[str, str], MatchCandidate] = {}
        self.failures: list[str] = []
        self._summary = ""
        self._started_at: Optional[datetime] = None
        self._finished_at: Optional[datetime] = None

    # ---------------------------------------------------------------------
    # Logging
    # ---------------------------------------------------------------------
    def log(self, message, emoji="💬", level=logging.INFO):
        timestamp = timezone.now().strftime("%H:%M:%S")
        line = f"[{timestamp}] {emoji} {message}"
        self.buffer.write(line + "\n")
        logger.log(level, "%s %s", self.platform, message)
        if self.log_to_console:
            print(line)

    def _fail(self, message: str) -> None:
        self.stats["failed"] += 1
        self.failures.append(message)
        self.log(message, "❌", logging.WARNING)

    # ---------------------------------------------------------------------
    # Row parsing hooks
    # ---------------------------------------------------------------------
    def parse_row(self, row: dict) -> Optional[dict]:
        """Return a record dict, None to skip the row, or raise ParseFailure."""
        raise NotImplementedError("Subclasses must implement parse_row()")

    def natural_key(self, record: dict) -> tuple:
        return tuple(
            self.owner.pk if field == "owner" else record[field]
            for field in self.model.natural_key_fields
        )

    def _business_date(self, native: str) -> date:
        day = normalize_platform_date(native)
        if day is None:
            raise ParseFailure(f"Unreadable date: {native!r}")
        return day

    # ---------------------------------------------------------------------
    # Pipeline
    # ---------------------------------------------------------------------
    def run_from_file(self, file_path: Path) -> str:
        """Run the import for a CSV export on disk."""
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")
        self._reset()
        self.log(f"Importing {file_path.name} ({'dry-run' if self.dry_run else 'live'})", "📥")
        return self._execute(read_platform_csv(file_path, self.platform))

    def run(self, rows: Iterable[dict]) -> str:
        """Parse -> resolve locations -> upsert. Returns the log output."""
        self._reset()
        return self._execute(rows)

    def _execute(self, rows: Iterable[dict]) -> str:
        self._started_at = timezone.now()

        try:
            records = self._parse(rows)
            self.state = "parsed"

            self._resolve_locations(records)
            self.state = "locations_resolved"

            self._upsert(records)
            self.state = "upserted"
        except IngestionAborted:
            self.state = "partial_failure"
            self._finished_at = timezone.now()
            self.summarize()
            raise

        self.state = "partial_failure" if self.stats["failed"] else "done"
        self._finished_at = timezone.now()
        self.summarize()
        return self.get_output()

    def _parse(self, rows: Iterable[dict]) -> list[dict]:
        by_key: dict[tuple, dict] = {}
        try:
            for row_number, row in enumerate(rows, start=1):
                self._parse_one(row_number, row, by_key)
        except ParseFailure as exc:
            # reader-level failure; the rest of the file is unreadable
            self._fail(f"Unreadable file: {exc}")
            raise self._abort(exc) from exc
        self.log(f"Parsed {self.stats['rows_parsed']} rows ({len(by_key)} unique transactions)", "🧾")
        return list(by_key.values())

    def _parse_one(self, row_number: int, row: dict, by_key: dict[tuple, dict]) -> None:
        try:
            record = self.parse_row(row)
        except ParseFailure as exc:
            self._fail(f"Row {row_number}: {exc}")
            return
        if record is None:
            self.stats["skipped"] += 1
            return

        self.stats["rows_parsed"] += 1
        key = self.natural_key(record)
        if key in by_key:
            # Same natural key twice in one file: the later row wins.
            self.stats["skipped"] += 1
        by_key[key] = record

    def _resolve_locations(self, records: list[dict]) -> None:
        snapshot = build_location_snapshot(self.owner)
        memo: dict[tuple[str, str], MatchCandidate] = {}
        for record in records:
            key = (record["location_name"], record.get("_store_code", ""))
            if key not in memo:
                context = ResolveContext(store_code=key[1], crossref=self.crossref)
                memo[key] = self.resolver.resolve(key[0], self.platform, snapshot, context)
        self.matches = memo
        self.stats["distinct_locations"] = len(memo)

        bucket = self._unmapped_bucket()
        for candidate in memo.values():
            if candidate.is_match:
                self.log(
                    f"{candidate.platform_name!r} → location #{candidate.matched_location_id} "
                    f"({candidate.match_method}, {candidate.confidence:.2f})",
                    "✅",
                )
            else:
                self.log(f"{candidate.platform_name!r} → unmapped bucket", "⚠️")

        for record in records:
            candidate = memo[(record["location_name"], record.pop("_store_code", ""))]
            if candidate.is_match:
                record["location_id"] = candidate.matched_location_id
                self.stats["matched"] += 1
            else:
                record["location_id"] = bucket.pk if bucket else None
                self.stats["unmapped"] += 1

        if not self.dry_run:
            self._backfill_locations(memo.values())
            self._record_unmapped(memo)

    def _unmapped_bucket(self) -> Optional[CanonicalLocation]:
        if self.dry_run:
            return CanonicalLocation.objects.filter(owner=self.owner, tag="unmapped_bucket").first()
        return CanonicalLocation.objects.unmapped_bucket_for(self.owner)

    def _backfill_locations(self, candidates: Iterable[MatchCandidate]) -> None:
        """Fill empty platform display names; exact code matches mark the location verified."""
        name_field = f"{self.platform}_name"
        for candidate in candidates:
            if not candidate.is_match:
                continue
            location = CanonicalLocation.objects.get(pk=candidate.matched_location_id)
            update_fields = []
            if not getattr(location, name_field):
                setattr(location, name_field, candidate.platform_name)
                update_fields.append(name_field)
            if candidate.match_method == METHOD_STORE_ID and not location.is_verified:
                location.is_verified = True
                update_fields.append("is_verified")
            if update_fields:
                location.save(update_fields=update_fields)

    def _record_unmapped(self, memo: dict[tuple[str, str], MatchCandidate]) -> None:
        for (location_name, store_code), candidate in memo.items():
            if candidate.is_match or not location_name:
                continue
            entry, created = UnmappedLocation.objects.get_or_create(
                owner=self.owner,
                platform=self.platform,
                normalized_name=normalize_location_label(location_name),
                defaults={
                    "location_name": location_name,
                    "store_code": store_code,
                    "last_reason": candidate.match_method,
                    "last_confidence": candidate.confidence,
                },
            )
            if not created:
                entry.location_name = location_name
                entry.store_code = store_code or entry.store_code
                entry.last_reason = candidate.match_method
                entry.last_confidence = candidate.confidence
                entry.seen_count += 1
                entry.save()

    # ---------------------------------------------------------------------
    # Upsert
    # ---------------------------------------------------------------------
    def _build_instance(self, record: dict):
        return self.model(owner=self.owner, **record)

    def _upsert(self, records: list[dict]) -> None:
        if self.dry_run:
            self.stats["upserted"] = len(records)
            self.log(f"[Dry Run] Would upsert {len(records)} transactions", "🧪")
            return

        unique_fields = list(self.model.natural_key_fields)
        update_fields = self.model.mutable_fields()
        for offset in range(0, len(records), self.chunk_size):
            chunk = [self._build_instance(r) for r in records[offset:offset + self.chunk_size]]
            try:
                with transaction.atomic():
                    self.model.objects.bulk_create(
                        chunk,
                        update_conflicts=True,
                        unique_fields=unique_fields,
                        update_fields=update_fields,
                    )
                self.stats["upserted"] += len(chunk)
            except IntegrityError as exc:
                self.log(f"Chunk at row {offset + 1} rejected ({exc}); retrying row by row", "🔁")
                self._upsert_rows(chunk, unique_fields, update_fields)
            except DatabaseError as exc:
                raise self._abort(exc) from exc

    def _upsert_rows(self, chunk, unique_fields, update_fields) -> None:
        for instance in chunk:
            try:
                with transaction.atomic():
                    self.model.objects.bulk_create(
                        [instance],
                        update_conflicts=True,
                        unique_fields=unique_fields,
                        update_fields=update_fields,
                    )
                self.stats["upserted"] += 1
            except IntegrityError as exc:
                failure = UpsertConflictFailure(
                    str(exc),
                    natural_key=tuple(getattr(instance, f"{f}_id" if f == "owner" else f) for f in unique_fields),
                )
                self._fail(f"Upsert conflict for {failure.natural_key}: {failure}")
            except DatabaseError as exc:
                raise self._abort(exc) from exc

    def _abort(self, exc: Exception) -> IngestionAborted:
        self.log(
            f"Aborting after {self.stats['upserted']} upserted rows: {exc}",
            "🛑",
            logging.ERROR,
        )
        return IngestionAborted(str(exc))

    # ---------------------------------------------------------------------
    # Summary
    # ---------------------------------------------------------------------
    def summarize(self) -> str:
        start = self._started_at or timezone.now()
        end = self._finished_at or timezone.now()
        elapsed = (end - start).total_seconds()
        summary = (
            f"\n📊 {self.platform} Import Summary ({'Dry Run' if self.dry_run else 'Committed'})\n"
            f"State: {self.state}\n"
            f"Rows parsed: {self.stats['rows_parsed']}\n"
            f"Matched: {self.stats['matched']}\n"
            f"Unmapped: {self.stats['unmapped']}\n"
            f"Skipped: {self.stats['skipped']}\n"
            f"Failed: {self.stats['failed']}\n"
            f"Upserted: {self.stats['upserted']}\n"
            f"Distinct locations: {self.stats['distinct_locations']}\n"
            f"Elapsed: {elapsed:.2f}s\n"
        )
        self._summary = summary.strip()
        self.log(summary, "✅")
        return summary

    def get_run_metadata(self) -> dict:
        """Return structured metadata about the most recent run."""
        duration = None
        if self._started_at and self._finished_at:
            duration = (self._finished_at - self._started_at).total_seconds()
        return {
            "started_at": self._started_at,
            "finished_at": self._finished_at,
            "duration_seconds": duration,
            "state": self.state,
            "stats": dict(self.stats),
        }

    def get_output(self) -> str:
        return self.buffer.getvalue()

    def save_import_log(self, filename: str = "", uploaded_by=None) -> ImportLog:
        meta = self.get_run_metadata()
        duration = meta["duration_seconds"]
        return ImportLog.objects.create(
            source=self.platform,
            run_type="dry-run" if self.dry_run else "live",
            owner=self.owner,
            filename=filename,
            state=self.state,
            started_at=meta["started_at"],
            finished_at=meta["finished_at"],
            duration_seconds=Decimal(f"{duration:.2f}") if duration is not None else None,
            rows_processed=self.stats["rows_parsed"],
            matched_count=self.stats["matched"],
            unmatched_count=self.stats["unmapped"],
            skipped_count=self.stats["skipped"],
            error_count=self.stats["failed"],
            summary="\n".join([self._summary, *self.failures[:20]]),
            log_output=self.get_output(),
            uploaded_by=uploaded_by,
        )
