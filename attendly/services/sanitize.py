from dataclasses import dataclass
from typing import List

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from attendly.config import settings
from attendly.models.attendance import AttendanceRecord
from attendly.models.dismissal import SuggestionDismissal
from attendly.models.event import Event
from attendly.models.series import Series
from attendly.services.suggestions import (
    EmailSuggestion,
    IdentityCorpus,
    NameConflict,
    RecordRow,
    normalize_email,
)
from attendly.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MergeResult:
    canonical_email: str
    attendee_name: str | None
    emails_updated: int
    names_updated: int


class SeriesSanitizeService:
    """
    Read-mostly cleanup of a series' attendee identities.

    Suggestions are computed from paged reads; merges and name fixes only run
    when an organizer asks for them, and only touch the series' own events.
    """

    def __init__(self, db: AsyncSession, batch_size: int | None = None):
        self.db = db
        self.batch_size = batch_size or settings.SUGGESTION_BATCH_SIZE

    async def get_series(self, series_id: str) -> Series | None:
        return await self.db.get(Series, series_id)

    async def create_series(self, name: str, description: str | None = None) -> Series:
        series = Series(name=name.strip(), description=description)
        self.db.add(series)
        await self.db.commit()
        await self.db.refresh(series)
        return series

    async def event_ids(self, series_id: str) -> List[str]:
        result = await self.db.execute(select(Event.id).where(Event.series_id == series_id))
        return list(result.scalars().all())

    async def iter_record_batches(self, event_ids: List[str]):
        """Yield the series' records in keyset-paginated batches."""
        if not event_ids:
            return
        last_id = ""
        while True:
            query = (
                select(
                    AttendanceRecord.id,
                    AttendanceRecord.attendee_email,
                    AttendanceRecord.attendee_name,
                    AttendanceRecord.client_id,
                    AttendanceRecord.client_id_raw,
                )
                .where(AttendanceRecord.event_id.in_(event_ids), AttendanceRecord.id > last_id)
                .order_by(AttendanceRecord.id)
                .limit(self.batch_size)
            )
            rows = (await self.db.execute(query)).all()
            if not rows:
                return
            last_id = rows[-1].id
            yield [
                RecordRow(row.attendee_email, row.attendee_name, row.client_id, row.client_id_raw)
                for row in rows
            ]
            if len(rows) < self.batch_size:
                return

    async def build_corpus(self, series_id: str) -> IdentityCorpus:
        corpus = IdentityCorpus()
        async for batch in self.iter_record_batches(await self.event_ids(series_id)):
            corpus.add(batch)
        return corpus

    async def dismissed_ids(self, series_id: str, dismissed_by: str = "") -> set[str]:
        result = await self.db.execute(
            select(SuggestionDismissal.suggestion_id).where(
                SuggestionDismissal.series_id == series_id,
                SuggestionDismissal.dismissed_by == dismissed_by,
            )
        )
        return set(result.scalars().all())

    async def suggestions(
        self, series_id: str, dismissed_by: str = "", limit: int | None = None
    ) -> List[EmailSuggestion]:
        corpus = await self.build_corpus(series_id)
        dismissed = await self.dismissed_ids(series_id, dismissed_by)
        return corpus.suggest(limit=limit or settings.SUGGESTION_LIMIT, dismissed=dismissed)

    async def dismiss(self, series_id: str, suggestion_id: str, dismissed_by: str = "") -> None:
        key = (series_id, suggestion_id, dismissed_by)
        if await self.db.get(SuggestionDismissal, key) is not None:
            return
        self.db.add(
            SuggestionDismissal(
                series_id=series_id, suggestion_id=suggestion_id, dismissed_by=dismissed_by
            )
        )
        try:
            await self.db.commit()
        except IntegrityError:
            # Dismissed concurrently.
            await self.db.rollback()

    async def name_conflicts(self, series_id: str) -> List[NameConflict]:
        corpus = await self.build_corpus(series_id)
        return corpus.name_conflicts()

    async def merge_emails(
        self,
        series_id: str,
        canonical_email: str,
        replaced_emails: List[str],
        attendee_name: str | None = None,
    ) -> MergeResult:
        """
        Fold ``replaced_emails`` into ``canonical_email`` across the series and
        give every record of the canonical email one attendee name.

        Without an explicit name, the name used most often for the merged
        identity wins.
        """
        canonical = normalize_email(canonical_email)
        replaced = sorted(
            {normalize_email(e) for e in replaced_emails if normalize_email(e)} - {canonical}
        )
        if not canonical or not replaced:
            raise ValueError("Choose a canonical email and at least one other email")

        event_ids = await self.event_ids(series_id)
        if not event_ids:
            return MergeResult(canonical, attendee_name, 0, 0)

        emails_result = await self.db.execute(
            update(AttendanceRecord)
            .where(
                AttendanceRecord.event_id.in_(event_ids),
                AttendanceRecord.attendee_email.in_(replaced),
            )
            .values(attendee_email=canonical)
            .execution_options(synchronize_session=False)
        )
        emails_updated = emails_result.rowcount

        name = (attendee_name or "").strip() or None
        if name is None:
            corpus = IdentityCorpus()
            async for batch in self.iter_record_batches(event_ids):
                corpus.add(r for r in batch if normalize_email(r.attendee_email) == canonical)
            name = corpus.preferred_name(canonical)

        names_updated = 0
        if name:
            names_result = await self.db.execute(
                update(AttendanceRecord)
                .where(
                    AttendanceRecord.event_id.in_(event_ids),
                    AttendanceRecord.attendee_email == canonical,
                    AttendanceRecord.attendee_name != name,
                )
                .values(attendee_name=name)
                .execution_options(synchronize_session=False)
            )
            names_updated = names_result.rowcount

        await self.db.commit()
        logger.info(
            "Series %s: merged %s into %s (%d emails, %d names rewritten)",
            series_id,
            ", ".join(replaced),
            canonical,
            emails_updated,
            names_updated,
        )
        return MergeResult(canonical, name, emails_updated, names_updated)

    async def resolve_name_conflict(self, series_id: str, email: str, name: str) -> int:
        email = normalize_email(email)
        name = name.strip()
        if not email or not name:
            raise ValueError("Email and name are required")

        event_ids = await self.event_ids(series_id)
        if not event_ids:
            return 0

        result = await self.db.execute(
            update(AttendanceRecord)
            .where(
                AttendanceRecord.event_id.in_(event_ids),
                AttendanceRecord.attendee_email == email,
            )
            .values(attendee_name=name)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount
