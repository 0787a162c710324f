"""
Associate repository: phone lookup, SMS opt-in/out state, the one-time
opt-out disclosure flags in ``opt_info``, and company contact details.
"""

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert

from crewcall.models.associate import Associate as AssociateRow
from crewcall.models.company import Company
from crewcall.models.opt_info import OptInfo
from crewcall.services.reminder_timing import utcnow
from crewcall.services.sms_service import normalize_phone_for_lookup
from crewcall.services.types import Associate, OptOutChannel, as_uuid

logger = logging.getLogger(__name__)


def _to_associate(row) -> Associate:
    return Associate(
        id=str(row.id),
        first_name=row.first_name,
        last_name=row.last_name,
        phone_number=row.phone_number,
        company_id=str(row.company_id) if row.company_id else None,
        sms_opt_out=bool(row.sms_opt_out),
    )


class AssociateRepository:

    def __init__(self, session_factory, clock=utcnow):
        self._session_factory = session_factory
        self._clock = clock

    async def _find_by_phone(self, db, phone_number: str):
        stmt = select(AssociateRow).where(AssociateRow.phone_number == phone_number).limit(1)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_associate_by_phone(self, phone_number: str) -> Optional[Associate]:
        """Look up by the E.164-normalized number, then by the raw string."""
        normalized = normalize_phone_for_lookup(phone_number)

        async with self._session_factory() as db:
            row = await self._find_by_phone(db, normalized) if normalized else None
            if row is None and phone_number and normalized != phone_number:
                logger.info(
                    "get_associate_by_phone: no match for %s, trying raw %s",
                    normalized, phone_number,
                )
                row = await self._find_by_phone(db, phone_number)

        if row is None:
            logger.info("get_associate_by_phone: no associate for %s (normalized %s)", phone_number, normalized)
            return None
        return _to_associate(row)

    async def get_associate_company_id(self, associate_id: str) -> Optional[str]:
        stmt = select(AssociateRow.company_id).where(AssociateRow.id == as_uuid(associate_id))
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            company_id = result.scalar_one_or_none()
        return str(company_id) if company_id else None

    # ------------------------------------------------------------------
    # Opt-in / opt-out
    # ------------------------------------------------------------------

    async def opt_out_associate(
        self,
        associate_id: str,
        channel: OptOutChannel = OptOutChannel.TWO_WAY,
    ) -> None:
        """Flag the associate opted out and stamp the channel the STOP arrived on."""
        now = self._clock()
        time_column = (
            "reminder_opt_out_time" if channel == OptOutChannel.REMINDER else "sms_opt_out_time"
        )
        upsert = (
            insert(OptInfo)
            .values(associate_id=as_uuid(associate_id), **{time_column: now})
            .on_conflict_do_update(
                index_elements=[OptInfo.associate_id],
                set_={time_column: now},
            )
        )
        async with self._session_factory() as db:
            await db.execute(
                update(AssociateRow)
                .where(AssociateRow.id == as_uuid(associate_id))
                .values(sms_opt_out=True)
            )
            await db.execute(upsert)
            await db.commit()
        logger.info("opt_out_associate: associate %s opted out via %s", associate_id, channel.value)

    async def opt_in_associate(self, associate_id: str) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(AssociateRow)
                .where(AssociateRow.id == as_uuid(associate_id))
                .values(sms_opt_out=False)
            )
            await db.commit()
        logger.info("opt_in_associate: associate %s opted back in", associate_id)

    # ------------------------------------------------------------------
    # One-time opt-out disclosure flags
    # ------------------------------------------------------------------

    async def has_sent_opt_out_disclosure(self, associate_id: str, channel: OptOutChannel) -> bool:
        column = (
            OptInfo.first_reminder_opt_out if channel == OptOutChannel.REMINDER else OptInfo.first_sms_opt_out
        )
        stmt = select(column).where(OptInfo.associate_id == as_uuid(associate_id))
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            sent = result.scalar_one_or_none()
        return bool(sent)

    async def mark_opt_out_disclosure_sent(self, associate_id: str, channel: OptOutChannel) -> None:
        flag = "first_reminder_opt_out" if channel == OptOutChannel.REMINDER else "first_sms_opt_out"
        upsert = (
            insert(OptInfo)
            .values(associate_id=as_uuid(associate_id), **{flag: True})
            .on_conflict_do_update(index_elements=[OptInfo.associate_id], set_={flag: True})
        )
        async with self._session_factory() as db:
            await db.execute(upsert)
            await db.commit()

    # ------------------------------------------------------------------
    # Company details
    # ------------------------------------------------------------------

    async def get_company_phone_number(self, company_id: str) -> Optional[str]:
        stmt = select(Company.phone_number).where(Company.id == as_uuid(company_id))
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return result.scalar_one_or_none()

    async def get_company_name(self, company_id: str) -> Optional[str]:
        stmt = select(Company.company_name).where(Company.id == as_uuid(company_id))
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return result.scalar_one_or_none()
