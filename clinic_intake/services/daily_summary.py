"""End-of-day summary sent to the clinic chat, at most once per local day."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from clinic_intake.models import SummaryDispatch
from clinic_intake.models.base import utcnow
from clinic_intake.services.patients import local_timezone, todays_summary
from clinic_intake.services.telegram_client import TelegramNotifier
from clinic_intake.services.telegram_templates import format_daily_summary

logger = logging.getLogger(__name__)


@dataclass
class DailySummaryResult:
    summary_date: date
    count: int
    total_amount: int
    sent: bool


def already_sent(db: Session, summary_date: date) -> bool:
    stmt = select(SummaryDispatch.id).where(SummaryDispatch.summary_date == summary_date)
    return db.execute(stmt).first() is not None


def send_daily_summary(
    db: Session,
    notifier: TelegramNotifier,
    *,
    now: datetime | None = None,
    tz: ZoneInfo | None = None,
) -> DailySummaryResult:
    """Compute today's summary and post it immediately, without recording it."""

    tz = tz or local_timezone()
    now = now or datetime.now(tz)
    summary = todays_summary(db, now=now, tz=tz)
    local_date = (now if now.tzinfo else now.replace(tzinfo=tz)).astimezone(tz).date()

    response = notifier.send_message(
        format_daily_summary(local_date, summary.count, summary.total_amount)
    )
    sent = response is not None
    logger.info(
        "daily summary processed",
        extra={
            "summary_date": local_date.isoformat(),
            "count": summary.count,
            "total_amount": summary.total_amount,
            "sent": sent,
        },
    )
    return DailySummaryResult(local_date, summary.count, summary.total_amount, sent)


def is_summary_due(db: Session, now: datetime, hour: int) -> bool:
    """True once the local clock passed ``hour`` and today's summary is unsent."""

    return now.hour >= hour and not already_sent(db, now.date())


def run_scheduled_summary(
    db: Session,
    notifier: TelegramNotifier,
    *,
    hour: int,
    now: datetime | None = None,
    tz: ZoneInfo | None = None,
) -> DailySummaryResult | None:
    """Send today's summary if due and remember the date it was delivered for.

    Called every minute by the scheduler. A tick after a restart past ``hour``
    still sends; a second tick on the same day does not.
    """

    tz = tz or local_timezone()
    now = (now or datetime.now(tz)).astimezone(tz)
    if not is_summary_due(db, now, hour):
        return None

    result = send_daily_summary(db, notifier, now=now, tz=tz)
    if result.sent:
        db.add(
            SummaryDispatch(
                summary_date=result.summary_date,
                patient_count=result.count,
                total_amount=result.total_amount,
                sent_at=utcnow(),
            )
        )
        db.flush()
    return result
