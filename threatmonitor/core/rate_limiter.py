"""
Daily quota: one allowed call per user, endpoint and server-local calendar day.

The usage log in `threat_monitor_usage` is the limiter's only state. Store
failures fail open; a unique-constraint violation means a concurrent call
already took today's slot and is reported as denied.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from threatmonitor.models import RateLimitRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    reset_time: Optional[datetime] = None


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def next_midnight(moment: datetime) -> datetime:
    return start_of_day(moment) + timedelta(days=1)


class RateLimiter:
    def __init__(self, session_factory: Callable[[], Session], clock: Callable[[], datetime] = datetime.now):
        self.session_factory = session_factory
        self.clock = clock

    async def check_and_consume(self, user_id: str, endpoint: str) -> RateLimitDecision:
        return await asyncio.to_thread(self._check_and_consume, user_id, endpoint)

    def _check_and_consume(self, user_id: str, endpoint: str) -> RateLimitDecision:
        now = self.clock()
        today = start_of_day(now)
        denied = RateLimitDecision(allowed=False, reset_time=next_midnight(now))
        
        db = self.session_factory()
        try:
            existing = db.query(RateLimitRecord).filter(
                RateLimitRecord.user_id == user_id,
                RateLimitRecord.endpoint == endpoint,
                RateLimitRecord.created_at >= today
            ).first()
            
            if existing:
                logger.info(f"Rate limit hit: user={user_id} endpoint={endpoint}")
                return denied
            
            db.add(RateLimitRecord(
                user_id=user_id,
                endpoint=endpoint,
                created_at=now,
                usage_date=now.date()
            ))
            db.commit()
            return RateLimitDecision(allowed=True)
        
        except IntegrityError:
            db.rollback()
            logger.info(f"Rate limit hit (concurrent request): user={user_id} endpoint={endpoint}")
            return denied
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Rate limiting error, allowing request: {e}")
            return RateLimitDecision(allowed=True)
        finally:
            db.close()
