from datetime import date
from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy import desc
from sqlalchemy.orm import Session

from tianjiapi.models.checkin import CheckInLog, CheckinUpgradeBonusLog
from tianjiapi.repositories.base import BaseRepository
from tianjiapi.schemas.checkin import CheckInLogEntry, UpgradeBonusLogEntry


class CheckInRepository(BaseRepository[CheckInLog, CheckInLogEntry]):
    """체크인 기록 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(CheckInLog, CheckInLogEntry, db)

    def get_for_date(self, user_id: str, check_in_date: date) -> Optional[CheckInLog]:
        return (
            self.db.query(CheckInLog)
            .filter(CheckInLog.user_id == user_id, CheckInLog.check_in_date == check_in_date)
            .first()
        )

    def get_latest_before(self, user_id: str, before: date) -> Optional[CheckInLog]:
        """지정 날짜 이전의 가장 최근 체크인"""
        return (
            self.db.query(CheckInLog)
            .filter(CheckInLog.user_id == user_id, CheckInLog.check_in_date < before)
            .order_by(desc(CheckInLog.check_in_date))
            .first()
        )

    def list_logs(
        self, user_id: str, limit: int = 30, offset: int = 0
    ) -> Tuple[List[CheckInLog], int]:
        query = self.db.query(CheckInLog).filter(CheckInLog.user_id == user_id)
        total = query.count()
        rows = (
            query.order_by(desc(CheckInLog.check_in_date))
            .limit(limit)
            .offset(offset)
            .all()
        )
        return rows, total

    def list_between(self, user_id: str, start: date, end: date) -> List[CheckInLog]:
        """start <= check_in_date < end 범위 체크인 (날짜 오름차순)"""
        return (
            self.db.query(CheckInLog)
            .filter(
                CheckInLog.user_id == user_id,
                CheckInLog.check_in_date >= start,
                CheckInLog.check_in_date < end,
            )
            .order_by(CheckInLog.check_in_date)
            .all()
        )


class UpgradeBonusRepository(BaseRepository[CheckinUpgradeBonusLog, UpgradeBonusLogEntry]):
    """등급 업그레이드 소급 지급 기록 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(CheckinUpgradeBonusLog, UpgradeBonusLogEntry, db)

    def granted_dates(self, user_id: str, dates: Iterable[date]) -> Set[date]:
        dates = list(dates)
        if not dates:
            return set()
        rows = (
            self.db.query(CheckinUpgradeBonusLog.check_in_date)
            .filter(
                CheckinUpgradeBonusLog.user_id == user_id,
                CheckinUpgradeBonusLog.check_in_date.in_(dates),
            )
            .all()
        )
        return {row[0] for row in rows}
