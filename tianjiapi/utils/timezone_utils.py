"""
타임존 유틸리티

서버 기준 시간대(settings.TIMEZONE) 시간 처리를 위한 유틸리티.
체크인의 "오늘"은 클라이언트가 보낸 값이 아니라 항상 이 시계로 판정한다.
"""

from datetime import date, datetime, timedelta

import pytz


def to_utc(dt: datetime) -> datetime:
    """datetime 을 UTC 로 변환합니다. naive datetime 은 UTC 로 간주합니다."""
    if dt.tzinfo is None:
        return pytz.utc.localize(dt)
    return dt.astimezone(pytz.utc)


class ServerClock:
    """서버 시간대 기준 현재 시각/날짜 제공자"""

    def __init__(self, tz_name: str = "Asia/Shanghai"):
        self.tz = pytz.timezone(tz_name)

    def now(self) -> datetime:
        return datetime.now(pytz.utc).astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()

    def localize(self, dt: datetime) -> datetime:
        """naive 값은 UTC 로 보고 서버 시간대로 변환"""
        return to_utc(dt).astimezone(self.tz)


class FixedClock(ServerClock):
    """고정 시각을 반환하는 시계 (테스트/재처리용)"""

    def __init__(self, fixed: datetime, tz_name: str = "Asia/Shanghai"):
        super().__init__(tz_name)
        self._now = self.localize(fixed) if fixed.tzinfo else self.tz.localize(fixed)

    def now(self) -> datetime:
        return self._now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self._now = self.tz.normalize(self._now + timedelta(days=days, hours=hours))

    def set(self, fixed: datetime) -> None:
        self._now = self.localize(fixed) if fixed.tzinfo else self.tz.localize(fixed)
