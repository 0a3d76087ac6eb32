# File: sitemap_builder/scheduler.py
"""sitemap_builder.scheduler: периодический запуск генерации для режима serve."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Optional

from sitemap_builder.config import ScheduleConfig
from sitemap_builder.logger import get_logger
from sitemap_builder.service import SitemapService

logger = get_logger("scheduler")


def _parse_time(daily_time: str) -> tuple[int, int]:
    hours, _, minutes = daily_time.partition(":")
    return int(hours), int(minutes)


def next_daily_run(now: datetime, daily_time: str) -> datetime:
    """Ближайший момент ``daily_time`` строго после ``now`` (в той же таймзоне)."""
    hour, minute = _parse_time(daily_time)
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class SitemapScheduler:
    """
    Раз в ``interval`` секунд вызывает generate_if_due(); один раз в сутки,
    начиная с daily_time, — force_regenerate().
    """

    def __init__(self, service: SitemapService, schedule: ScheduleConfig) -> None:
        self.service = service
        self.schedule = schedule
        self.next_daily: Optional[datetime] = None

    def _daily_due(self, now: datetime) -> bool:
        if self.next_daily is None:
            self.next_daily = next_daily_run(now, self.schedule.daily_time)
            return False
        return now >= self.next_daily

    async def tick(self, now: Optional[datetime] = None) -> None:
        """Один шаг планировщика. Ошибки логируются и не останавливают цикл."""
        now = now or datetime.now()
        try:
            if self._daily_due(now):
                self.next_daily = next_daily_run(now, self.schedule.daily_time)
                logger.info("Ежедневная перегенерация sitemap (%s)", self.schedule.daily_time)
                await self.service.force_regenerate()
            else:
                await self.service.generate_if_due()
        except Exception:
            logger.exception("Ошибка генерации sitemap по расписанию")

    async def run(self, stop_event: asyncio.Event, interval: float = 60) -> None:
        logger.info("Планировщик запущен, ежедневно в %s", self.schedule.daily_time)
        while not stop_event.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
        logger.info("Планировщик остановлен")


__all__ = ["SitemapScheduler", "next_daily_run"]
