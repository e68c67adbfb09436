"""Business configuration read contract.

Business logic asks a ``ConfigProvider`` for the commission rate and the free
credit allocation at the moment it needs them. Defaults live only in the
provider implementation, never in the engines.
"""

import logging
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.config import Settings, settings
from leadbroker.repositories.notification_repo import PlatformSettingRepository

logger = logging.getLogger(__name__)

COMMISSION_RATE_KEY = "commission_rate"
FREE_ACCESS_ALLOCATION_KEY = "free_access_allocation"


class ConfigProvider(Protocol):
    async def get_commission_rate(self) -> float: ...

    async def get_free_access_allocation(self) -> int: ...


class SettingsStoreConfigProvider:
    """Reads the ``platform_settings`` table on every call."""

    def __init__(self, session: AsyncSession, defaults: Settings = settings):
        self.repo = PlatformSettingRepository(session)
        self.defaults = defaults

    async def get_commission_rate(self) -> float:
        row = await self.repo.get(COMMISSION_RATE_KEY)
        value = (row.value or {}).get("rate") if row else None
        if value is None:
            return self.defaults.default_commission_rate
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed commission rate setting: %r", value)
            return self.defaults.default_commission_rate

    async def get_free_access_allocation(self) -> int:
        row = await self.repo.get(FREE_ACCESS_ALLOCATION_KEY)
        value = (row.value or {}).get("credits") if row else None
        if value is None:
            return self.defaults.default_free_access_allocation
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed free access allocation setting: %r", value)
            return self.defaults.default_free_access_allocation


class StaticConfigProvider:
    """Fixed values; used by scripts and tests that bypass the settings store."""

    def __init__(self, commission_rate: float, free_access_allocation: int):
        self.commission_rate = commission_rate
        self.free_access_allocation = free_access_allocation

    async def get_commission_rate(self) -> float:
        return self.commission_rate

    async def get_free_access_allocation(self) -> int:
        return self.free_access_allocation
