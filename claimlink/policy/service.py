import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import sqlalchemy as sa

from .model import Setting
from ..common.clock import utcnow
from ..common.config import settings
from ..common.database import AsyncSessionLocal

_logger = logging.getLogger(__name__)

DEFAULT_EXPIRATION_DAYS = "default_expiration_days"
ONE_TIME_USE_ENABLED = "one_time_use_enabled"


@dataclass(frozen=True)
class PolicyDefaults:
    default_expiration_days: Optional[int]
    one_time_use_enabled: bool


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_bool(raw: Optional[str], default: bool) -> bool:
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _parse_days(raw: Optional[str], default: Optional[int]) -> Optional[int]:
    if raw is None or raw == "":
        return default
    try:
        days = int(raw)
    except ValueError:
        _logger.warning("Ignoring malformed setting | key=%s value=%r", DEFAULT_EXPIRATION_DAYS, raw)
        return default
    return days if days > 0 else None


async def ensure_defaults() -> None:
    """Write the configured defaults for any policy key not stored yet."""
    initial = {
        DEFAULT_EXPIRATION_DAYS: _to_text(settings.DEFAULT_EXPIRATION_DAYS),
        ONE_TIME_USE_ENABLED: _to_text(settings.DEFAULT_ONE_TIME_USE),
    }
    async with AsyncSessionLocal() as session:
        async with session.begin():
            res = await session.execute(sa.select(Setting.key).where(Setting.key.in_(list(initial))))
            present = set(res.scalars().all())
            for key, value in initial.items():
                if key not in present:
                    session.add(Setting(key=key, value=value))
                    _logger.info("Policy default stored | key=%s value=%s", key, value)


async def get_settings() -> Dict[str, str]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(Setting).order_by(Setting.key))
        return {s.key: s.value for s in res.scalars().all()}


async def get_policy_defaults() -> PolicyDefaults:
    stored = await get_settings()
    fallback_days = settings.DEFAULT_EXPIRATION_DAYS if settings.DEFAULT_EXPIRATION_DAYS > 0 else None
    return PolicyDefaults(
        default_expiration_days=_parse_days(stored.get(DEFAULT_EXPIRATION_DAYS), fallback_days),
        one_time_use_enabled=_parse_bool(stored.get(ONE_TIME_USE_ENABLED), settings.DEFAULT_ONE_TIME_USE),
    )


async def update_settings(values: Dict[str, Any]) -> Dict[str, str]:
    now = utcnow()
    async with AsyncSessionLocal() as session:
        async with session.begin():
            res = await session.execute(sa.select(Setting).where(Setting.key.in_(list(values))))
            existing = {s.key: s for s in res.scalars().all()}
            for key, value in values.items():
                row = existing.get(key)
                if row is None:
                    session.add(Setting(key=key, value=_to_text(value), created_at=now, updated_at=now))
                else:
                    row.value = _to_text(value)
                    row.updated_at = now
    _logger.info("Settings updated | keys=%s", ",".join(sorted(values)))
    return await get_settings()
