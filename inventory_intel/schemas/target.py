"""Scrape target descriptors: validation, file loading and database sync."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_intel.core.exceptions import ConfigError
from inventory_intel.models.scrape_target import ScrapeTarget

logger = structlog.get_logger(__name__)


class TargetConfig(BaseModel):
    """One competitor source as written in a targets file.

    Accepts snake_case keys and the camelCase dealer-config spelling
    (``name``, ``baseUrl``, ``inventoryPath``, ``platform``,
    ``platformConfig``, ``expectedMin``).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    source_name: str = Field(validation_alias=AliasChoices("source_name", "name"), min_length=1)
    base_url: str = Field(validation_alias=AliasChoices("base_url", "baseUrl"), min_length=1)
    inventory_path: str = Field(default="", validation_alias=AliasChoices("inventory_path", "inventoryPath"))
    platform_kind: str = Field(validation_alias=AliasChoices("platform_kind", "platform"), min_length=1)
    config: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("config", "platformConfig"))
    expected_minimum_count: Optional[int] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("expected_minimum_count", "expectedMin"),
    )
    is_active: bool = Field(default=True, validation_alias=AliasChoices("is_active", "isActive"))

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("inventory_path")
    @classmethod
    def leading_slash(cls, v: str) -> str:
        if v and not v.startswith("/"):
            return f"/{v}"
        return v

    def to_model(self, tenant_id: str) -> ScrapeTarget:
        """Transient ScrapeTarget for this descriptor."""
        return ScrapeTarget(tenant_id=tenant_id, **self.model_dump())


def load_targets(path: Union[str, Path]) -> List[TargetConfig]:
    """Load target descriptors from a JSON file.

    The file holds either a list of targets or ``{"targets": [...]}``.

    Raises:
        ConfigError: If the file is missing, not JSON, or a target is invalid
    """
    path = Path(path)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"cannot read targets file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"targets file {path} is not valid JSON: {e}") from e

    if isinstance(payload, dict):
        payload = payload.get("targets")
    if not isinstance(payload, list):
        raise ConfigError(f"targets file {path} must contain a list of targets")

    targets = []
    for index, entry in enumerate(payload):
        try:
            targets.append(TargetConfig.model_validate(entry))
        except ValidationError as e:
            name = (entry.get("source_name") or entry.get("name")) if isinstance(entry, dict) else None
            raise ConfigError(f"target #{index} is invalid: {e}", source_name=name) from e

    names = [t.source_name for t in targets]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigError(f"duplicate source names in {path}: {', '.join(duplicates)}")

    logger.info("targets_loaded", path=str(path), count=len(targets))
    return targets


async def sync_targets(
    session_factory: async_sessionmaker[AsyncSession],
    tenant_id: str,
    configs: List[TargetConfig],
) -> List[ScrapeTarget]:
    """Insert or update scrape_targets rows for a tenant from descriptors.

    Targets missing from ``configs`` are left untouched; the pipeline never
    deletes targets.

    Returns:
        The persisted targets, in ``configs`` order
    """
    created = updated = 0
    async with session_factory() as session:
        async with session.begin():
            result = await session.execute(
                select(ScrapeTarget).where(ScrapeTarget.tenant_id == tenant_id)
            )
            existing = {target.source_name: target for target in result.scalars().all()}

            targets = []
            for config in configs:
                target = existing.get(config.source_name)
                if target is None:
                    target = config.to_model(tenant_id)
                    session.add(target)
                    created += 1
                else:
                    for key, value in config.model_dump().items():
                        setattr(target, key, value)
                    updated += 1
                targets.append(target)

    logger.info("targets_synced", tenant_id=tenant_id, created=created, updated=updated)
    return targets
