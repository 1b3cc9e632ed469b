"""Pydantic schemas for inventory-intel."""

from inventory_intel.schemas.target import TargetConfig, load_targets, sync_targets

__all__ = [
    "TargetConfig",
    "load_targets",
    "sync_targets",
]
