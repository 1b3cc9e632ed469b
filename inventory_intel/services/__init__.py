"""Services for change detection, persistence and run tracking."""

from inventory_intel.services.change_detector import (
    ChangeDetector,
    ChangeEvent,
    ChangeType,
    DetectionResult,
)
from inventory_intel.services.inventory_store import ApplyResult, InventoryStore
from inventory_intel.services.change_log import ChangeLog
from inventory_intel.services.job_tracker import JobTracker
from inventory_intel.services.inventory_summary import build_summary

__all__ = [
    "ChangeDetector",
    "ChangeEvent",
    "ChangeType",
    "DetectionResult",
    "ApplyResult",
    "InventoryStore",
    "ChangeLog",
    "JobTracker",
    "build_summary",
]
