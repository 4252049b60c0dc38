"""Curation run lifecycle: controller, stuck-run recovery and scheduler."""

from .recovery import (
    AUTO_RECOVERY_PREFIX,
    MANUAL_RECOVERY_MESSAGE,
    RecoveryScheduler,
    RecoverySweep,
)
from .service import (
    CurationController,
    RunCounters,
    get_run,
    new_run_id,
    run_curation,
)

__all__ = [
    "AUTO_RECOVERY_PREFIX",
    "CurationController",
    "MANUAL_RECOVERY_MESSAGE",
    "RecoveryScheduler",
    "RecoverySweep",
    "RunCounters",
    "get_run",
    "new_run_id",
    "run_curation",
]
