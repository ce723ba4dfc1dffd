# Services package

from growth_game.services.scheduler import Scheduler, scheduler
from growth_game.services.settings_sync import SettingsSyncer, settings_syncer

__all__ = [
    # Background jobs
    "Scheduler",
    "scheduler",
    # Write-behind settings flush
    "SettingsSyncer",
    "settings_syncer",
]
