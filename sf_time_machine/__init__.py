from .backup import BackupManager
from .jobs import JobManager
from .time_machine import TimeMachine

__version__ = "0.3.0"
__author__ = "sf-time-machine contributors"
__url__ = "https://github.com/sf-time-machine/sf-time-machine"

__all__ = ["BackupManager", "JobManager", "TimeMachine"]
