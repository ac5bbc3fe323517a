# intune_packager/services/__init__.py
"""Services that drive a label run for intune-packager"""

from .config_service import ConfigService, default_config_path
from .label_script import LabelScriptRunner
from .download_service import Downloader, download_filename
from .upload_service import ChunkedUploader, AppUploader
from .activity_log import ActivityLog
from .notification_service import NotificationSink, NullNotifier, TeamsNotifier
from .pipeline import LabelPipeline, LabelLocks, StageOutcome
from .trigger_watcher import TriggerWatcher

__all__ = [
    "ConfigService",
    "default_config_path",
    "LabelScriptRunner",
    "Downloader",
    "download_filename",
    "ChunkedUploader",
    "AppUploader",
    "ActivityLog",
    "NotificationSink",
    "NullNotifier",
    "TeamsNotifier",
    "LabelPipeline",
    "LabelLocks",
    "StageOutcome",
    "TriggerWatcher",
]
