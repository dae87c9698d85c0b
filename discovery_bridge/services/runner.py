"""Builds the sync service from settings and keeps a short run history"""

import logging
import threading
from collections import deque
from typing import Callable, Deque, List, Optional

from discovery_bridge.config import Settings
from discovery_bridge.models.report import RunSummary
from discovery_bridge.services.gitlab_client import GitLabClient
from discovery_bridge.services.jpd_client import JpdClient
from discovery_bridge.services.sync_service import SyncService
from discovery_bridge.sync_config import load_sync_config

logger = logging.getLogger(__name__)


class SyncAlreadyRunning(RuntimeError):
    pass


def build_sync_service(settings: Settings) -> SyncService:
    """Wire clients and config for one JPD project / GitLab project pair"""
    config = load_sync_config(settings.sync_config_path)
    source = JpdClient(
        settings.jpd_base_url,
        settings.jpd_email,
        settings.jpd_api_token,
        max_attempts=settings.max_retry_attempts,
    )
    destination = GitLabClient(
        settings.gitlab_url,
        settings.gitlab_token,
        settings.gitlab_project_id,
        max_attempts=settings.max_retry_attempts,
    )
    return SyncService(
        source,
        destination,
        config,
        project_key=settings.jpd_project_key,
        source_base_url=settings.jpd_base_url,
        destination_base_url=settings.gitlab_url,
    )


class SyncRunner:
    """Serializes runs triggered by the scheduler, the API and the CLI"""

    def __init__(
        self,
        settings: Settings,
        service_factory: Optional[Callable[[Settings], SyncService]] = None,
        history_size: int = 20,
    ):
        self.settings = settings
        self.service_factory = service_factory or build_sync_service
        self.history: Deque[RunSummary] = deque(maxlen=history_size)
        self._lock = threading.Lock()
        self._service: Optional[SyncService] = None

    def _get_service(self) -> SyncService:
        if self._service is None:
            self._service = self.service_factory(self.settings)
        return self._service

    def run(self, dry_run: Optional[bool] = None) -> RunSummary:
        if dry_run is None:
            dry_run = self.settings.dry_run
        if not self._lock.acquire(blocking=False):
            raise SyncAlreadyRunning("A sync run is already in progress")
        try:
            summary = self._get_service().run(dry_run=dry_run)
            self.history.append(summary)
            return summary
        finally:
            self._lock.release()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def last(self) -> Optional[RunSummary]:
        return self.history[-1] if self.history else None

    def runs(self) -> List[RunSummary]:
        return list(reversed(self.history))
