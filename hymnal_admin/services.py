"""Wiring of the admin services around one database root."""

from dataclasses import dataclass
from typing import Optional

from hymnal_admin.authorization import AuthorizationService
from hymnal_admin.collection_service import CollectionService
from hymnal_admin.config import AdminConfig, load_config
from hymnal_admin.database import get_root, utc_now
from hymnal_admin.global_update import GlobalUpdateService
from hymnal_admin.report_repository import SongReportRepository
from hymnal_admin.session_service import SessionAdminService
from hymnal_admin.song_repository import SongRepository


@dataclass
class AdminServices:
    config: AdminConfig
    auth: AuthorizationService
    collections: CollectionService
    songs: SongRepository
    reports: SongReportRepository
    sessions: SessionAdminService
    global_update: GlobalUpdateService


def build_services(config: Optional[AdminConfig] = None, root=None,
                   clock=utc_now) -> AdminServices:
    """Create every service on the same root reference.

    Without a root, Firebase is initialized from the config.
    """
    config = config or load_config()
    if root is None:
        root = get_root(config)
    collections = CollectionService(root, config, clock=clock)
    return AdminServices(
        config=config,
        auth=AuthorizationService(root, config),
        collections=collections,
        songs=SongRepository(root, collections),
        reports=SongReportRepository(root, clock=clock),
        sessions=SessionAdminService(root, config, clock=clock),
        global_update=GlobalUpdateService(root, clock=clock),
    )
