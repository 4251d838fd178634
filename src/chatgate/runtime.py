"""Wires the planner and stores together from :class:`Settings`."""

from __future__ import annotations

from dataclasses import dataclass

from .dispatch import DispatchPlanner
from .logging import setup_logging
from .session import HistoryStore, SessionManager
from .settings import Settings, load_settings
from .types import RouterSnapshot
from .user_state import UserStateStore


@dataclass(slots=True)
class Runtime:
    settings: Settings
    planner: DispatchPlanner
    sessions: SessionManager
    users: UserStateStore


def build_runtime(
    settings: Settings | None = None,
    *,
    snapshot: RouterSnapshot | None = None,
    configure_logging: bool = False,
) -> Runtime:
    settings = settings or load_settings()
    if configure_logging:
        setup_logging(settings.log_level, settings.log_format)
    return Runtime(
        settings=settings,
        planner=DispatchPlanner(snapshot),
        sessions=SessionManager(
            settings.resolved_groups_dir,
            history_store=HistoryStore(settings.history_max_bytes),
        ),
        users=UserStateStore(settings.users_root),
    )
