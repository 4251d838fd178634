"""Per-user onboarding state with versioned schema and serialized updates."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any, Literal

import msgspec

from .clock import iso_now
from .errors import UserStateCorrupt
from .fileio import read_bytes_or_none, write_json
from .locks import LockRegistry
from .logging import get_logger
from .paths import ensure_safe_path_segment

logger = get_logger(__name__)

Role = Literal["adventurer", "world_creator"]
Language = Literal["zh", "en"]

USER_STATE_VERSION = 4
SUPPORTED_VERSIONS = (2, 3, 4)
MAX_JOINED_WORLDS = 50
MAX_COMMAND_TRANSCRIPTS = 50

ROLES: tuple[str, ...] = ("adventurer", "world_creator")
LANGUAGES: tuple[str, ...] = ("zh", "en")
_LEGACY_ROLES = {"player": "adventurer", "creator": "world_creator"}
# spelling used by v4 documents written before the role was renamed
_ROLE_ALIASES = {**_LEGACY_ROLES, "world creater": "world_creator"}
_PROTECTED_FIELDS = frozenset({"version", "user_id", "updated_at"})


class CommandTranscript(msgspec.Struct, kw_only=True, rename="camel"):
    command: str
    result: str
    created_at: str
    platform: str | None = None
    guild_id: str | None = None
    channel_id: str | None = None


class UserState(msgspec.Struct, kw_only=True, rename="camel", forbid_unknown_fields=False):
    """Current (v4) shape of ``users/<userId>/state.json``."""

    version: int = USER_STATE_VERSION
    user_id: str
    roles: frozenset[Role] = frozenset()
    language: Language | None = None
    onboarding_thread_ids: dict[str, str] = msgspec.field(default_factory=dict)
    world_created_at: str | None = None
    character_created_at: str | None = None
    joined_world_ids: list[int] = msgspec.field(default_factory=list)
    command_transcripts: list[CommandTranscript] = msgspec.field(default_factory=list)
    updated_at: str


Patch = Mapping[str, Any]
PatchFactory = Callable[[UserState | None], Patch | None]


# --- migrations -------------------------------------------------------------
#
# Each step takes and returns a plain dict and never mutates its input.
# v2: single ``role`` plus a single ``onboardingThreadId`` for that role.
# v3: ``onboardingThreadIds`` keyed by legacy role name ("player"/"creator").
# v4: ``roles`` set with the current role names, transcripts.


def migrate_v2_to_v3(record: Mapping[str, Any]) -> dict[str, Any]:
    migrated = dict(record)
    thread_id = migrated.pop("onboardingThreadId", None)
    thread_ids = dict(_as_mapping(migrated.get("onboardingThreadIds")))
    role = migrated.get("role")
    if isinstance(thread_id, str) and thread_id.strip() and role in _LEGACY_ROLES:
        thread_ids.setdefault(role, thread_id.strip())
    migrated["onboardingThreadIds"] = thread_ids
    migrated["version"] = 3
    return migrated


def migrate_v3_to_v4(record: Mapping[str, Any]) -> dict[str, Any]:
    migrated = dict(record)
    legacy_role = migrated.pop("role", None)

    thread_ids: dict[str, str] = {}
    for legacy, current in _LEGACY_ROLES.items():
        value = _as_mapping(migrated.get("onboardingThreadIds")).get(legacy)
        if isinstance(value, str) and value.strip():
            thread_ids[current] = value.strip()

    roles: list[str] = []
    if legacy_role in _LEGACY_ROLES:
        roles.append(_LEGACY_ROLES[legacy_role])
    roles.extend(role for role in thread_ids if role not in roles)

    migrated["roles"] = roles
    migrated["onboardingThreadIds"] = thread_ids
    migrated["joinedWorldIds"] = _coerce_world_ids(migrated.get("joinedWorldIds"))
    migrated["version"] = 4
    return migrated


def normalize_v4(record: Mapping[str, Any]) -> dict[str, Any]:
    normalized = dict(record)
    roles: list[str] = []
    for value in _as_list(record.get("roles")):
        role = _canonical_role(value)
        if role is not None and role not in roles:
            roles.append(role)
    normalized["roles"] = roles
    if record.get("language") not in LANGUAGES:
        normalized["language"] = None
    thread_ids: dict[str, str] = {}
    for key, value in _as_mapping(record.get("onboardingThreadIds")).items():
        role = _canonical_role(key)
        if role is None or not isinstance(value, str) or not value.strip():
            continue
        # the current spelling wins over an alias stored alongside it
        if role not in thread_ids or key == role:
            thread_ids[role] = value.strip()
    normalized["onboardingThreadIds"] = thread_ids
    for field in ("worldCreatedAt", "characterCreatedAt"):
        value = record.get(field)
        normalized[field] = value if isinstance(value, str) and value.strip() else None
    normalized["joinedWorldIds"] = _coerce_world_ids(record.get("joinedWorldIds"))
    normalized["commandTranscripts"] = _coerce_transcripts(
        record.get("commandTranscripts")
    )
    return normalized


_MIGRATIONS: dict[int, Callable[[Mapping[str, Any]], dict[str, Any]]] = {
    2: migrate_v2_to_v3,
    3: migrate_v3_to_v4,
}


def migrate_user_state(user_id: str, record: object) -> dict[str, Any]:
    """Bring a stored record up to the current version.

    Raises UserStateCorrupt for unknown versions, a ``userId`` that is not the
    requested one, or a missing ``updatedAt``.
    """
    if not isinstance(record, Mapping):
        raise UserStateCorrupt("user state is not an object")
    version = record.get("version")
    if isinstance(version, bool) or version not in SUPPORTED_VERSIONS:
        raise UserStateCorrupt(f"unsupported user state version: {version!r}")
    stored_user_id = record.get("userId")
    if not isinstance(stored_user_id, str) or stored_user_id.strip() != user_id:
        raise UserStateCorrupt("user state belongs to a different user")
    updated_at = record.get("updatedAt")
    if not isinstance(updated_at, str) or not updated_at.strip():
        raise UserStateCorrupt("user state has no updatedAt")

    current: dict[str, Any] = dict(record)
    while current["version"] < USER_STATE_VERSION:
        current = _MIGRATIONS[current["version"]](current)
    current["userId"] = user_id
    return normalize_v4(current)


# --- store ------------------------------------------------------------------


class UserStateStore:
    """One ``state.json`` per user under ``<data_root>/users/<userId>/``.

    Reads never raise for bad content: a missing, corrupt, foreign or
    unknown-version document reads as ``None``, and the user looks new.
    :meth:`upsert` is the only write path; it holds the user's lock across
    read, merge and write.
    """

    def __init__(self, data_root: Path, *, locks: LockRegistry | None = None) -> None:
        self._data_root = data_root
        self._locks = locks if locks is not None else LockRegistry()

    def user_dir(self, user_id: str) -> Path:
        safe = ensure_safe_path_segment(user_id.strip(), "userId")
        return self._data_root / "users" / safe

    def state_path(self, user_id: str) -> Path:
        return self.user_dir(user_id) / "state.json"

    async def read(self, user_id: str) -> UserState | None:
        user_id = user_id.strip()
        path = self.state_path(user_id)
        raw = await read_bytes_or_none(path)
        if raw is None:
            return None
        try:
            record = msgspec.json.decode(raw)
            migrated = migrate_user_state(user_id, record)
            return msgspec.convert(migrated, UserState)
        except (msgspec.DecodeError, UserStateCorrupt) as exc:
            logger.warning("user_state.unreadable", user_id=user_id, error=str(exc))
            return None

    async def upsert(self, user_id: str, patch: Patch | PatchFactory) -> UserState:
        """Merge ``patch`` over the stored state and write it atomically.

        ``patch`` is either a mapping of field names or a callable that gets the
        current state (``None`` for a new user) and returns that mapping. The
        callable runs under the user's lock; returning ``None`` leaves an
        existing document untouched.
        """
        safe = ensure_safe_path_segment(user_id.strip(), "userId")
        async with self._locks.hold(safe):
            existing = await self.read(safe)
            changes = patch(existing) if callable(patch) else patch
            if changes is None:
                if existing is not None:
                    return existing
                changes = {}
            protected = _PROTECTED_FIELDS.intersection(changes)
            if protected:
                raise ValueError(f"cannot patch {sorted(protected)}")

            now = iso_now()
            base = existing or UserState(user_id=safe, updated_at=now)
            state = msgspec.structs.replace(base, **dict(changes), updated_at=now)
            await write_json(self.state_path(safe), state)
            return state

    async def set_language(self, user_id: str, language: Language) -> UserState:
        if language not in LANGUAGES:
            raise ValueError(f"unsupported language: {language!r}")
        return await self.upsert(user_id, {"language": language})

    async def get_language(self, user_id: str) -> Language | None:
        state = await self.read(user_id)
        return state.language if state is not None else None

    async def set_roles(self, user_id: str, roles: Iterable[Role]) -> UserState:
        return await self.upsert(user_id, {"roles": _checked_roles(roles)})

    async def add_roles(self, user_id: str, roles: Iterable[Role]) -> UserState:
        wanted = _checked_roles(roles)

        def compute(current: UserState | None) -> Patch | None:
            have = current.roles if current is not None else frozenset()
            if current is not None and wanted <= have:
                return None
            return {"roles": have | wanted}

        return await self.upsert(user_id, compute)

    async def set_onboarding_thread_id(
        self, user_id: str, role: Role, thread_id: str
    ) -> UserState:
        (role,) = _checked_roles([role])

        def compute(current: UserState | None) -> Patch:
            thread_ids = dict(current.onboarding_thread_ids) if current else {}
            thread_ids[role] = thread_id.strip()
            return {"onboarding_thread_ids": thread_ids}

        return await self.upsert(user_id, compute)

    async def get_onboarding_thread_id(self, user_id: str, role: Role) -> str | None:
        state = await self.read(user_id)
        if state is None:
            return None
        return state.onboarding_thread_ids.get(role) or None

    async def mark_world_created(self, user_id: str) -> UserState:
        """Record the first successful world creation; later calls keep the first timestamp."""

        def compute(current: UserState | None) -> Patch | None:
            if current is not None and current.world_created_at:
                return None
            roles = current.roles if current is not None else frozenset()
            return {"roles": roles | {"world_creator"}, "world_created_at": iso_now()}

        return await self.upsert(user_id, compute)

    async def mark_character_created(self, user_id: str) -> UserState:
        def compute(current: UserState | None) -> Patch | None:
            if current is not None and current.character_created_at:
                return None
            roles = current.roles if current is not None else frozenset()
            return {"roles": roles | {"adventurer"}, "character_created_at": iso_now()}

        return await self.upsert(user_id, compute)

    async def add_joined_world(self, user_id: str, world_id: int) -> UserState:
        if isinstance(world_id, bool) or not isinstance(world_id, int) or world_id <= 0:
            return await self.upsert(user_id, {})

        def compute(current: UserState | None) -> Patch:
            previous = current.joined_world_ids if current is not None else []
            ids = [wid for wid in previous if wid != world_id]
            ids.append(world_id)
            return {"joined_world_ids": ids[-MAX_JOINED_WORLDS:]}

        return await self.upsert(user_id, compute)

    async def append_command_transcript(
        self,
        user_id: str,
        command: str,
        result: str,
        *,
        created_at: str | None = None,
        platform: str | None = None,
        guild_id: str | None = None,
        channel_id: str | None = None,
    ) -> UserState:
        command = command.strip()
        result = result.strip()
        if not command or not result:
            return await self.upsert(user_id, {})
        entry = CommandTranscript(
            command=command,
            result=result,
            created_at=_clean(created_at) or iso_now(),
            platform=_clean(platform),
            guild_id=_clean(guild_id),
            channel_id=_clean(channel_id),
        )

        def compute(current: UserState | None) -> Patch:
            previous = current.command_transcripts if current is not None else []
            entries = [*previous, entry]
            return {"command_transcripts": entries[-MAX_COMMAND_TRANSCRIPTS:]}

        return await self.upsert(user_id, compute)

    async def recent_command_transcripts(
        self, user_id: str, limit: int = 8
    ) -> list[CommandTranscript]:
        if limit <= 0:
            return []
        state = await self.read(user_id)
        if state is None:
            return []
        return state.command_transcripts[-limit:]


def _checked_roles(roles: Iterable[str]) -> frozenset[Role]:
    checked = frozenset(roles)
    unknown = checked.difference(ROLES)
    if unknown:
        raise ValueError(f"unknown roles: {sorted(unknown)}")
    return checked  # type: ignore[return-value]


def _clean(value: str | None) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _as_mapping(value: object) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_list(value: object) -> list[Any]:
    return list(value) if isinstance(value, list) else []


def _coerce_world_ids(value: object) -> list[int]:
    ids: list[int] = []
    for item in _as_list(value):
        if isinstance(item, bool):
            continue
        try:
            world_id = int(item)
        except (TypeError, ValueError):
            continue
        if world_id > 0 and world_id not in ids:
            ids.append(world_id)
    return ids[-MAX_JOINED_WORLDS:]


def _coerce_transcripts(value: object) -> list[dict[str, str]]:
    entries: list[dict[str, str]] = []
    for item in _as_list(value):
        record = _as_mapping(item)
        command = _clean(record.get("command"))
        result = _clean(record.get("result"))
        created_at = _clean(record.get("createdAt"))
        if not command or not result or not created_at:
            continue
        entry = {"command": command, "result": result, "createdAt": created_at}
        for field in ("platform", "guildId", "channelId"):
            cleaned = _clean(record.get(field))
            if cleaned:
                entry[field] = cleaned
        entries.append(entry)
    return entries[-MAX_COMMAND_TRANSCRIPTS:]


def _canonical_role(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    role = value.strip()
    if role in ROLES:
        return role
    return _ROLE_ALIASES.get(role)
