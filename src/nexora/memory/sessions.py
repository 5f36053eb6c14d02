"""Per-tier chat session collections with best-effort persistence."""

import logging

from pydantic import TypeAdapter, ValidationError

from nexora.chat.schema import ChatSession, MemoryFact, Message, Tier
from nexora.memory.storage import KeyValueStore

logger = logging.getLogger(__name__)

SESSIONS_KEY = "nexora-sessions-{tier}"
ACTIVE_KEY = "nexora-active-session-{tier}"
LEGACY_SESSIONS_KEY = "nexora-sessions"
LEGACY_ACTIVE_KEY = "nexora-active-session"

_sessions_adapter = TypeAdapter(list[ChatSession])


class SessionNotFoundError(Exception):
    """Raised when a session id does not exist in the tier."""


class SessionStore:
    """Two independent session collections, one per tier.

    Each tier holds an ordered list of sessions (newest first) and an
    active-session pointer. Every mutation is written through to the
    key-value store; read and write failures are logged and never raised.
    """

    def __init__(self, store: KeyValueStore, save_history: bool = True):
        """Initialize the session store.

        Args:
            store: Key-value persistence backend
            save_history: When False, persisted sessions are removed instead of written
        """
        self.store = store
        self.save_history = save_history
        self._sessions: dict[Tier, list[ChatSession]] = {tier: [] for tier in Tier}
        self._active: dict[Tier, str | None] = {tier: None for tier in Tier}

    # Persistence

    def load(self) -> None:
        """Load both tiers from storage.

        Absent or corrupt data leaves the tier empty.
        """
        if not self.save_history:
            return

        self._migrate_legacy_keys()

        for tier in Tier:
            self._sessions[tier] = []
            self._active[tier] = None
            try:
                raw = self.store.get(SESSIONS_KEY.format(tier=tier.value))
                if raw is None:
                    continue
                sessions = _sessions_adapter.validate_json(raw)
                active_id = self.store.get(ACTIVE_KEY.format(tier=tier.value))
            except ValidationError:
                logger.warning("Discarding unreadable %s sessions", tier.value, exc_info=True)
                continue
            except Exception:
                logger.warning("Failed to load %s sessions", tier.value, exc_info=True)
                continue

            self._sessions[tier] = sessions
            if active_id and any(s.id == active_id for s in sessions):
                self._active[tier] = active_id

    def _migrate_legacy_keys(self) -> None:
        """Move sessions saved before tiers existed into the standard tier."""
        try:
            legacy = self.store.get(LEGACY_SESSIONS_KEY)
            if legacy is None:
                return
            self.store.set(SESSIONS_KEY.format(tier=Tier.STANDARD.value), legacy)
            self.store.remove(LEGACY_SESSIONS_KEY)
            legacy_active = self.store.get(LEGACY_ACTIVE_KEY)
            if legacy_active:
                self.store.set(ACTIVE_KEY.format(tier=Tier.STANDARD.value), legacy_active)
                self.store.remove(LEGACY_ACTIVE_KEY)
            logger.info("Migrated legacy sessions into the standard tier")
        except Exception:
            logger.warning("Failed to migrate legacy sessions", exc_info=True)

    def save(self, tier: Tier | None = None) -> None:
        """Write one tier (or both) to storage.

        Inline attachment payloads are dropped; they are not restored on load.
        """
        tiers = [tier] if tier is not None else list(Tier)
        for t in tiers:
            sessions_key = SESSIONS_KEY.format(tier=t.value)
            active_key = ACTIVE_KEY.format(tier=t.value)
            try:
                if not self.save_history or not self._sessions[t]:
                    self.store.remove(sessions_key)
                else:
                    payload = [_storable(s) for s in self._sessions[t]]
                    self.store.set(sessions_key, _sessions_adapter.dump_json(payload).decode())

                active_id = self._active[t]
                if self.save_history and active_id:
                    self.store.set(active_key, active_id)
                else:
                    self.store.remove(active_key)
            except Exception:
                logger.warning("Failed to save %s sessions", t.value, exc_info=True)

    # Queries

    def sessions(self, tier: Tier) -> list[ChatSession]:
        """Sessions of a tier, newest first."""
        return list(self._sessions[tier])

    def active_id(self, tier: Tier) -> str | None:
        return self._active[tier]

    def active_session(self, tier: Tier) -> ChatSession | None:
        active_id = self._active[tier]
        return self.find(tier, active_id) if active_id else None

    def find(self, tier: Tier, session_id: str) -> ChatSession | None:
        for session in self._sessions[tier]:
            if session.id == session_id:
                return session
        return None

    def get(self, tier: Tier, session_id: str) -> ChatSession:
        """Get a session, raising if it does not exist."""
        session = self.find(tier, session_id)
        if session is None:
            raise SessionNotFoundError(f"Unknown {tier.value} session: {session_id}")
        return session

    # Mutations

    def create(self, tier: Tier, title: str) -> ChatSession:
        """Prepend a new session and make it active."""
        session = ChatSession(title=title)
        self._sessions[tier].insert(0, session)
        self._active[tier] = session.id
        self.save(tier)
        return session

    def set_active(self, tier: Tier, session_id: str | None) -> None:
        """Point the tier at a session, or at no session."""
        if session_id is not None:
            self.get(tier, session_id)
        self._active[tier] = session_id
        self.save(tier)

    def append_messages(self, tier: Tier, *messages: Message) -> ChatSession:
        """Append messages to the active session.

        Raises:
            SessionNotFoundError: If the tier has no active session
        """
        session = self.active_session(tier)
        if session is None:
            raise SessionNotFoundError(f"No active {tier.value} session")
        session.messages.extend(messages)
        session.touch()
        self.save(tier)
        return session

    def delete(self, tier: Tier, session_id: str) -> bool:
        """Delete a session.

        If it was active, the most recently modified remaining session becomes
        active, or the pointer is cleared when none remain.

        Returns:
            True if the session existed
        """
        remaining = [s for s in self._sessions[tier] if s.id != session_id]
        if len(remaining) == len(self._sessions[tier]):
            return False

        self._sessions[tier] = remaining
        if self._active[tier] == session_id:
            if remaining:
                newest = max(remaining, key=lambda s: s.last_modified)
                self._active[tier] = newest.id
            else:
                self._active[tier] = None
        self.save(tier)
        return True

    def rename(self, tier: Tier, session_id: str, title: str) -> ChatSession:
        session = self.get(tier, session_id)
        session.title = title
        session.touch()
        self.save(tier)
        return session

    def clear_all(self, tier: Tier) -> None:
        """Remove every session of the tier and clear its pointer."""
        self._sessions[tier] = []
        self._active[tier] = None
        self.save(tier)

    def upsert_memory(self, tier: Tier, session_id: str, key: str, fact: str) -> ChatSession:
        """Add or replace a long-term memory fact on a session."""
        session = self.get(tier, session_id)
        for item in session.memory:
            if item.key == key:
                item.fact = fact
                break
        else:
            session.memory.append(MemoryFact(key=key, fact=fact))
        session.touch()
        self.save(tier)
        return session


def _storable(session: ChatSession) -> ChatSession:
    """Copy of a session with inline attachment parts removed."""
    messages = [
        message.model_copy(
            update={"parts": [p for p in message.parts if p.inline_data is None]}
        )
        for message in session.messages
    ]
    return session.model_copy(update={"messages": messages})
