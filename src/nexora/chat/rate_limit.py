"""Usage window for the rate-limited (pro) tier."""

import logging
from dataclasses import dataclass

from pydantic import ValidationError

from nexora.chat.schema import RateLimitState, now_ms
from nexora.memory.storage import KeyValueStore

logger = logging.getLogger(__name__)

USAGE_KEY = "nexora-pro-usage"

DEFAULT_CAP = 7
DEFAULT_WINDOW_MS = 7 * 60 * 60 * 1000


@dataclass
class RateLimitDecision:
    """Outcome of a rate-limit check."""

    allowed: bool
    state: RateLimitState
    retry_at: int | None = None  # Epoch ms when a denied caller may retry
    reason: str | None = None


def check_rate_limit(
    now: int,
    state: RateLimitState,
    cap: int = DEFAULT_CAP,
    window_ms: int = DEFAULT_WINDOW_MS,
) -> RateLimitDecision:
    """Decide whether a send is allowed.

    Pure function: the input state is never mutated.

    Args:
        now: Current time in epoch milliseconds
        state: Current usage state
        cap: Messages allowed per window
        window_ms: Window length in milliseconds

    Returns:
        Decision carrying the state to adopt (unchanged on denial)
    """
    if now > state.reset_time:
        return RateLimitDecision(
            allowed=True,
            state=RateLimitState(count=1, reset_time=now + window_ms),
        )

    if state.count >= cap:
        return RateLimitDecision(allowed=False, state=state, retry_at=state.reset_time)

    return RateLimitDecision(
        allowed=True,
        state=RateLimitState(count=state.count + 1, reset_time=state.reset_time),
    )


class RateLimiter:
    """Persisted wrapper around :func:`check_rate_limit`."""

    def __init__(
        self,
        store: KeyValueStore,
        cap: int = DEFAULT_CAP,
        window_ms: int = DEFAULT_WINDOW_MS,
        denial_message: str = "Usage limit reached.",
    ):
        """Initialize the limiter and load persisted usage.

        Args:
            store: Key-value persistence backend
            cap: Messages allowed per window
            window_ms: Window length in milliseconds
            denial_message: Explanation attached to denials
        """
        self.store = store
        self.cap = cap
        self.window_ms = window_ms
        self.denial_message = denial_message
        self.state = self._load(now_ms())

    def _load(self, now: int) -> RateLimitState:
        """Read persisted usage; missing or corrupt data starts fresh."""
        try:
            raw = self.store.get(USAGE_KEY)
            if raw is None:
                return RateLimitState()
            state = RateLimitState.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable usage state", exc_info=True)
            return RateLimitState()
        except Exception:
            logger.warning("Failed to load usage state", exc_info=True)
            return RateLimitState()

        if now > state.reset_time:
            state = RateLimitState()
            self._save(state)
        return state

    def _save(self, state: RateLimitState) -> None:
        try:
            self.store.set(USAGE_KEY, state.model_dump_json())
        except Exception:
            logger.warning("Failed to save usage state", exc_info=True)

    def try_acquire(self, now: int | None = None) -> RateLimitDecision:
        """Consume one send from the window if allowed.

        Allowed transitions are persisted; a denial leaves both the in-memory
        and the persisted state untouched.
        """
        decision = check_rate_limit(
            now if now is not None else now_ms(),
            self.state,
            cap=self.cap,
            window_ms=self.window_ms,
        )
        if not decision.allowed:
            decision.reason = self.denial_message
            logger.info("Pro tier send denied until %s", decision.retry_at)
            return decision

        self.state = decision.state
        self._save(self.state)
        return decision

    def remaining(self, now: int | None = None) -> int:
        """Sends left in the current window."""
        current = now if now is not None else now_ms()
        if current > self.state.reset_time:
            return self.cap
        return max(0, self.cap - self.state.count)
