"""
Cache Entry State Machine for tracking the freshness of each cached path.

Every canonical request path moves through MISS -> FETCHING -> FRESH -> STALE
and back to FRESH on revalidation. OFFLINE_FALLBACK is reachable from any
state when the network fails. Invalid transitions are logged and ignored,
never raised: the cache layer must keep serving requests.
"""

import logging

from enums.cache_entry_state import CacheEntryState

logger = logging.getLogger(__name__)


class CacheStateTransition:
    """Represents a valid state transition with metadata"""

    def __init__(self, from_state: CacheEntryState, to_state: CacheEntryState, description: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        self.description = description

    def __repr__(self):
        return f"{self.from_state.value} -> {self.to_state.value}"


class CacheStateMachine:
    """
    Per-path finite state machine.

    Valid transitions:
    - MISS -> FETCHING (first request)
    - MISS -> FRESH, MISS -> STALE (entry persisted by an earlier run)
    - FETCHING -> FRESH (response stored)
    - FRESH -> STALE (age exceeded class TTL)
    - FETCHING -> STALE (server answered with an error, old entry kept)
    - FRESH -> FETCHING, STALE -> FETCHING (refetch)
    - STALE -> FRESH (background revalidation stored a response)
    - OFFLINE_FALLBACK -> FETCHING, OFFLINE_FALLBACK -> FRESH (network back)
    - any -> OFFLINE_FALLBACK (network failure)
    - any -> MISS (cache cleared)
    """

    VALID_TRANSITIONS: list[CacheStateTransition] = [
        CacheStateTransition(CacheEntryState.MISS, CacheEntryState.FETCHING, "First request for path"),
        CacheStateTransition(CacheEntryState.MISS, CacheEntryState.FRESH, "Fresh entry found in storage"),
        CacheStateTransition(CacheEntryState.MISS, CacheEntryState.STALE, "Stale entry found in storage"),
        CacheStateTransition(CacheEntryState.FETCHING, CacheEntryState.FRESH, "Response cached"),
        CacheStateTransition(CacheEntryState.FRESH, CacheEntryState.STALE, "Entry outlived class TTL"),
        CacheStateTransition(CacheEntryState.FETCHING, CacheEntryState.STALE, "Server refused refetch, old entry kept"),
        CacheStateTransition(CacheEntryState.FRESH, CacheEntryState.FETCHING, "Refetch of fresh entry"),
        CacheStateTransition(CacheEntryState.STALE, CacheEntryState.FETCHING, "Refetch of stale entry"),
        CacheStateTransition(CacheEntryState.STALE, CacheEntryState.FRESH, "Background revalidation"),
        CacheStateTransition(CacheEntryState.OFFLINE_FALLBACK, CacheEntryState.FETCHING, "Retry after outage"),
        CacheStateTransition(CacheEntryState.OFFLINE_FALLBACK, CacheEntryState.FRESH, "Revalidated after outage"),
    ] + [
        CacheStateTransition(state, CacheEntryState.OFFLINE_FALLBACK, "Network failure")
        for state in CacheEntryState if state != CacheEntryState.OFFLINE_FALLBACK
    ] + [
        CacheStateTransition(state, CacheEntryState.MISS, "Cache cleared")
        for state in CacheEntryState if state != CacheEntryState.MISS
    ]

    _transition_map: dict[CacheEntryState, set[CacheEntryState]] = {}

    @classmethod
    def _build_transition_map(cls):
        if cls._transition_map:
            return  # Already built

        for transition in cls.VALID_TRANSITIONS:
            cls._transition_map.setdefault(transition.from_state, set()).add(transition.to_state)

    @classmethod
    def is_valid_transition(cls, from_state: CacheEntryState, to_state: CacheEntryState) -> bool:
        cls._build_transition_map()

        # Allow staying in same state (no-op)
        if from_state == to_state:
            return True

        return to_state in cls._transition_map.get(from_state, set())

    @classmethod
    def get_valid_transitions(cls, from_state: CacheEntryState) -> list[CacheEntryState]:
        cls._build_transition_map()
        return sorted(cls._transition_map.get(from_state, set()), key=lambda s: s.value)


class CacheStateTracker:
    """Holds the current state of every path seen by the cache layer."""

    def __init__(self):
        self._states: dict[str, CacheEntryState] = {}

    def state_of(self, path: str) -> CacheEntryState:
        return self._states.get(path, CacheEntryState.MISS)

    def transition(self, path: str, to_state: CacheEntryState) -> bool:
        """
        Move a path to a new state.

        Returns:
            True if the transition was applied, False if it was invalid and ignored
        """
        from_state = self.state_of(path)
        if not CacheStateMachine.is_valid_transition(from_state, to_state):
            logger.warning(f"[CacheLayer] Ignoring invalid transition for {path}: "
                           f"{from_state.value} -> {to_state.value}")
            return False
        self._states[path] = to_state
        logger.debug(f"[CacheLayer] {path}: {from_state.value} -> {to_state.value}")
        return True

    def reset(self):
        self._states.clear()

    def snapshot(self) -> dict[str, CacheEntryState]:
        return dict(self._states)
