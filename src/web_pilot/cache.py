# cache.py
# Read cache for capability calls issued while planning.
#
# Only observe/extract results are stored. An act does not clear the
# cache; it marks it stale, and the next read of any key clears
# everything before looking up. One cache per negotiation session.

from web_pilot.models import ActionKind


def cache_key(kind: ActionKind, query: str) -> str:
    return f"{kind.value}::{query}"


class ActionCache:
    """
    Session-scoped memo of read-only capability results.

    Example:
        cache = ActionCache()
        cache.put(ActionKind.EXTRACT, "page title", "Example Domain")
        cache.get(ActionKind.EXTRACT, "page title")   # "Example Domain"
        cache.mark_stale()                            # after an act
        cache.get(ActionKind.EXTRACT, "page title")   # None, cache now empty
    """

    def __init__(self, entries: dict[str, str] | None = None) -> None:
        self._entries: dict[str, str] = dict(entries or {})
        self._stale = False

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, kind: ActionKind, query: str) -> str | None:
        """Return the cached payload, or None on a miss. Acts always miss."""
        if not kind.is_read:
            return None
        self._clear_if_stale()
        return self._entries.get(cache_key(kind, query))

    def put(self, kind: ActionKind, query: str, payload: str) -> None:
        if not kind.is_read:
            return
        self._clear_if_stale()
        self._entries[cache_key(kind, query)] = payload

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def mark_stale(self) -> None:
        """Record that a mutating call happened. Clearing waits for the next read."""
        self._stale = True

    def invalidate_all(self) -> None:
        self._entries.clear()
        self._stale = False

    def _clear_if_stale(self) -> None:
        if self._stale:
            self.invalidate_all()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def stale(self) -> bool:
        return self._stale

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
