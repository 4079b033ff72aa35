"""
Set reconciliation between the stored library and a filesystem scan.

Pure functions: no I/O, no store access.
"""

from typing import Iterable, NamedTuple, Optional, Sequence

from goodmusic.domain.library.models import Track


class ReconcilePlan(NamedTuple):
    """How a scan relates to the store snapshot, keyed by uri."""

    unchanged: dict[str, Track]  # discovered and already stored
    new: list[str]  # discovered, not stored (discovery order)
    missing: list[Track]  # stored, not discovered


def snapshot_by_uri(tracks: Iterable[Track]) -> dict[str, Track]:
    return {track.uri: track for track in tracks}


def plan_reconciliation(
    snapshot: dict[str, Track], discovered: Sequence[str]
) -> ReconcilePlan:
    """Split a scan into unchanged, new and missing sets.

    Args:
        snapshot: Store contents taken before processing, keyed by uri
        discovered: Paths found on disk
    """
    discovered_set = set(discovered)

    unchanged = {uri: snapshot[uri] for uri in discovered if uri in snapshot}
    new = [uri for uri in dict.fromkeys(discovered) if uri not in snapshot]
    missing = [track for uri, track in snapshot.items() if uri not in discovered_set]

    return ReconcilePlan(unchanged=unchanged, new=new, missing=missing)


class DuplicateIndex:
    """Tracks which duplicate keys are already taken during one sync.

    Stored tracks still on disk own their key outright. Among new tracks the
    lowest id wins, matching the survivor rule of LibraryStore.deduplicate().
    """

    def __init__(self, stored: Iterable[Track] = ()):
        self._stored: dict[tuple, str] = {}
        self._pending: dict[tuple, Track] = {}
        for track in stored:
            key = track.duplicate_key
            current = self._stored.get(key)
            if current is None or track.id < current:
                self._stored[key] = track.id

    def claim(self, track: Track) -> Optional[Track]:
        """Offer a new track.

        Returns:
            The track it displaced among pending tracks, the track itself if it
            loses to an existing owner, or None if it took a free key.
        """
        key = track.duplicate_key
        if key in self._stored:
            return track

        current = self._pending.get(key)
        if current is None:
            self._pending[key] = track
            return None
        if track.id < current.id:
            self._pending[key] = track
            return current
        return track

    def release(self, tracks: Iterable[Track]) -> None:
        """Give up the keys held by tracks that were never written."""
        for track in tracks:
            key = track.duplicate_key
            if self._pending.get(key) is track:
                del self._pending[key]
