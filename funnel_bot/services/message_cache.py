"""Bounded set of recently seen inbound message ids."""

DEFAULT_MAX_SIZE = 1000
DEFAULT_CLEANUP_SIZE = 500


class MessageCache:
    """Insertion-ordered id set with overflow trimming.

    Not synchronized: concurrent deliveries may race between ``has`` and ``add``,
    in which case a duplicate can slip through. Entries are lost on restart.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE, cleanup_size: int = DEFAULT_CLEANUP_SIZE):
        if cleanup_size > max_size:
            raise ValueError("cleanup_size must not exceed max_size")
        self.max_size = max_size
        self.cleanup_size = cleanup_size
        # dict keeps insertion order; re-adding a known id keeps its original slot
        self._ids: dict[str, None] = {}

    def has(self, message_id: str) -> bool:
        return message_id in self._ids

    def add(self, message_id: str) -> None:
        self._ids[message_id] = None
        self.cleanup()

    def cleanup(self) -> bool:
        """Keep only the newest ``cleanup_size`` ids once ``max_size`` is exceeded."""
        if len(self._ids) <= self.max_size:
            return False
        survivors = list(self._ids)[-self.cleanup_size :] if self.cleanup_size else []
        self._ids = dict.fromkeys(survivors)
        return True

    def __contains__(self, message_id: str) -> bool:
        return self.has(message_id)

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def size(self) -> int:
        return len(self._ids)
