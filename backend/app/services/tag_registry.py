"""
tag_registry.py

Index from invalidation tag to the cache keys stored under it.

Not thread-safe by itself; the owning OriginFetchCache holds its lock around
every call so the tag index and the entry map change together.

Generations exist only for tags an in-flight fetch is watching: ``snapshot``
starts the watch, ``release`` ends it, and a tag nobody watches keeps no
state once its keys are gone.
"""
from collections import defaultdict
from typing import Dict, Iterable, Set, Tuple

Snapshot = Tuple[int, Dict[str, int]]


class TagRegistry:
    def __init__(self):
        self._keys_by_tag: Dict[str, Set[str]] = defaultdict(set)
        self._tags_by_key: Dict[str, Set[str]] = defaultdict(set)
        # Bumped when a watched tag is invalidated; lets an in-flight fetch
        # detect that one of its tags was invalidated after it started.
        self._generation: Dict[str, int] = {}
        self._watchers: Dict[str, int] = {}
        self._epoch = 0

    def register(self, tag: str, key: str) -> None:
        self._keys_by_tag[tag].add(key)
        self._tags_by_key[key].add(tag)

    def register_all(self, tags: Iterable[str], key: str) -> None:
        for tag in tags:
            self.register(tag, key)

    def keys_for(self, tag: str) -> Set[str]:
        return set(self._keys_by_tag.get(tag, ()))

    def tags_for(self, key: str) -> Set[str]:
        return set(self._tags_by_key.get(key, ()))

    def pop(self, tag: str) -> Set[str]:
        """Detach every key from ``tag`` and return them."""
        if tag in self._watchers:
            self._generation[tag] = self._generation.get(tag, 0) + 1
        keys = self._keys_by_tag.pop(tag, set())
        for key in keys:
            self.discard_key(key)
        return keys

    def discard_key(self, key: str) -> None:
        for tag in self._tags_by_key.pop(key, set()):
            members = self._keys_by_tag.get(tag)
            if members is None:
                continue
            members.discard(key)
            if not members:
                del self._keys_by_tag[tag]

    def generation(self, tag: str) -> int:
        return self._generation.get(tag, 0)

    def snapshot(self, tags: Iterable[str]) -> Snapshot:
        """Start watching ``tags``; pair every call with ``release``."""
        generations = {}
        for tag in tags:
            self._watchers[tag] = self._watchers.get(tag, 0) + 1
            generations[tag] = self.generation(tag)
        return self._epoch, generations

    def release(self, snapshot: Snapshot) -> None:
        for tag in snapshot[1]:
            remaining = self._watchers.get(tag, 0) - 1
            if remaining > 0:
                self._watchers[tag] = remaining
            else:
                self._watchers.pop(tag, None)
                self._generation.pop(tag, None)

    def changed_since(self, snapshot: Snapshot) -> bool:
        epoch, generations = snapshot
        if epoch != self._epoch:
            return True
        return any(self.generation(tag) != gen for tag, gen in generations.items())

    def tracked_generations(self) -> int:
        return len(self._generation)

    def clear(self) -> None:
        self._epoch += 1
        self._keys_by_tag.clear()
        self._tags_by_key.clear()

    def __len__(self) -> int:
        return len(self._keys_by_tag)
