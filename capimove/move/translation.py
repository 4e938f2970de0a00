"""Identity translation table: source UID -> target identity.

Owned by a single move run and discarded when it ends; never persisted.
Written only from the event loop thread and each write is one synchronous
step, so concurrent wave tasks never interleave inside an update.  Keys are
disjoint per node.
"""

from __future__ import annotations

from collections.abc import Iterable

from capimove.models.resources import ObjectIdentity


class IdentityTranslationTable:
    """Records the target identity assigned to each created node."""

    def __init__(self) -> None:
        self._entries: dict[str, ObjectIdentity] = {}

    def record(self, source_key: str, target: ObjectIdentity) -> None:
        """Record the target identity for *source_key*.

        Re-recording the same UID is a no-op; a different UID means two
        target objects claim one source object and is rejected.
        """
        existing = self._entries.get(source_key)
        if existing is not None and existing.uid != target.uid:
            raise ValueError(f"{source_key} already translated to {existing.uid}, refusing {target.uid}")
        self._entries[source_key] = target

    def lookup(self, source_key: str) -> ObjectIdentity | None:
        return self._entries.get(source_key)

    def target_uid(self, source_key: str) -> str | None:
        target = self._entries.get(source_key)
        return target.uid if target is not None else None

    def missing(self, source_keys: Iterable[str]) -> list[str]:
        return [key for key in source_keys if key not in self._entries]

    def migrated(self) -> list[ObjectIdentity]:
        """Target identities created (or reconciled) so far."""
        return list(self._entries.values())

    def __contains__(self, source_key: object) -> bool:
        return source_key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
