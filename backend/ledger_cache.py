# backend/ledger_cache.py
from __future__ import annotations

from dataclasses import dataclass, field, replace

from settlement import DebtMatrix, User


@dataclass(frozen=True)
class LedgerSnapshot:
    """One refresh worth of state. Readers always see all four fields together."""

    roster: tuple[User, ...] = ()
    matrix: DebtMatrix = field(default_factory=lambda: DebtMatrix((), ()))
    identity: User | None = None
    sequence: int = 0

    def net_for(self, user: User) -> int:
        """Signed balance between the identity and user (positive: you owe)."""
        if self.identity is None:
            return 0
        return self.matrix.between(self.identity.id, user.id)

    def others(self) -> list[User]:
        if self.identity is None:
            return []
        return [user for user in self.roster if user.id != self.identity.id]


class LedgerCache:
    def __init__(self):
        self._snapshot = LedgerSnapshot()
        self.template = None

    @property
    def snapshot(self) -> LedgerSnapshot:
        return self._snapshot

    @property
    def template_loaded(self) -> bool:
        return self.template is not None

    @property
    def roster(self):
        return self._snapshot.roster

    @property
    def matrix(self):
        return self._snapshot.matrix

    @property
    def identity(self):
        return self._snapshot.identity

    def find_user(self, user_id: int) -> User | None:
        for user in self._snapshot.roster:
            if user.id == user_id:
                return user
        return None

    def install(self, snapshot: LedgerSnapshot) -> bool:
        # Refuse results of requests issued before the one already installed
        if snapshot.sequence < self._snapshot.sequence:
            return False
        self._snapshot = snapshot
        return True

    def set_identity(self, user: User) -> LedgerSnapshot:
        self._snapshot = replace(self._snapshot, identity=user)
        return self._snapshot
