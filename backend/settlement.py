# backend/settlement.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from errors import LedgerFormatError


def _wire_int(item: dict[str, Any], key: str) -> int:
    value = item[key]
    # JSON true/false decode to bool, which is an int subclass
    if not isinstance(value, int) or isinstance(value, bool):
        raise LedgerFormatError(f"{key} must be an integer, got {value!r}")
    return value


@dataclass(frozen=True)
class User:
    id: int
    name: str

    @classmethod
    def from_wire(cls, item: dict[str, Any]) -> "User":
        name = item["UPN"]
        if not isinstance(name, str):
            raise LedgerFormatError(f"UPN must be a string, got {name!r}")
        return cls(_wire_int(item, "ID"), name)


@dataclass(frozen=True)
class Receipt:
    """payer advanced num_meals meals to payee."""

    payer: int
    payee: int
    num_meals: int

    @classmethod
    def from_wire(cls, item: dict[str, Any]) -> "Receipt":
        return cls(_wire_int(item, "Payer"), _wire_int(item, "Payee"), _wire_int(item, "NumMeals"))


class DebtMatrix:
    """Signed net balances between every pair of roster members.

    Rows and columns follow roster position; use between() to look up by id.
    debts[a][b] == -debts[b][a] and the diagonal is always zero.
    """

    def __init__(self, ids: Sequence[int], debts: Sequence[Sequence[int]]):
        self.ids = tuple(ids)
        self.debts = tuple(tuple(row) for row in debts)
        self._index = {user_id: pos for pos, user_id in enumerate(self.ids)}

    def between(self, a: int, b: int) -> int:
        return self.debts[self._index[a]][self._index[b]]

    def to_list(self) -> list[list[int]]:
        return [list(row) for row in self.debts]

    def __len__(self):
        return len(self.ids)

    def __eq__(self, other):
        if not isinstance(other, DebtMatrix):
            return NotImplemented
        return self.ids == other.ids and self.debts == other.debts

    def __repr__(self):
        return f"DebtMatrix(ids={self.ids!r}, debts={self.to_list()!r})"


def compute_matrix(users: Sequence[User], records: Iterable[Receipt]) -> DebtMatrix:
    size = len(users)
    position = {user.id: pos for pos, user in enumerate(users)}
    debts = [[0] * size for _ in range(size)]

    for record in records:
        payer = position.get(record.payer)
        payee = position.get(record.payee)
        # Receipts naming someone outside the roster contribute nothing
        if payer is None or payee is None:
            continue

        debts[payer][payee] += record.num_meals
        debts[payee][payer] -= record.num_meals

    return DebtMatrix([user.id for user in users], debts)


def parse_ledger(data: Any) -> tuple[list[User], list[Receipt]]:
    """Split a get-data document into (roster, receipts).

    The server spells the receipt list "Reciepts"; that key is part of the
    wire format and must not be corrected.
    """
    if not isinstance(data, dict):
        raise LedgerFormatError(f"expected a JSON object, got {type(data).__name__}")

    try:
        users = [User.from_wire(item) for item in data.get("Users") or []]
        receipts = [Receipt.from_wire(item) for item in data.get("Reciepts") or []]
    except (KeyError, TypeError, ValueError) as e:
        raise LedgerFormatError(f"malformed ledger document: {e!r}") from e

    return users, receipts
