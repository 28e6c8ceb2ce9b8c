# backend/identity.py
"""
Which roster member this client acts as.

The id is kept the way the web page keeps it: a single "uid" cookie with
samesite=strict. CookieFileIdentityStore writes that cookie to a file so the
choice survives restarts on the same machine; MemoryIdentityStore lives only
as long as the process.
"""

from __future__ import annotations

from http.cookies import CookieError, SimpleCookie
from pathlib import Path
from typing import Protocol, Sequence

from mealbot_logging import get_logger
from settlement import User

logger = get_logger(__name__)

UNSET = -1
COOKIE_KEY = "uid"


class IdentityStore(Protocol):
    def resolve(self) -> int: ...

    def persist(self, user_id: int) -> None: ...


def encode_cookie(user_id: int) -> str:
    cookie = SimpleCookie()
    cookie[COOKIE_KEY] = str(user_id)
    cookie[COOKIE_KEY]["samesite"] = "strict"
    return cookie[COOKIE_KEY].OutputString()


def parse_cookie(raw: str) -> int:
    """Return the uid held by a cookie string, or UNSET."""
    if not raw or not raw.strip():
        return UNSET
    cookie = SimpleCookie()
    try:
        cookie.load(raw.strip())
    except CookieError:
        return UNSET
    morsel = cookie.get(COOKIE_KEY)
    if morsel is None:
        return UNSET
    try:
        return int(morsel.value)
    except ValueError:
        return UNSET


class MemoryIdentityStore:
    def __init__(self, user_id: int = UNSET):
        self._cookie = encode_cookie(user_id) if user_id != UNSET else ""

    def resolve(self) -> int:
        return parse_cookie(self._cookie)

    def persist(self, user_id: int) -> None:
        self._cookie = encode_cookie(user_id)


class CookieFileIdentityStore:
    def __init__(self, path):
        self.path = Path(path).expanduser()

    def resolve(self) -> int:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return UNSET
        except OSError as e:
            logger.warning("identity_read_failed", path=str(self.path), error=str(e))
            return UNSET
        return parse_cookie(raw)

    def persist(self, user_id: int) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(encode_cookie(user_id) + "\n", encoding="utf-8")
        tmp.replace(self.path)


def pick_identity(stored: int, roster: Sequence[User]) -> User | None:
    """
    Choose the current user for a freshly fetched roster. Touches no storage.

    Nothing stored, or a stored id that is no longer in the roster, both fall
    back to the first roster entry; the caller persists it once the roster is
    actually adopted. An empty roster has no identity.
    """
    if not roster:
        return None

    if stored != UNSET:
        for user in roster:
            if user.id == stored:
                return user
        logger.warning("identity_fallback", stored_id=stored, fallback_id=roster[0].id)

    return roster[0]
