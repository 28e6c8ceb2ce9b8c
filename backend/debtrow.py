# backend/debtrow.py
import re

from ledger_cache import LedgerSnapshot

_PLACEHOLDERS = {
    "upn": re.compile(r"\{\{upn\}\}", re.IGNORECASE),
    "summary": re.compile(r"\{\{summary\}\}", re.IGNORECASE),
    "whoami": re.compile(r"\{\{whoami\}\}", re.IGNORECASE),
}


def format_summary(net):
    if net < 0:
        return f"Owes you: {-net}"
    if net > 0:
        return f"You owe: {net}"
    return ""


def render_row(template, user, net, viewer_name):
    values = {"upn": user.name, "summary": format_summary(net), "whoami": viewer_name}
    row = template
    for key, pattern in _PLACEHOLDERS.items():
        # Substituted verbatim: a function replacement skips backslash escapes
        row = pattern.sub(lambda _m, value=values[key]: value, row)
    return row


def render_rows(template, snapshot: LedgerSnapshot):
    """One row per roster member other than the current identity."""
    if snapshot.identity is None:
        return []
    viewer = snapshot.identity.name
    return [render_row(template, user, snapshot.net_for(user), viewer) for user in snapshot.others()]
