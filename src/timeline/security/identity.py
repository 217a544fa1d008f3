"""
Cookie-carried identity.

The identity cookie holds the plain username. It is not signed and the server
keeps no session for it: whoever sends the cookie is treated as that user.
"""

from urllib.parse import quote, unquote
from fastapi import Request, Response

IDENTITY_COOKIE = "username"


def set_identity_cookie(response: Response, username: str, max_age: int) -> None:
    """Store the username on the client for max_age seconds, hidden from page scripts."""
    response.set_cookie(
        key=IDENTITY_COOKIE,
        # Percent-encoded so any unicode username survives the cookie header
        value=quote(username, safe=""),
        max_age=max_age,
        httponly=True,
        samesite=None,
    )


def clear_identity_cookie(response: Response) -> None:
    response.delete_cookie(key=IDENTITY_COOKIE, httponly=True, samesite=None)


def read_identity(request: Request) -> str | None:
    """Returns the username from the identity cookie, None if absent or empty."""
    raw = request.cookies.get(IDENTITY_COOKIE)
    if not raw:
        return None
    return unquote(raw) or None
