"""Caller identity at the HTTP boundary.

Authentication itself happens upstream (gateway or middleware); requests
reach the application with the authenticated user id in ``X-User-Id``.
This module resolves that id to an existing user and records presence.
"""

from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, Header, Request
from sqlmodel import Session

from wildlife_tracker.db import fits_sql_integer, get_session
from wildlife_tracker.entities import User
from wildlife_tracker.errors import Unauthenticated

USER_ID_HEADER = "X-User-Id"


@dataclass(frozen=True)
class Caller:
    """The authenticated user a request acts on behalf of"""

    user_id: int
    username: str


def current_caller(
    request: Request,
    session: Annotated[Session, Depends(get_session)],
    user_id: Annotated[Optional[str], Header(alias=USER_ID_HEADER)] = None,
) -> Caller:
    """
    Resolve the caller from the ``X-User-Id`` header.

    Raises:
        Unauthenticated: If the header is missing, malformed or names no user
    """
    if not user_id:
        raise Unauthenticated(f"Missing {USER_ID_HEADER} header")
    try:
        uid = int(user_id)
    except ValueError:
        raise Unauthenticated(f"Malformed {USER_ID_HEADER} header") from None

    user = session.get(User, uid) if fits_sql_integer(uid) else None
    if user is None:
        raise Unauthenticated(f"Unknown user {uid}")

    presence = getattr(request.app.state, "presence", None)
    if presence is not None:
        presence.touch(user.username)
    return Caller(user_id=user.id, username=user.username)


CurrentCaller = Annotated[Caller, Depends(current_caller)]
