"""
Caller identity and project authorization.

Accounts and collaborator roles live outside this service; the only inputs
here are the caller id forwarded by the gateway and an injected decision
callable.
"""

from collections.abc import Callable

from fastapi import Header, HTTPException, Request

USER_ID_HEADER = "X-User-Id"

Authorizer = Callable[[str, str], bool]


def allow_identified(user_id: str, project_id: str) -> bool:
    """Default policy: any identified caller may use any project."""
    return bool(user_id)


def get_user_id(x_user_id: str | None = Header(default=None, alias=USER_ID_HEADER)) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail=f"Missing {USER_ID_HEADER} header")
    return user_id


def require_project_access(request: Request, user_id: str, project_id: str) -> None:
    authorizer: Authorizer = request.app.state.authorizer
    if not authorizer(user_id, project_id):
        raise HTTPException(status_code=403, detail="Access to this project is denied")
