from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from mediajobs.models import Identity, Role
from mediajobs.services.lifecycle import LifecycleService


def get_lifecycle(request: Request) -> LifecycleService:
    return request.app.state.lifecycle


def get_current_identity(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_role: Annotated[str | None, Header()] = None,
) -> Identity:
    """Caller identity forwarded by the upstream identity provider."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing caller identity",
        )

    try:
        role = Role((x_user_role or Role.USER.value).lower())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid role")

    return Identity(id=x_user_id, role=role)


CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
Lifecycle = Annotated[LifecycleService, Depends(get_lifecycle)]
