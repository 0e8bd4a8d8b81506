"""
api/routes/v1/users.py -- Owner-scoped principal resources.

Routes:
  GET /api/v1/users/{user_id}/nickname  -- read nickname (owner only)
  PUT /api/v1/users/{user_id}/nickname  -- replace nickname (owner only)

Both routes resolve the require_nickname_owner dependency before body fields
are validated, so for a well-formed JSON body the order of checks is:
  401 not logged in -> 403 not the owner -> 400 invalid field values.
A body that is not JSON at all fails while FastAPI reads the request, ahead of
any dependency, and gets 400 regardless of session.

A nickname update touches only the nickname column; email, password hash and
provider fields are never part of the UPDATE.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import NicknameResponse, NicknameUpdate
from auth.dependencies import get_current_principal
from auth.guard import require_owner
from auth.models import PublicPrincipal
from auth.store import UserStore

router = APIRouter()


def require_nickname_owner(
    user_id: int,
    principal: PublicPrincipal = Depends(get_current_principal),
) -> PublicPrincipal:
    return require_owner(principal, user_id)


@router.get("/users/{user_id}/nickname", response_model=NicknameResponse)
def get_nickname(
    request: Request,
    user_id: int,
    principal: PublicPrincipal = Depends(require_nickname_owner),
) -> NicknameResponse:
    user_store: UserStore = request.app.state.user_store
    target = user_store.get_by_id(user_id)
    return NicknameResponse(nickname=target.nickname if target is not None else "")


@router.put("/users/{user_id}/nickname", response_model=NicknameResponse)
def put_nickname(
    request: Request,
    user_id: int,
    body: NicknameUpdate,
    principal: PublicPrincipal = Depends(require_nickname_owner),
) -> NicknameResponse:
    """Replace the owner's nickname. An empty string clears it."""
    user_store: UserStore = request.app.state.user_store
    user_store.update_nickname(user_id, body.nickname)
    return NicknameResponse(nickname=body.nickname)
