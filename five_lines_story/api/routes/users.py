"""
Users endpoints.

Plain CRUD over the users table; not tied to the story feature and not
authenticated.
"""

from fastapi import APIRouter, Depends, Request

from ...errors import NotFoundError
from ...storage.repository import UserStore
from ..responses import envelope
from ..schemas import CreateUserRequest

router = APIRouter(prefix="/api/users", tags=["users"])


def get_users(request: Request) -> UserStore:
    return request.app.state.users


@router.get("")
def list_users(users: UserStore = Depends(get_users)):
    return envelope([user.to_dict() for user in users.list_all()])


@router.post("")
def create_user(body: CreateUserRequest, users: UserStore = Depends(get_users)):
    user = users.create(body.name, body.email)
    return envelope(user.to_dict())


@router.get("/{user_id}")
def get_user(user_id: str, users: UserStore = Depends(get_users)):
    user = users.get(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return envelope(user.to_dict())
