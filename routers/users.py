from typing import Annotated
import logging

from fastapi import APIRouter, Depends, Request, Response, status

import AuthAndUser as auth
from domain.user import LoginRequest, PublicUser, SignUpUser, UserInDB, UserUpdate

logger = logging.getLogger('uvicorn.error')

router = APIRouter(prefix="/api", tags=["users"])


@router.post("/register", response_model=PublicUser, status_code=status.HTTP_201_CREATED)
async def register(
    new_user: SignUpUser,
    request: Request,
    response: Response,
    authenticator: Annotated[auth.Authenticator, Depends(auth.get_authenticator)],
):
    user = await authenticator.register(new_user)
    await authenticator.start_session(user, request, response)
    return user.public()


@router.post("/login", response_model=PublicUser)
async def login(
    credentials: LoginRequest,
    request: Request,
    response: Response,
    authenticator: Annotated[auth.Authenticator, Depends(auth.get_authenticator)],
):
    user = await authenticator.login(credentials)
    await authenticator.start_session(user, request, response)
    return user.public()


@router.post("/logout")
async def logout(
    request: Request,
    authenticator: Annotated[auth.Authenticator, Depends(auth.get_authenticator)],
):
    response = Response(status_code=status.HTTP_200_OK)
    await authenticator.logout(request, response)
    return response


@router.get("/user", response_model=PublicUser)
async def read_users_me(
    current_user: Annotated[UserInDB, Depends(auth.get_current_user)],
):
    return current_user.public()


@router.put("/user/{user_id}", response_model=PublicUser)
async def update_user(
    user_id: str,
    update: UserUpdate,
    current_user: Annotated[UserInDB, Depends(auth.get_current_user)],
    authenticator: Annotated[auth.Authenticator, Depends(auth.get_authenticator)],
):
    updated = await authenticator.update_profile(current_user, user_id, update)
    return updated.public()
