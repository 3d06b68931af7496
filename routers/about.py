import logging
from typing import Annotated

from fastapi import APIRouter, Depends

import AuthAndUser as auth
from domain.content import AboutPage
from domain.user import UserInDB
from errors import NotFoundError
from storage import Storage, get_storage

logger = logging.getLogger('uvicorn.error')

router = APIRouter(prefix="/api/about", tags=["about"])


@router.get("", response_model=AboutPage)
async def get_about(storage: Storage = Depends(get_storage)):
    about = await storage.get_about()
    if about is None:
        raise NotFoundError("About page has not been written yet")
    return about


@router.put("", response_model=AboutPage)
async def update_about(
    about: AboutPage,
    current_user: Annotated[UserInDB, Depends(auth.require_admin)],
    storage: Storage = Depends(get_storage),
):
    saved = await storage.save_about(about)
    logger.info(f"User '{current_user.username}' updated the about page")
    return saved
