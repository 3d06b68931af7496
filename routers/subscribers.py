import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, status

import AuthAndUser as auth
from domain.content import Subscriber, SubscriberCreate
from domain.user import UserInDB
from errors import NotFoundError
from storage import Storage, get_storage

logger = logging.getLogger('uvicorn.error')

router = APIRouter(prefix="/api/subscribers", tags=["subscribers"])


@router.post("", response_model=Subscriber, status_code=status.HTTP_201_CREATED)
async def subscribe(subscriber_in: SubscriberCreate, storage: Storage = Depends(get_storage)):
    subscriber = await storage.create_subscriber(subscriber_in.email.strip().lower())
    logger.info(f"New newsletter subscriber {subscriber.id}")
    return subscriber


@router.get("", response_model=List[Subscriber])
async def get_subscribers(
    current_user: Annotated[UserInDB, Depends(auth.require_admin)],
    storage: Storage = Depends(get_storage),
):
    return await storage.list_subscribers()


@router.delete("/{subscriber_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unsubscribe(
    subscriber_id: str,
    current_user: Annotated[UserInDB, Depends(auth.require_admin)],
    storage: Storage = Depends(get_storage),
):
    if not await storage.delete_subscriber(subscriber_id):
        raise NotFoundError("Subscriber not found")
    logger.info(f"User '{current_user.username}' removed subscriber {subscriber_id}")
