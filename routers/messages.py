import logging
from typing import Annotated, List

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status

import AuthAndUser as auth
import sendgridemail
from domain.content import Message, MessageCreate
from domain.user import UserInDB
from errors import NotFoundError
from storage import Storage, get_storage

logger = logging.getLogger('uvicorn.error')

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.post("", response_model=Message, status_code=status.HTTP_201_CREATED)
async def create_message(
    message_in: MessageCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
):
    message = await storage.create_message(message_in.model_dump())
    logger.info(f"Contact message {message.id} received from '{message.name}'")
    background_tasks.add_task(sendgridemail.send_message_notification, message, request.app.state.settings)
    return message


@router.get("", response_model=List[Message])
async def get_messages(
    current_user: Annotated[UserInDB, Depends(auth.require_admin)],
    storage: Storage = Depends(get_storage),
):
    return await storage.list_messages()


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: str,
    current_user: Annotated[UserInDB, Depends(auth.require_admin)],
    storage: Storage = Depends(get_storage),
):
    if not await storage.delete_message(message_id):
        raise NotFoundError("Message not found")
    logger.info(f"User '{current_user.username}' deleted message {message_id}")
