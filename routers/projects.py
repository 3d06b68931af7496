import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, status

import AuthAndUser as auth
from domain.content import Project, ProjectFields, ProjectUpdate
from domain.user import UserInDB
from errors import NotFoundError, ValidationError
from storage import Storage, get_storage

logger = logging.getLogger('uvicorn.error')

router = APIRouter(prefix="/api/projects", tags=["projects"])


@router.get("", response_model=List[Project])
async def get_projects(storage: Storage = Depends(get_storage)):
    return await storage.list_projects()


@router.get("/{project_id}", response_model=Project)
async def get_project(project_id: str, storage: Storage = Depends(get_storage)):
    project = await storage.get_project(project_id)
    if project is None:
        raise NotFoundError("Project not found")
    return project


@router.post("", response_model=Project, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_in: ProjectFields,
    current_user: Annotated[UserInDB, Depends(auth.require_admin)],
    storage: Storage = Depends(get_storage),
):
    project = await storage.create_project(project_in.model_dump())
    logger.info(f"User '{current_user.username}' created project '{project.title}' ({project.id})")
    return project


@router.put("/{project_id}", response_model=Project)
async def update_project(
    project_id: str,
    project_in: ProjectUpdate,
    current_user: Annotated[UserInDB, Depends(auth.require_admin)],
    storage: Storage = Depends(get_storage),
):
    changes = project_in.model_dump(exclude_unset=True)
    for required in ("title", "description", "tags", "is_active"):
        if required in changes and changes[required] is None:
            raise ValidationError.for_field(required, f"{required} cannot be cleared")
    project = await storage.update_project(project_id, changes)
    if project is None:
        raise NotFoundError("Project not found")
    logger.info(f"User '{current_user.username}' updated project {project_id}")
    return project


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: str,
    current_user: Annotated[UserInDB, Depends(auth.require_admin)],
    storage: Storage = Depends(get_storage),
):
    if not await storage.delete_project(project_id):
        raise NotFoundError("Project not found")
    logger.info(f"User '{current_user.username}' deleted project {project_id}")
