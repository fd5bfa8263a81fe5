"""Project endpoints: listing, details, deletion, session state and files."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from backend.web.core.dependencies import get_project_service
from backend.web.services.project_service import ProjectService

router = APIRouter(prefix="/api/projects", tags=["projects"])

Service = Annotated[ProjectService, Depends(get_project_service)]


@router.get("")
async def list_projects(service: Service) -> dict[str, Any]:
    return {"projects": await service.list_projects()}


@router.get("/{project_id}")
async def get_project(project_id: str, service: Service) -> dict[str, Any]:
    return {"project": await service.get_project(project_id)}


@router.delete("/{project_id}")
async def delete_project(project_id: str, service: Service) -> dict[str, Any]:
    await service.delete_project(project_id)
    return {"success": True}


@router.get("/{project_id}/state")
async def get_state(project_id: str, service: Service) -> dict[str, Any]:
    state = await service.get_state(project_id)
    return {"state": state.to_document()}


@router.get("/{project_id}/files")
async def list_files(project_id: str, service: Service, path: str | None = None) -> dict[str, Any]:
    return {"files": await service.file_tree(project_id, path)}


@router.get("/{project_id}/file")
async def read_file(project_id: str, service: Service, path: Annotated[str, Query(min_length=1)]) -> dict[str, Any]:
    return await service.read_file(project_id, path)
