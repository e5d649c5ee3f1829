"""
Router de grupos de alumnos
"""
from typing import List

from fastapi import APIRouter, Depends, status

from ...core.cache import get_cache
from ...database.repositories import GroupRepository
from ...services import GroupService
from ..deps import get_group_repository, get_group_service
from ..exceptions import NotFoundError
from ..schemas.common import APIResponse
from ..schemas.people import GroupCreate, GroupMemberRequest, GroupOut, GroupUpdate, StudentOut

router = APIRouter(prefix="/groups", tags=["Groups"])

GROUPS_CACHE_KEY = "groups:all"


def _get_or_404(repo: GroupRepository, group_id: str):
    group = repo.get_by_id(group_id)
    if group is None:
        raise NotFoundError("Group", group_id)
    return group


@router.get("", response_model=APIResponse[List[GroupOut]], summary="List groups with student counts")
async def list_groups(repo: GroupRepository = Depends(get_group_repository)):
    def fetch():
        return [
            GroupOut.model_validate(group).model_copy(update={"student_count": count}).model_dump(mode="json")
            for group, count in repo.get_all_with_counts()
        ]

    return APIResponse(success=True, data=get_cache().get(GROUPS_CACHE_KEY, fetch))


@router.post("", response_model=APIResponse[GroupOut], status_code=status.HTTP_201_CREATED, summary="Create group")
async def create_group(payload: GroupCreate, service: GroupService = Depends(get_group_service)):
    group = service.create(payload.model_dump())
    return APIResponse(success=True, data=GroupOut.model_validate(group), message="Group created")


@router.get("/{group_id}", response_model=APIResponse[GroupOut], summary="Get group")
async def get_group(group_id: str, repo: GroupRepository = Depends(get_group_repository)):
    group = _get_or_404(repo, group_id)
    data = GroupOut.model_validate(group).model_copy(update={"student_count": len(group.students)})
    return APIResponse(success=True, data=data)


@router.put("/{group_id}", response_model=APIResponse[GroupOut], summary="Update group")
async def update_group(group_id: str, payload: GroupUpdate, service: GroupService = Depends(get_group_service)):
    group = service.update(group_id, payload.model_dump(exclude_unset=True))
    return APIResponse(success=True, data=GroupOut.model_validate(group), message="Group updated")


@router.delete("/{group_id}", response_model=APIResponse[None], summary="Delete group")
async def delete_group(group_id: str, service: GroupService = Depends(get_group_service)):
    service.delete(group_id)
    return APIResponse(success=True, message="Group deleted")


@router.get("/{group_id}/students", response_model=APIResponse[List[StudentOut]], summary="Students in a group")
async def group_students(group_id: str, repo: GroupRepository = Depends(get_group_repository)):
    _get_or_404(repo, group_id)
    return APIResponse(success=True, data=[StudentOut.model_validate(s) for s in repo.get_students(group_id)])


@router.post(
    "/{group_id}/students",
    response_model=APIResponse[None],
    status_code=status.HTTP_201_CREATED,
    summary="Add a student to a group",
)
async def add_group_student(
    group_id: str,
    payload: GroupMemberRequest,
    service: GroupService = Depends(get_group_service),
):
    service.add_student(group_id, payload.student_id)
    return APIResponse(success=True, message="Student added to group")


@router.delete("/{group_id}/students/{student_id}", response_model=APIResponse[None], summary="Remove a student from a group")
async def remove_group_student(group_id: str, student_id: str, service: GroupService = Depends(get_group_service)):
    service.remove_student(group_id, student_id)
    return APIResponse(success=True, message="Student removed from group")
