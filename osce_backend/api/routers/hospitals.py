"""
Router de hospitales
"""
from typing import List

from fastapi import APIRouter, Depends, status

from ...core.cache import get_cache
from ...database.repositories import HospitalRepository
from ...services import HospitalService
from ..deps import get_hospital_repository, get_hospital_service
from ..exceptions import NotFoundError
from ..schemas.common import APIResponse
from ..schemas.people import HospitalCreate, HospitalOut, HospitalUpdate, StudentOut

router = APIRouter(prefix="/hospitals", tags=["Hospitals"])

HOSPITALS_CACHE_KEY = "hospitals:all"


@router.get("", response_model=APIResponse[List[HospitalOut]], summary="List hospitals")
async def list_hospitals(repo: HospitalRepository = Depends(get_hospital_repository)):
    hospitals = get_cache().get(
        HOSPITALS_CACHE_KEY,
        lambda: [HospitalOut.model_validate(h).model_dump(mode="json") for h in repo.get_all()],
    )
    return APIResponse(success=True, data=hospitals)


@router.post("", response_model=APIResponse[HospitalOut], status_code=status.HTTP_201_CREATED, summary="Create hospital")
async def create_hospital(payload: HospitalCreate, service: HospitalService = Depends(get_hospital_service)):
    hospital = service.create(payload.model_dump())
    return APIResponse(success=True, data=HospitalOut.model_validate(hospital), message="Hospital created")


@router.get("/{hospital_id}", response_model=APIResponse[HospitalOut], summary="Get hospital")
async def get_hospital(hospital_id: str, repo: HospitalRepository = Depends(get_hospital_repository)):
    hospital = repo.get_by_id(hospital_id)
    if hospital is None:
        raise NotFoundError("Hospital", hospital_id)
    return APIResponse(success=True, data=HospitalOut.model_validate(hospital))


@router.put("/{hospital_id}", response_model=APIResponse[HospitalOut], summary="Update hospital")
async def update_hospital(
    hospital_id: str,
    payload: HospitalUpdate,
    service: HospitalService = Depends(get_hospital_service),
):
    hospital = service.update(hospital_id, payload.model_dump(exclude_unset=True))
    return APIResponse(success=True, data=HospitalOut.model_validate(hospital), message="Hospital updated")


@router.delete("/{hospital_id}", response_model=APIResponse[None], summary="Delete hospital")
async def delete_hospital(hospital_id: str, service: HospitalService = Depends(get_hospital_service)):
    service.delete(hospital_id)
    return APIResponse(success=True, message="Hospital deleted")


@router.get("/{hospital_id}/students", response_model=APIResponse[List[StudentOut]], summary="Students of a hospital")
async def hospital_students(hospital_id: str, repo: HospitalRepository = Depends(get_hospital_repository)):
    if repo.get_by_id(hospital_id) is None:
        raise NotFoundError("Hospital", hospital_id)
    return APIResponse(success=True, data=[StudentOut.model_validate(s) for s in repo.get_students(hospital_id)])
