"""
Conteos para el panel de administración
"""
from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ...core.cache import get_cache
from ...database.config import get_db
from ...database.repositories import AssignmentRepository, StatsRepository
from ..schemas.common import APIResponse

router = APIRouter(tags=["Stats"])


class StatsResponse(BaseModel):
    entities: Dict[str, int]
    assignments_by_status: Dict[str, int]
    cache: Dict[str, object]


@router.get("/stats", response_model=APIResponse[StatsResponse], summary="Entity counts")
async def get_stats(db: Session = Depends(get_db)):
    data = StatsResponse(
        entities=StatsRepository(db).counts(),
        assignments_by_status=AssignmentRepository(db).count_by_status(),
        cache=get_cache().get_stats(),
    )
    return APIResponse(success=True, data=data)
