"""
Lecturas del árbol por nivel: estación -> preguntas -> opciones
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database.config import get_db
from ...database.repositories import OptionRepository, QuestionRepository, StationRepository
from ..exceptions import NotFoundError
from ..schemas.common import APIResponse
from ..schemas.exams import OptionOut, QuestionOut, StationDetail

router = APIRouter(tags=["Stations & Questions"])


@router.get("/stations/{station_id}", response_model=APIResponse[StationDetail], summary="Get station with questions")
async def get_station(station_id: str, db: Session = Depends(get_db)):
    station = StationRepository(db).get_by_id(station_id)
    if station is None:
        raise NotFoundError("Station", station_id)
    return APIResponse(success=True, data=StationDetail.model_validate(station))


@router.get("/stations/{station_id}/questions", response_model=APIResponse[List[QuestionOut]], summary="Questions of a station")
async def station_questions(station_id: str, db: Session = Depends(get_db)):
    if StationRepository(db).get_by_id(station_id) is None:
        raise NotFoundError("Station", station_id)
    questions = QuestionRepository(db).get_by_station(station_id)
    return APIResponse(success=True, data=[QuestionOut.model_validate(q) for q in questions])


@router.get("/questions/{question_id}/options", response_model=APIResponse[List[OptionOut]], summary="Options of a question")
async def question_options(question_id: str, db: Session = Depends(get_db)):
    if QuestionRepository(db).get_by_id(question_id) is None:
        raise NotFoundError("Question", question_id)
    options = OptionRepository(db).get_by_question(question_id)
    return APIResponse(success=True, data=[OptionOut.model_validate(o) for o in options])
