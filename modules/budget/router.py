from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.database import get_db
from core.results import to_response
from modules.budget import service

router = APIRouter(prefix="/rubros", tags=["budget"])


@router.get("/{rubro_id}/budget-status")
def budget_status_endpoint(rubro_id: int, db: Session = Depends(get_db)):
    return to_response(service.get_rubro_budget_status(db, rubro_id))


@router.get("/deviations")
def deviations_by_rubro_endpoint(obra_id: int = Query(...), db: Session = Depends(get_db)):
    return to_response(service.get_deviations_by_rubro(db, obra_id))
