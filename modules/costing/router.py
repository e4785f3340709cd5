from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.database import get_db
from core.results import to_response
from modules.costing import service

router = APIRouter(prefix="/costing", tags=["costing"])


@router.get("/rubros/{rubro_id}")
def estimate_rubro_endpoint(rubro_id: int, cantidad: float = Query(1.0), db: Session = Depends(get_db)):
    return to_response(service.estimate_rubro_cost(db, rubro_id, cantidad))
