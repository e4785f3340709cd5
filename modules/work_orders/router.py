from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from core.auth import Actor, get_current_actor
from core.database import get_db
from core.results import to_response
from modules.reports.excel import build_work_order_excel
from modules.work_orders import service

router = APIRouter(prefix="/work-orders", tags=["work_orders"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.post("")
def create_work_order_endpoint(
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_current_actor),
):
    return to_response(service.create_work_order(db, actor, payload))


@router.get("")
def list_work_orders_endpoint(
    obra_id: int = Query(...),
    estado: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    page: Optional[int] = Query(None),
    page_size: Optional[int] = Query(None),
    db: Session = Depends(get_db),
):
    if page is None and page_size is None:
        return to_response(service.list_work_orders(db, obra_id, estado=estado, search=search))
    return to_response(
        service.list_work_orders_paginated(db, obra_id, page=page, page_size=page_size, estado=estado, search=search)
    )


@router.get("/trash")
def list_deleted_work_orders_endpoint(
    obra_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_current_actor),
):
    return to_response(service.list_deleted_work_orders(db, actor, obra_id=obra_id))


@router.get("/{work_order_id}")
def get_work_order_endpoint(work_order_id: int, db: Session = Depends(get_db)):
    return to_response(service.get_work_order(db, work_order_id))


@router.patch("/{work_order_id}")
def update_work_order_endpoint(
    work_order_id: int,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_current_actor),
):
    return to_response(service.update_work_order(db, actor, work_order_id, payload))


@router.post("/{work_order_id}/approve")
def approve_work_order_endpoint(
    work_order_id: int,
    payload: Optional[Dict[str, Any]] = Body(None),
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_current_actor),
):
    return to_response(service.approve_work_order(db, actor, work_order_id, payload))


@router.post("/{work_order_id}/start")
def start_work_order_endpoint(
    work_order_id: int,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_current_actor),
):
    return to_response(service.start_work_order(db, actor, work_order_id))


@router.post("/{work_order_id}/close")
def close_work_order_endpoint(
    work_order_id: int,
    payload: Optional[Dict[str, Any]] = Body(None),
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_current_actor),
):
    return to_response(service.close_work_order(db, actor, work_order_id, payload))


@router.put("/{work_order_id}/actual-cost")
def record_actual_cost_endpoint(
    work_order_id: int,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_current_actor),
):
    return to_response(service.record_actual_cost(db, actor, work_order_id, payload))


@router.get("/{work_order_id}/cost-summary")
def cost_summary_endpoint(work_order_id: int, db: Session = Depends(get_db)):
    return to_response(service.get_cost_summary(db, work_order_id))


@router.delete("/{work_order_id}")
def delete_work_order_endpoint(
    work_order_id: int,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_current_actor),
):
    return to_response(service.delete_work_order(db, actor, work_order_id))


@router.post("/{work_order_id}/restore")
def restore_work_order_endpoint(
    work_order_id: int,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_current_actor),
):
    return to_response(service.restore_work_order(db, actor, work_order_id))


@router.get("/{work_order_id}/excel")
def export_work_order_excel_endpoint(work_order_id: int, db: Session = Depends(get_db)):
    result = service.get_work_order(db, work_order_id)
    if not result.success:
        return to_response(result)

    summary = service.get_cost_summary(db, work_order_id)
    if not summary.success:
        return to_response(summary)

    detail = result.data
    detail["cost_summary"] = summary.data
    stream = build_work_order_excel(detail)
    filename = f"{detail['codigo']}.xlsx"
    return StreamingResponse(
        stream,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
