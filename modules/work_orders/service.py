"""Work order (OT) lifecycle.

Every public function here is a service action: it takes the session, the
resolved actor where the action mutates, and a payload, and returns an
``ActionResult``. Each action is one unit of work committed once at the end;
state changes are conditional updates on the expected current state so a
concurrent transition of the same order makes the second one fail cleanly.
"""

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session

from core.auth import Actor
from core.errors import (
    InvalidStateException,
    NotAuthenticatedException,
    NotFoundException,
    ValidationAppException,
    parse_payload,
)
from core.models import utcnow
from core.pagination import normalize_pagination, paginated_response
from core.results import action
from core.revalidation import revalidate_obra, revalidate_path
from modules.budget import service as budget_service
from modules.catalog import service as catalog_service
from modules.catalog.models import Rubro
from modules.costing.service import CostEstimate, CostEstimator, load_rubro_with_formula
from modules.work_orders import schemas
from modules.work_orders.codes import get_ot_display_code, parse_ot_code
from modules.work_orders.models import OrdenTrabajo, OTHistorial, OTInsumoEstimado, Tarea
from modules.work_orders.permissions import WorkOrderAction, authorize, get_role_display_name
from modules.work_orders.states import OTStatus, can_transition, require_state

logger = logging.getLogger(__name__)

Payload = Union[Dict[str, Any], None]

BUDGET_EXCEEDED_MARK = "[APROBADA EXCEDIENDO PRESUPUESTO]"


# ===== Lifecycle actions =====


@action("Error al crear la orden de trabajo")
def create_work_order(
    db: Session, actor: Optional[Actor], payload: Union[schemas.WorkOrderCreate, Payload]
) -> Dict[str, Any]:
    data = parse_payload(schemas.WorkOrderCreate, payload)
    authorize(actor, WorkOrderAction.CREATE, obra_id=data.obra_id)

    obra = catalog_service.get_active_obra(db, data.obra_id)
    rubro = _load_rubro_for_obra(db, data.rubro_id, obra.id)
    estimate = CostEstimator().estimate(rubro, data.cantidad, obra_id=obra.id)

    ot = OrdenTrabajo(
        numero=_next_numero(db, obra.id),
        obra_id=obra.id,
        rubro_id=rubro.id,
        descripcion=data.descripcion,
        cantidad=data.cantidad,
        costo_estimado=estimate.costo_estimado,
        estado=OTStatus.BORRADOR.value,
        created_by=actor.id,
    )
    ot.insumos_estimados = _estimated_lines(estimate)
    db.add(ot)
    db.flush()

    _record_history(db, ot, None, OTStatus.BORRADOR, actor, "OT creada")
    db.commit()
    db.refresh(ot)

    logger.info("OT %s created in obra %s (costo_estimado=%.2f)", ot.id, ot.obra_id, ot.costo_estimado)
    revalidate_obra(ot.obra_id)
    return _serialize_work_order(ot)


@action("Error al actualizar la orden de trabajo")
def update_work_order(
    db: Session, actor: Optional[Actor], work_order_id: int, payload: Union[schemas.WorkOrderUpdate, Payload]
) -> Dict[str, Any]:
    data = parse_payload(schemas.WorkOrderUpdate, payload)
    ot = _load_for_action(db, actor, WorkOrderAction.UPDATE, work_order_id)
    require_state(ot.estado, OTStatus.BORRADOR, "Solo se pueden editar OTs en estado borrador")

    values: Dict[str, Any] = {}
    if data.descripcion is not None:
        values["descripcion"] = data.descripcion

    rubro_id = data.rubro_id if data.rubro_id is not None else ot.rubro_id
    cantidad = data.cantidad if data.cantidad is not None else ot.cantidad
    if rubro_id != ot.rubro_id or cantidad != ot.cantidad:
        rubro = _load_rubro_for_obra(db, rubro_id, ot.obra_id)
        estimate = CostEstimator().estimate(rubro, cantidad, obra_id=ot.obra_id)
        _replace_estimated_lines(ot, estimate)
        values.update(rubro_id=rubro_id, cantidad=cantidad, costo_estimado=estimate.costo_estimado)

    if values:
        _conditional_update(db, ot, OTStatus.BORRADOR, values, "Solo se pueden editar OTs en estado borrador")
        db.commit()
        db.refresh(ot)
        revalidate_obra(ot.obra_id, ot.id)

    return _serialize_work_order(ot)


@action("Error al aprobar la orden de trabajo")
def approve_work_order(
    db: Session,
    actor: Optional[Actor],
    work_order_id: int,
    payload: Union[schemas.WorkOrderApprove, Payload] = None,
) -> Dict[str, Any]:
    data = parse_payload(schemas.WorkOrderApprove, payload)
    ot = _load_for_action(db, actor, WorkOrderAction.APPROVE, work_order_id)
    require_state(ot.estado, OTStatus.BORRADOR, "Solo se pueden aprobar OTs en estado borrador")

    rubro = budget_service.lock_rubro(db, ot.rubro_id)
    if rubro is None:
        raise NotFoundException("Rubro no encontrado")
    check = budget_service.check_budget(db, ot, rubro)
    exceeded = budget_service.enforce_budget_gate(check, data.acknowledge_budget_exceeded)

    _advance_state(db, ot, OTStatus.BORRADOR, OTStatus.APROBADA)

    notas = data.notas or None
    if exceeded:
        notas = f"{notas or ''} {BUDGET_EXCEEDED_MARK}".strip()
        logger.warning(
            "OT %s approved over budget by %.2f (acknowledged by usuario %s)", ot.id, check.excedente, actor.id
        )
    _record_history(db, ot, OTStatus.BORRADOR, OTStatus.APROBADA, actor, notas, acknowledged=exceeded)
    db.commit()
    db.refresh(ot)

    revalidate_obra(ot.obra_id, ot.id)
    return _serialize_work_order(ot)


@action("Error al iniciar ejecución")
def start_work_order(db: Session, actor: Optional[Actor], work_order_id: int) -> Dict[str, Any]:
    ot = _load_for_action(db, actor, WorkOrderAction.START, work_order_id)
    require_state(ot.estado, OTStatus.APROBADA, "Solo se pueden iniciar OTs aprobadas")

    _advance_state(db, ot, OTStatus.APROBADA, OTStatus.EN_EJECUCION, fecha_inicio=date.today())
    _record_history(db, ot, OTStatus.APROBADA, OTStatus.EN_EJECUCION, actor, "Ejecución iniciada")
    db.commit()
    db.refresh(ot)

    revalidate_obra(ot.obra_id, ot.id)
    return _serialize_work_order(ot)


@action("Error al cerrar la orden de trabajo")
def close_work_order(
    db: Session,
    actor: Optional[Actor],
    work_order_id: int,
    payload: Union[schemas.WorkOrderClose, Payload] = None,
) -> Dict[str, Any]:
    data = parse_payload(schemas.WorkOrderClose, payload)
    ot = _load_for_action(db, actor, WorkOrderAction.CLOSE, work_order_id)
    require_state(ot.estado, OTStatus.EN_EJECUCION, "Solo se pueden cerrar OTs en ejecución")

    costo_real = budget_service.resolve_actual_cost(ot)
    deviation = budget_service.compute_deviation(ot.costo_estimado, costo_real)
    acknowledged = budget_service.enforce_deviation_gate(deviation, data.acknowledge_deviation)
    pendientes = _count_pending_tasks(db, ot.id)

    _advance_state(
        db, ot, OTStatus.EN_EJECUCION, OTStatus.CERRADA, costo_real=costo_real, fecha_fin=date.today()
    )

    notas = data.notas or "OT cerrada"
    if deviation.positive:
        notas += f" [DESVÍO: {budget_service.describe_deviation(deviation)}]"
    if pendientes > 0:
        notas += f" [{pendientes} tareas pendientes]"
    _record_history(db, ot, OTStatus.EN_EJECUCION, OTStatus.CERRADA, actor, notas, acknowledged=acknowledged)
    db.commit()
    db.refresh(ot)

    revalidate_obra(ot.obra_id, ot.id)
    revalidate_path("/dashboard")
    return _serialize_work_order(ot)


@action("Error al actualizar el costo real")
def record_actual_cost(
    db: Session, actor: Optional[Actor], work_order_id: int, payload: Union[schemas.ActualCostInput, Payload]
) -> Dict[str, Any]:
    data = parse_payload(schemas.ActualCostInput, payload)
    ot = _load_for_action(db, actor, WorkOrderAction.RECORD_COST, work_order_id)
    message = "Solo se puede registrar el costo real de OTs en ejecución"
    require_state(ot.estado, OTStatus.EN_EJECUCION, message)

    _conditional_update(db, ot, OTStatus.EN_EJECUCION, {"costo_real": data.costo_real}, message)
    db.commit()
    db.refresh(ot)

    revalidate_obra(ot.obra_id, ot.id)
    revalidate_path("/dashboard")
    return _serialize_work_order(ot)


@action("Error al eliminar la orden de trabajo")
def delete_work_order(db: Session, actor: Optional[Actor], work_order_id: int) -> None:
    ot = _load_for_action(db, actor, WorkOrderAction.DELETE, work_order_id)
    ot.deleted_at = utcnow()
    db.commit()

    logger.info("OT %s moved to trash by usuario %s", ot.id, actor.id)
    revalidate_obra(ot.obra_id)
    revalidate_path("/papelera")
    return None


@action("Error al restaurar el elemento")
def restore_work_order(db: Session, actor: Optional[Actor], work_order_id: int) -> Dict[str, Any]:
    authorize(actor, WorkOrderAction.RESTORE)
    ot = (
        db.query(OrdenTrabajo)
        .filter(OrdenTrabajo.id == work_order_id)
        .filter(OrdenTrabajo.deleted_at.isnot(None))
        .first()
    )
    if not ot:
        raise NotFoundException("Orden de trabajo no encontrada en papelera")

    ot.deleted_at = None
    db.commit()
    db.refresh(ot)

    revalidate_obra(ot.obra_id, ot.id)
    revalidate_path("/papelera")
    return _serialize_work_order(ot)


@action("Error al cargar la papelera")
def list_deleted_work_orders(
    db: Session, actor: Optional[Actor], obra_id: Optional[int] = None
) -> List[Dict[str, Any]]:
    """Trash view: soft-deleted orders, most recently deleted first."""
    authorize(actor, WorkOrderAction.LIST_TRASH)
    query = db.query(OrdenTrabajo).filter(OrdenTrabajo.deleted_at.isnot(None))
    if obra_id is not None:
        query = query.filter(OrdenTrabajo.obra_id == obra_id)
    ots = query.order_by(OrdenTrabajo.deleted_at.desc(), OrdenTrabajo.id.desc()).all()

    items = []
    for ot in ots:
        payload = _serialize_work_order(ot)
        payload["obra"] = {"id": ot.obra.id, "nombre": ot.obra.nombre} if ot.obra else None
        items.append(payload)
    return items


# ===== Reads =====


@action("Orden de trabajo no encontrada")
def get_work_order(db: Session, work_order_id: int) -> Dict[str, Any]:
    ot = _get_work_order_model(db, work_order_id)
    return _serialize_work_order_detail(db, ot)


@action("Error al cargar las órdenes de trabajo")
def list_work_orders(
    db: Session, obra_id: int, estado: Optional[str] = None, search: Optional[str] = None
) -> List[Dict[str, Any]]:
    query = _filtered_query(db, obra_id, estado, search)
    ots = query.order_by(OrdenTrabajo.created_at.desc(), OrdenTrabajo.id.desc()).all()
    return [_serialize_list_item(ot) for ot in ots]


@action("Error al cargar las órdenes de trabajo")
def list_work_orders_paginated(
    db: Session,
    obra_id: int,
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    estado: Optional[str] = None,
    search: Optional[str] = None,
) -> Dict[str, Any]:
    request = normalize_pagination(page, page_size)
    query = _filtered_query(db, obra_id, estado, search)
    total = query.count()
    ots = (
        query.order_by(OrdenTrabajo.created_at.desc(), OrdenTrabajo.id.desc())
        .offset(request.offset)
        .limit(request.page_size)
        .all()
    )
    return paginated_response([_serialize_list_item(ot) for ot in ots], total, request)


@action("Error al calcular el resumen de costos")
def get_cost_summary(db: Session, work_order_id: int) -> Dict[str, Any]:
    ot = _get_work_order_model(db, work_order_id)
    deviation = budget_service.compute_deviation(ot.costo_estimado, budget_service.resolve_actual_cost(ot))
    return deviation.to_dict()


# ===== Helpers =====


def _get_work_order_model(db: Session, work_order_id: int) -> OrdenTrabajo:
    ot = (
        db.query(OrdenTrabajo)
        .filter(OrdenTrabajo.id == work_order_id)
        .filter(OrdenTrabajo.deleted_at.is_(None))
        .first()
    )
    if not ot:
        raise NotFoundException("Orden de trabajo no encontrada")
    return ot


def _load_for_action(db: Session, actor: Optional[Actor], work_order_action: WorkOrderAction, work_order_id: int):
    # Anonymous callers are rejected before the lookup
    if actor is None:
        raise NotAuthenticatedException()
    ot = _get_work_order_model(db, work_order_id)
    authorize(actor, work_order_action, obra_id=ot.obra_id)
    return ot


def _load_rubro_for_obra(db: Session, rubro_id: int, obra_id: int) -> Rubro:
    rubro = load_rubro_with_formula(db, rubro_id)
    if rubro.obra_id != obra_id:
        raise ValidationAppException("El rubro no pertenece a la obra")
    return rubro


def _next_numero(db: Session, obra_id: int) -> int:
    # Soft-deleted orders keep their number
    current = db.query(func.max(OrdenTrabajo.numero)).filter(OrdenTrabajo.obra_id == obra_id).scalar()
    return (current or 0) + 1


def _estimated_lines(estimate: CostEstimate) -> List[OTInsumoEstimado]:
    return [
        OTInsumoEstimado(
            insumo_id=line.insumo_id,
            cantidad_estimada=line.cantidad_estimada,
            precio_estimado=line.precio_estimado,
        )
        for line in estimate.lines
    ]


def _replace_estimated_lines(ot: OrdenTrabajo, estimate: CostEstimate) -> None:
    # delete-orphan drops the previous set in the same flush
    ot.insumos_estimados = _estimated_lines(estimate)


def _conditional_update(
    db: Session, ot: OrdenTrabajo, expected: OTStatus, values: Dict[str, Any], message: str
) -> None:
    updated = (
        db.query(OrdenTrabajo)
        .filter(OrdenTrabajo.id == ot.id)
        .filter(OrdenTrabajo.estado == expected.value)
        .filter(OrdenTrabajo.deleted_at.is_(None))
        .update(values, synchronize_session="evaluate")
    )
    if updated != 1:
        raise InvalidStateException(message)


def _advance_state(db: Session, ot: OrdenTrabajo, current: OTStatus, target: OTStatus, **values: Any) -> None:
    if not can_transition(current, target):
        raise InvalidStateException(f"Transición inválida: {current.value} → {target.value}")
    values["estado"] = target.value
    _conditional_update(
        db, ot, current, values, "La orden de trabajo cambió de estado; recargue e intente nuevamente"
    )


def _record_history(
    db: Session,
    ot: OrdenTrabajo,
    anterior: Optional[OTStatus],
    nuevo: OTStatus,
    actor: Actor,
    notas: Optional[str],
    acknowledged: bool = False,
) -> OTHistorial:
    entry = OTHistorial(
        orden_trabajo_id=ot.id,
        estado_anterior=anterior.value if anterior else None,
        estado_nuevo=nuevo.value,
        usuario_id=actor.id,
        notas=notas,
    )
    if acknowledged:
        entry.acknowledged_by = actor.id
        entry.acknowledged_at = utcnow()
    db.add(entry)
    return entry


def _count_pending_tasks(db: Session, work_order_id: int) -> int:
    return (
        db.query(func.count(Tarea.id))
        .filter(Tarea.orden_trabajo_id == work_order_id)
        .filter(Tarea.completada.is_(False))
        .scalar()
        or 0
    )


def _filtered_query(db: Session, obra_id: int, estado: Optional[str], search: Optional[str]) -> Query:
    query = (
        db.query(OrdenTrabajo)
        .filter(OrdenTrabajo.obra_id == obra_id)
        .filter(OrdenTrabajo.deleted_at.is_(None))
    )
    if estado:
        try:
            query = query.filter(OrdenTrabajo.estado == OTStatus(estado).value)
        except ValueError as exc:
            raise ValidationAppException(f"Estado inválido: {estado}") from exc
    if search:
        query = query.filter(_search_clause(search.strip()))
    return query


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _search_clause(term: str):
    """Description substring match, plus the order number when the term is one.

    ``15`` and ``OT-2024-015`` both match order 15; any other term only
    matches descriptions, with ``%`` and ``_`` taken literally.
    """
    clause = OrdenTrabajo.descripcion.ilike(f"%{_escape_like(term)}%", escape="\\")
    if term.isdigit():
        return or_(clause, OrdenTrabajo.numero == int(term))
    parsed = parse_ot_code(term)
    if parsed is not None and parsed.year is not None:
        return or_(clause, OrdenTrabajo.numero == parsed.numero)
    return clause


# ===== Serialization =====


def _serialize_work_order(ot: OrdenTrabajo) -> Dict[str, Any]:
    return {
        "id": ot.id,
        "numero": ot.numero,
        "codigo": get_ot_display_code(ot.numero, ot.created_at),
        "obra_id": ot.obra_id,
        "rubro_id": ot.rubro_id,
        "descripcion": ot.descripcion,
        "cantidad": ot.cantidad,
        "costo_estimado": ot.costo_estimado,
        "costo_real": ot.costo_real,
        "estado": ot.estado,
        "fecha_inicio": ot.fecha_inicio,
        "fecha_fin": ot.fecha_fin,
        "created_by": ot.created_by,
        "created_at": ot.created_at,
        "updated_at": ot.updated_at,
        "deleted_at": ot.deleted_at,
    }


def _serialize_rubro_summary(rubro: Optional[Rubro]) -> Optional[Dict[str, Any]]:
    if rubro is None:
        return None
    return {
        "id": rubro.id,
        "nombre": rubro.nombre,
        "unidad": rubro.unidad,
        "presupuesto": rubro.presupuesto,
        "presupuesto_ur": rubro.presupuesto_ur,
    }


def _serialize_list_item(ot: OrdenTrabajo) -> Dict[str, Any]:
    payload = _serialize_work_order(ot)
    tareas = ot.tareas or []
    payload.update(
        rubro=_serialize_rubro_summary(ot.rubro),
        tareas_total=len(tareas),
        tareas_completadas=sum(1 for tarea in tareas if tarea.completada),
    )
    return payload


def _serialize_history(entries: Iterable[OTHistorial]) -> List[Dict[str, Any]]:
    return [
        {
            "id": entry.id,
            "estado_anterior": entry.estado_anterior,
            "estado_nuevo": entry.estado_nuevo,
            "usuario_id": entry.usuario_id,
            "usuario": entry.usuario.nombre if entry.usuario else None,
            "usuario_rol": get_role_display_name(entry.usuario.rol) if entry.usuario else None,
            "notas": entry.notas,
            "acknowledged_by": entry.acknowledged_by,
            "acknowledged_at": entry.acknowledged_at,
            "created_at": entry.created_at,
        }
        for entry in entries
    ]


def _serialize_work_order_detail(db: Session, ot: OrdenTrabajo) -> Dict[str, Any]:
    historial = (
        db.query(OTHistorial)
        .filter(OTHistorial.orden_trabajo_id == ot.id)
        .order_by(OTHistorial.created_at.desc(), OTHistorial.id.desc())
        .all()
    )

    payload = _serialize_work_order(ot)
    payload.update(
        obra={"id": ot.obra.id, "nombre": ot.obra.nombre} if ot.obra else None,
        rubro=_serialize_rubro_summary(ot.rubro),
        creador={"id": ot.creador.id, "nombre": ot.creador.nombre} if ot.creador else None,
        insumos_estimados=[
            {
                "id": line.id,
                "insumo_id": line.insumo_id,
                "nombre": line.insumo.nombre if line.insumo else None,
                "unidad": line.insumo.unidad if line.insumo else None,
                "tipo": line.insumo.tipo if line.insumo else None,
                "cantidad_estimada": line.cantidad_estimada,
                "precio_estimado": line.precio_estimado,
            }
            for line in ot.insumos_estimados
        ],
        historial=_serialize_history(historial),
        tareas=[
            {"id": tarea.id, "descripcion": tarea.descripcion, "completada": tarea.completada, "orden": tarea.orden}
            for tarea in ot.tareas
        ],
    )
    return payload
