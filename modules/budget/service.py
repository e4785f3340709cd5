"""Budget and deviation policy for rubros and work orders.

Two gates guard the lifecycle. At approval the committed cost of a rubro plus
the order being approved must stay within ``presupuesto``. At closure a
positive gap between real and estimated cost must be acknowledged. Both gates
are recoverable: the caller retries with the acknowledgement flag set.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.currency import format_amount
from core.errors import BudgetExceededException, DeviationNotAcknowledgedException
from core.results import action
from modules.catalog.models import Rubro
from modules.catalog.service import get_active_rubro
from modules.work_orders.models import OrdenTrabajo
from modules.work_orders.states import COMMITTED_STATES, OTStatus

COMMITTED_VALUES = [state.value for state in COMMITTED_STATES]

# Percentage above which a rubro's deviation is an alert rather than a warning
DEVIATION_ALERT_PCT = 20.0


@dataclass(frozen=True)
class BudgetCheck:
    presupuesto: float
    comprometido: float
    costo_estimado: float

    @property
    def nuevo_total(self) -> float:
        return self.comprometido + self.costo_estimado

    @property
    def excede(self) -> bool:
        return self.nuevo_total > self.presupuesto

    @property
    def excedente(self) -> float:
        return max(0.0, self.nuevo_total - self.presupuesto)


@dataclass(frozen=True)
class Deviation:
    costo_estimado: float
    costo_real: float

    @property
    def desvio(self) -> float:
        return self.costo_real - self.costo_estimado

    @property
    def desvio_porcentaje(self) -> float:
        if self.costo_estimado == 0:
            return 0.0
        return self.desvio * 100 / self.costo_estimado

    @property
    def positive(self) -> bool:
        return self.desvio > 0

    def to_dict(self) -> Dict[str, float]:
        return {
            "costo_estimado": self.costo_estimado,
            "costo_real": self.costo_real,
            "desvio": self.desvio,
            "desvio_porcentaje": self.desvio_porcentaje,
        }


def lock_rubro(db: Session, rubro_id: int) -> Optional[Rubro]:
    """Load the rubro with a row lock so concurrent approvals under it serialize."""
    return (
        db.query(Rubro)
        .filter(Rubro.id == rubro_id)
        .filter(Rubro.deleted_at.is_(None))
        .with_for_update()
        .first()
    )


def committed_cost(db: Session, rubro_id: int, exclude_id: Optional[int] = None) -> float:
    query = (
        db.query(func.coalesce(func.sum(OrdenTrabajo.costo_estimado), 0.0))
        .filter(OrdenTrabajo.rubro_id == rubro_id)
        .filter(OrdenTrabajo.deleted_at.is_(None))
        .filter(OrdenTrabajo.estado.in_(COMMITTED_VALUES))
    )
    if exclude_id is not None:
        query = query.filter(OrdenTrabajo.id != exclude_id)
    return float(query.scalar() or 0.0)


def check_budget(db: Session, ot: OrdenTrabajo, rubro: Rubro) -> BudgetCheck:
    return BudgetCheck(
        presupuesto=rubro.presupuesto or 0.0,
        comprometido=committed_cost(db, ot.rubro_id, exclude_id=ot.id),
        costo_estimado=ot.costo_estimado or 0.0,
    )


def enforce_budget_gate(check: BudgetCheck, acknowledged: bool) -> bool:
    """Raise unless the approval fits the budget or the overrun was acknowledged.

    Returns True when the gate fired (budget exceeded and acknowledged).
    """
    if not check.excede:
        return False
    if not acknowledged:
        raise BudgetExceededException(
            f"Esta OT excede el presupuesto del rubro por ${format_amount(check.excedente)}. "
            "Debe confirmar para continuar.",
            excedente=check.excedente,
        )
    return True


def resolve_actual_cost(ot: OrdenTrabajo) -> float:
    # No consumption tracking here: an unrecorded real cost means the estimate
    if ot.costo_real is not None:
        return ot.costo_real
    return ot.costo_estimado or 0.0


def compute_deviation(costo_estimado: float, costo_real: float) -> Deviation:
    return Deviation(costo_estimado=costo_estimado or 0.0, costo_real=costo_real or 0.0)


def describe_deviation(deviation: Deviation) -> str:
    return f"${format_amount(deviation.desvio)} ({deviation.desvio_porcentaje:.1f}%)"


def enforce_deviation_gate(deviation: Deviation, acknowledged: bool) -> bool:
    """Raise on an unacknowledged positive deviation. Returns True when the gate fired."""
    if not deviation.positive:
        return False
    if not acknowledged:
        raise DeviationNotAcknowledgedException(
            f"Esta OT tiene un desvío de {describe_deviation(deviation)}. Debe confirmar para cerrar.",
            desvio=deviation.desvio,
            desvio_porcentaje=deviation.desvio_porcentaje,
        )
    return True


def spent_amount(ot: OrdenTrabajo) -> float:
    if ot.estado == OTStatus.CERRADA.value and ot.costo_real is not None:
        return ot.costo_real
    return ot.costo_estimado or 0.0


@action("Error al calcular el estado del presupuesto")
def get_rubro_budget_status(db: Session, rubro_id: int) -> Dict[str, Any]:
    rubro = get_active_rubro(db, rubro_id)

    ots = (
        db.query(OrdenTrabajo)
        .filter(OrdenTrabajo.rubro_id == rubro_id)
        .filter(OrdenTrabajo.deleted_at.is_(None))
        .filter(OrdenTrabajo.estado.in_(COMMITTED_VALUES))
        .all()
    )

    presupuesto = rubro.presupuesto or 0.0
    gastado = sum(spent_amount(ot) for ot in ots)
    disponible = presupuesto - gastado
    porcentaje_usado = (gastado / presupuesto * 100) if presupuesto > 0 else 0.0

    return {
        "presupuesto": presupuesto,
        "gastado": gastado,
        "disponible": disponible,
        "porcentaje_usado": porcentaje_usado,
    }


def deviation_status(desvio_porcentaje: float) -> str:
    if desvio_porcentaje > DEVIATION_ALERT_PCT:
        return "alert"
    if desvio_porcentaje > 0:
        return "warning"
    return "ok"


@action("Error al obtener rubros")
def get_deviations_by_rubro(db: Session, obra_id: int) -> List[Dict[str, Any]]:
    """Deviation rollup per active rubro of an obra, ordered by name.

    Only committed orders count. Real cost is summed as recorded, so orders
    without a real cost contribute 0 to ``costo_real_total``.
    """
    rubros = (
        db.query(Rubro)
        .filter(Rubro.obra_id == obra_id)
        .filter(Rubro.deleted_at.is_(None))
        .order_by(Rubro.nombre)
        .all()
    )
    if not rubros:
        return []

    rows = (
        db.query(
            OrdenTrabajo.rubro_id,
            func.coalesce(func.sum(OrdenTrabajo.costo_estimado), 0.0),
            func.coalesce(func.sum(func.coalesce(OrdenTrabajo.costo_real, 0.0)), 0.0),
            func.count(OrdenTrabajo.id),
        )
        .filter(OrdenTrabajo.obra_id == obra_id)
        .filter(OrdenTrabajo.deleted_at.is_(None))
        .filter(OrdenTrabajo.estado.in_(COMMITTED_VALUES))
        .group_by(OrdenTrabajo.rubro_id)
        .all()
    )
    totals = {rubro_id: (float(estimado), float(real), count) for rubro_id, estimado, real, count in rows}

    summaries = []
    for rubro in rubros:
        estimado, real, count = totals.get(rubro.id, (0.0, 0.0, 0))
        deviation = Deviation(costo_estimado=estimado, costo_real=real)
        summaries.append(
            {
                "rubro_id": rubro.id,
                "rubro_nombre": rubro.nombre,
                "presupuesto": rubro.presupuesto or 0.0,
                "costo_estimado_total": estimado,
                "costo_real_total": real,
                "desvio": deviation.desvio,
                "desvio_porcentaje": deviation.desvio_porcentaje,
                "ots_count": count,
                "status": deviation_status(deviation.desvio_porcentaje),
            }
        )
    return summaries
