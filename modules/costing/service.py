from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, selectinload

from core.errors import NotFoundException, ValidationAppException
from core.results import action
from modules.catalog.models import Formula, Insumo, Rubro


@dataclass(frozen=True)
class EstimatedLine:
    insumo_id: int
    cantidad_estimada: float
    precio_estimado: float


@dataclass
class CostEstimate:
    rubro_id: int
    obra_id: int
    cantidad: float
    lines: List[EstimatedLine] = field(default_factory=list)
    costo_estimado: float = 0.0
    # Insumos priced at 0 because neither price is set
    insumos_sin_precio: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rubro_id": self.rubro_id,
            "obra_id": self.obra_id,
            "cantidad": self.cantidad,
            "costo_estimado": self.costo_estimado,
            "insumos": [
                {
                    "insumo_id": line.insumo_id,
                    "cantidad_estimada": line.cantidad_estimada,
                    "precio_estimado": line.precio_estimado,
                }
                for line in self.lines
            ],
            "insumos_sin_precio": list(self.insumos_sin_precio),
        }


def resolve_unit_price(insumo: Optional[Insumo]) -> float:
    """Reference price first, then unit price, else 0. A missing price is not an error."""
    if insumo is None:
        return 0.0
    return insumo.precio_referencia or insumo.precio_unitario or 0.0


class CostEstimator:
    """Expands a rubro's formula (bill of materials) into estimated insumo lines."""

    def estimate(self, rubro: Rubro, cantidad: float, obra_id: Optional[int] = None) -> CostEstimate:
        if cantidad is None or cantidad <= 0:
            raise ValidationAppException("La cantidad debe ser mayor a 0")

        estimate = CostEstimate(
            rubro_id=rubro.id,
            obra_id=obra_id if obra_id is not None else rubro.obra_id,
            cantidad=cantidad,
        )

        for formula in rubro.formulas or []:
            cantidad_estimada = (formula.cantidad_por_unidad or 0.0) * cantidad
            precio = resolve_unit_price(formula.insumo)
            if not precio:
                estimate.insumos_sin_precio.append(formula.insumo_id)
            precio_estimado = cantidad_estimada * precio
            estimate.costo_estimado += precio_estimado
            estimate.lines.append(
                EstimatedLine(
                    insumo_id=formula.insumo_id,
                    cantidad_estimada=cantidad_estimada,
                    precio_estimado=precio_estimado,
                )
            )

        return estimate


def load_rubro_with_formula(db: Session, rubro_id: int) -> Rubro:
    rubro = (
        db.query(Rubro)
        .options(selectinload(Rubro.formulas).selectinload(Formula.insumo))
        .filter(Rubro.id == rubro_id)
        .filter(Rubro.deleted_at.is_(None))
        .first()
    )
    if not rubro:
        raise NotFoundException("Rubro no encontrado")
    return rubro


def calculate_estimated_insumos(db: Session, rubro_id: int, cantidad: float, obra_id: int) -> CostEstimate:
    rubro = load_rubro_with_formula(db, rubro_id)
    return CostEstimator().estimate(rubro, cantidad, obra_id=obra_id)


@action("Error al calcular la estimación de costos")
def estimate_rubro_cost(db: Session, rubro_id: int, cantidad: float) -> Dict[str, Any]:
    rubro = load_rubro_with_formula(db, rubro_id)
    return CostEstimator().estimate(rubro, cantidad).to_dict()
