from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, Field

MAX_TEXT = 500


def _check_descripcion(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("La descripción es requerida")
    if len(v) > MAX_TEXT:
        raise ValueError("La descripción no puede tener más de 500 caracteres")
    return v


def _check_cantidad(v: float) -> float:
    if v < 0.01:
        raise ValueError("La cantidad debe ser mayor a 0")
    return v


def _check_notas(v: str) -> str:
    if len(v) > MAX_TEXT:
        raise ValueError("Las notas no pueden tener más de 500 caracteres")
    return v


def _check_costo_real(v: float) -> float:
    if v < 0:
        raise ValueError("El costo real no puede ser negativo")
    return v


Descripcion = Annotated[str, AfterValidator(_check_descripcion)]
Cantidad = Annotated[float, AfterValidator(_check_cantidad)]
Notas = Annotated[str, AfterValidator(_check_notas)]


class WorkOrderCreate(BaseModel):
    obra_id: int
    rubro_id: int
    descripcion: Descripcion
    cantidad: Cantidad = Field(1.0, description="Cantidad en la unidad del rubro")


class WorkOrderUpdate(BaseModel):
    descripcion: Optional[Descripcion] = None
    cantidad: Optional[Cantidad] = None
    rubro_id: Optional[int] = None


class WorkOrderApprove(BaseModel):
    notas: Optional[Notas] = None
    acknowledge_budget_exceeded: bool = False


class WorkOrderClose(BaseModel):
    notas: Optional[Notas] = None
    acknowledge_deviation: bool = False


class ActualCostInput(BaseModel):
    costo_real: Annotated[float, AfterValidator(_check_costo_real)]
