from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modules.work_orders.permissions import KNOWN_ROLES


class ObraCreate(BaseModel):
    nombre: str = Field(..., min_length=1, max_length=255)
    direccion: Optional[str] = None
    presupuesto_total: Optional[float] = Field(None, ge=0)


class ObraRead(ObraCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int


class UsuarioCreate(BaseModel):
    nombre: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    rol: str
    obra_id: Optional[int] = None
    activo: bool = True

    @field_validator("rol")
    @classmethod
    def check_rol(cls, v: str) -> str:
        if v not in KNOWN_ROLES:
            raise ValueError(f"Rol desconocido: {v}")
        return v


class UsuarioRead(UsuarioCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int


class InsumoCreate(BaseModel):
    obra_id: int
    nombre: str = Field(..., min_length=1, description="Nombre del insumo")
    unidad: str = Field(..., min_length=1, description="Unidad de medida")
    tipo: Optional[str] = Field(None, description="material, mano_de_obra, ...")
    precio_referencia: Optional[float] = Field(None, ge=0, description="Precio de referencia")
    precio_unitario: Optional[float] = Field(None, ge=0, description="Precio unitario")


class InsumoRead(InsumoCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int


class FormulaItemCreate(BaseModel):
    insumo_id: int
    cantidad_por_unidad: float = Field(..., gt=0, description="Cantidad de insumo por unidad de rubro")


class FormulaItemRead(FormulaItemCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int


class RubroCreate(BaseModel):
    obra_id: int
    nombre: str = Field(..., min_length=1, max_length=255)
    unidad: Optional[str] = None
    presupuesto: float = Field(0.0, ge=0)
    presupuesto_ur: Optional[float] = Field(None, ge=0)
    formula: List[FormulaItemCreate] = Field(default_factory=list)


class RubroRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    obra_id: int
    nombre: str
    unidad: Optional[str] = None
    presupuesto: float
    presupuesto_ur: Optional[float] = None
    formula: List[FormulaItemRead] = Field(default_factory=list)
