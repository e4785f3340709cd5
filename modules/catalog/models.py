from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from core.models import Base, SoftDeleteMixin, TimestampMixin


class Obra(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "obras"

    id = Column(Integer, primary_key=True, index=True)
    nombre = Column(String(255), nullable=False)
    direccion = Column(String(512), nullable=True)
    presupuesto_total = Column(Float, nullable=True)

    rubros = relationship("Rubro", back_populates="obra")


class Usuario(Base, TimestampMixin):
    __tablename__ = "usuarios"

    id = Column(Integer, primary_key=True, index=True)
    nombre = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    rol = Column(String(32), nullable=False)
    # Obra assignment; scopes what a jefe_obra may touch
    obra_id = Column(Integer, ForeignKey("obras.id", ondelete="SET NULL"), nullable=True)
    activo = Column(Boolean, nullable=False, default=True)

    obra = relationship("Obra")


class Rubro(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "rubros"

    id = Column(Integer, primary_key=True, index=True)
    obra_id = Column(Integer, ForeignKey("obras.id", ondelete="CASCADE"), nullable=False, index=True)
    nombre = Column(String(255), nullable=False)
    unidad = Column(String(64), nullable=True)
    presupuesto = Column(Float, nullable=False, default=0.0)
    presupuesto_ur = Column(Float, nullable=True)

    obra = relationship("Obra", back_populates="rubros")
    formulas = relationship("Formula", cascade="all, delete-orphan", back_populates="rubro")


class Insumo(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "insumos"

    id = Column(Integer, primary_key=True, index=True)
    obra_id = Column(Integer, ForeignKey("obras.id", ondelete="CASCADE"), nullable=False, index=True)
    nombre = Column(String(255), nullable=False)
    unidad = Column(String(64), nullable=False)
    tipo = Column(String(32), nullable=True)
    precio_referencia = Column(Float, nullable=True)
    precio_unitario = Column(Float, nullable=True)


class Formula(Base, TimestampMixin):
    """One bill-of-materials entry: how much of an insumo one unit of a rubro needs."""

    __tablename__ = "formulas"
    __table_args__ = (UniqueConstraint("rubro_id", "insumo_id", name="uq_formula_rubro_insumo"),)

    id = Column(Integer, primary_key=True, index=True)
    rubro_id = Column(Integer, ForeignKey("rubros.id", ondelete="CASCADE"), nullable=False)
    insumo_id = Column(Integer, ForeignKey("insumos.id", ondelete="RESTRICT"), nullable=False)
    cantidad_por_unidad = Column(Float, nullable=False, default=0.0)

    rubro = relationship("Rubro", back_populates="formulas")
    insumo = relationship("Insumo")
