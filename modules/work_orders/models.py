from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from core.models import Base, SoftDeleteMixin, TimestampMixin, utcnow
from modules.work_orders.states import OTStatus


class OrdenTrabajo(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "ordenes_trabajo"
    __table_args__ = (UniqueConstraint("obra_id", "numero", name="uq_ot_obra_numero"),)

    id = Column(Integer, primary_key=True, index=True)
    numero = Column(Integer, nullable=False)
    obra_id = Column(Integer, ForeignKey("obras.id", ondelete="CASCADE"), nullable=False, index=True)
    rubro_id = Column(Integer, ForeignKey("rubros.id", ondelete="RESTRICT"), nullable=False, index=True)
    descripcion = Column(String(500), nullable=False)
    cantidad = Column(Float, nullable=False, default=1.0)
    costo_estimado = Column(Float, nullable=False, default=0.0)
    costo_real = Column(Float, nullable=True)
    estado = Column(String(32), nullable=False, default=OTStatus.BORRADOR.value, index=True)
    fecha_inicio = Column(Date, nullable=True)
    fecha_fin = Column(Date, nullable=True)
    created_by = Column(Integer, ForeignKey("usuarios.id", ondelete="RESTRICT"), nullable=False)

    obra = relationship("Obra")
    rubro = relationship("Rubro")
    creador = relationship("Usuario")
    insumos_estimados = relationship(
        "OTInsumoEstimado", cascade="all, delete-orphan", back_populates="orden_trabajo"
    )
    historial = relationship("OTHistorial", back_populates="orden_trabajo")
    tareas = relationship("Tarea", cascade="all, delete-orphan", back_populates="orden_trabajo", order_by="Tarea.orden")


class OTInsumoEstimado(Base, TimestampMixin):
    __tablename__ = "ot_insumos_estimados"

    id = Column(Integer, primary_key=True, index=True)
    orden_trabajo_id = Column(Integer, ForeignKey("ordenes_trabajo.id", ondelete="CASCADE"), nullable=False, index=True)
    insumo_id = Column(Integer, ForeignKey("insumos.id", ondelete="RESTRICT"), nullable=False)
    cantidad_estimada = Column(Float, nullable=False, default=0.0)
    precio_estimado = Column(Float, nullable=False, default=0.0)

    orden_trabajo = relationship("OrdenTrabajo", back_populates="insumos_estimados")
    insumo = relationship("Insumo")


class OTHistorial(Base):
    """Append-only audit trail; one row per state transition."""

    __tablename__ = "ot_historial"

    id = Column(Integer, primary_key=True, index=True)
    orden_trabajo_id = Column(Integer, ForeignKey("ordenes_trabajo.id", ondelete="CASCADE"), nullable=False, index=True)
    estado_anterior = Column(String(32), nullable=True)
    estado_nuevo = Column(String(32), nullable=False)
    usuario_id = Column(Integer, ForeignKey("usuarios.id", ondelete="RESTRICT"), nullable=False)
    notas = Column(Text, nullable=True)
    acknowledged_by = Column(Integer, ForeignKey("usuarios.id", ondelete="RESTRICT"), nullable=True)
    acknowledged_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    orden_trabajo = relationship("OrdenTrabajo", back_populates="historial")
    usuario = relationship("Usuario", foreign_keys=[usuario_id])


class Tarea(Base, TimestampMixin):
    __tablename__ = "tareas"

    id = Column(Integer, primary_key=True, index=True)
    orden_trabajo_id = Column(Integer, ForeignKey("ordenes_trabajo.id", ondelete="CASCADE"), nullable=False, index=True)
    descripcion = Column(String(500), nullable=False)
    completada = Column(Boolean, nullable=False, default=False)
    orden = Column(Integer, nullable=True)

    orden_trabajo = relationship("OrdenTrabajo", back_populates="tareas")
