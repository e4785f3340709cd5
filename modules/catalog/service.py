from typing import Any, Dict

from sqlalchemy.orm import Session

from core.errors import NotFoundException, ValidationAppException
from modules.catalog import models, schemas


def _serialize_rubro(rubro: models.Rubro) -> Dict[str, Any]:
    return {
        "id": rubro.id,
        "obra_id": rubro.obra_id,
        "nombre": rubro.nombre,
        "unidad": rubro.unidad,
        "presupuesto": rubro.presupuesto,
        "presupuesto_ur": rubro.presupuesto_ur,
        "formula": [
            {
                "id": item.id,
                "insumo_id": item.insumo_id,
                "cantidad_por_unidad": item.cantidad_por_unidad,
            }
            for item in rubro.formulas
        ],
    }


def get_active_obra(db: Session, obra_id: int) -> models.Obra:
    obra = (
        db.query(models.Obra)
        .filter(models.Obra.id == obra_id)
        .filter(models.Obra.deleted_at.is_(None))
        .first()
    )
    if not obra:
        raise NotFoundException("Obra no encontrada")
    return obra


def get_active_rubro(db: Session, rubro_id: int) -> models.Rubro:
    rubro = (
        db.query(models.Rubro)
        .filter(models.Rubro.id == rubro_id)
        .filter(models.Rubro.deleted_at.is_(None))
        .first()
    )
    if not rubro:
        raise NotFoundException("Rubro no encontrado")
    return rubro


def create_obra(db: Session, obra_in: schemas.ObraCreate) -> models.Obra:
    obra = models.Obra(**obra_in.model_dump())
    db.add(obra)
    db.commit()
    db.refresh(obra)
    return obra


def get_obra(db: Session, obra_id: int) -> models.Obra:
    return get_active_obra(db, obra_id)


def create_usuario(db: Session, usuario_in: schemas.UsuarioCreate) -> models.Usuario:
    if usuario_in.obra_id is not None:
        get_active_obra(db, usuario_in.obra_id)
    exists = db.query(models.Usuario).filter(models.Usuario.email == usuario_in.email).first()
    if exists:
        raise ValidationAppException("Ya existe un usuario con ese email")
    usuario = models.Usuario(**usuario_in.model_dump())
    db.add(usuario)
    db.commit()
    db.refresh(usuario)
    return usuario


def create_insumo(db: Session, insumo_in: schemas.InsumoCreate) -> models.Insumo:
    get_active_obra(db, insumo_in.obra_id)
    insumo = models.Insumo(**insumo_in.model_dump())
    db.add(insumo)
    db.commit()
    db.refresh(insumo)
    return insumo


def create_rubro(db: Session, rubro_in: schemas.RubroCreate) -> Dict[str, Any]:
    get_active_obra(db, rubro_in.obra_id)

    rubro = models.Rubro(
        obra_id=rubro_in.obra_id,
        nombre=rubro_in.nombre,
        unidad=rubro_in.unidad,
        presupuesto=rubro_in.presupuesto,
        presupuesto_ur=rubro_in.presupuesto_ur,
    )

    seen = set()
    for item in rubro_in.formula:
        if item.insumo_id in seen:
            raise ValidationAppException("Un insumo no puede repetirse en la fórmula")
        seen.add(item.insumo_id)
        insumo = (
            db.query(models.Insumo)
            .filter(models.Insumo.id == item.insumo_id)
            .filter(models.Insumo.deleted_at.is_(None))
            .first()
        )
        if not insumo:
            raise NotFoundException("Insumo no encontrado")
        if insumo.obra_id != rubro_in.obra_id:
            raise ValidationAppException("El insumo no pertenece a la obra del rubro")
        rubro.formulas.append(
            models.Formula(insumo_id=item.insumo_id, cantidad_por_unidad=item.cantidad_por_unidad, insumo=insumo)
        )

    db.add(rubro)
    db.commit()
    db.refresh(rubro)
    return _serialize_rubro(rubro)


def get_rubro(db: Session, rubro_id: int) -> Dict[str, Any]:
    return _serialize_rubro(get_active_rubro(db, rubro_id))
