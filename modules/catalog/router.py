from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.database import get_db
from modules.catalog import schemas, service

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.post("/obras", response_model=schemas.ObraRead)
def create_obra_endpoint(obra_in: schemas.ObraCreate, db: Session = Depends(get_db)):
    return service.create_obra(db, obra_in)


@router.get("/obras/{obra_id}", response_model=schemas.ObraRead)
def get_obra_endpoint(obra_id: int, db: Session = Depends(get_db)):
    return service.get_obra(db, obra_id)


@router.post("/usuarios", response_model=schemas.UsuarioRead)
def create_usuario_endpoint(usuario_in: schemas.UsuarioCreate, db: Session = Depends(get_db)):
    return service.create_usuario(db, usuario_in)


@router.post("/insumos", response_model=schemas.InsumoRead)
def create_insumo_endpoint(insumo_in: schemas.InsumoCreate, db: Session = Depends(get_db)):
    return service.create_insumo(db, insumo_in)


@router.post("/rubros", response_model=schemas.RubroRead)
def create_rubro_endpoint(rubro_in: schemas.RubroCreate, db: Session = Depends(get_db)):
    return service.create_rubro(db, rubro_in)


@router.get("/rubros/{rubro_id}", response_model=schemas.RubroRead)
def get_rubro_endpoint(rubro_id: int, db: Session = Depends(get_db)):
    return service.get_rubro(db, rubro_id)
