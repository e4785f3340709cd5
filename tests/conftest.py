"""Shared fixtures: a throwaway SQLite database plus a small obra to work on."""
import os
import pathlib
import sys
import tempfile

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Must be set before core.settings / core.database are imported
_db_fd, _db_path = tempfile.mkstemp(suffix=".db")
os.environ["DATABASE_URL"] = f"sqlite:///{_db_path}"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from core.auth import Actor
from core.database import SessionLocal, engine, init_db
from core.models import Base
from core.revalidation import clear_listeners
from modules.catalog.models import Formula, Insumo, Obra, Rubro, Usuario


@pytest.fixture(autouse=True)
def clean_db():
    """Reset database and revalidation listeners before each test."""
    init_db()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    clear_listeners()
    yield
    clear_listeners()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def obra(db):
    obra = Obra(nombre="Edificio Rambla", direccion="Rambla 1234", presupuesto_total=500000)
    db.add(obra)
    db.commit()
    db.refresh(obra)
    return obra


@pytest.fixture
def otra_obra(db):
    obra = Obra(nombre="Casa Carrasco")
    db.add(obra)
    db.commit()
    db.refresh(obra)
    return obra


def _usuario(db, rol, obra_id=None, activo=True):
    usuario = Usuario(nombre=f"Usuario {rol}", email=f"{rol}-{obra_id}@obra.test", rol=rol, obra_id=obra_id, activo=activo)
    db.add(usuario)
    db.commit()
    db.refresh(usuario)
    return usuario


def _actor(usuario):
    return Actor(id=usuario.id, rol=usuario.rol, obra_id=usuario.obra_id)


@pytest.fixture
def users(db, obra):
    """One usuario per role, all assigned to ``obra``."""
    roles = ["admin", "director_obra", "jefe_obra", "compras", "capataz"]
    return {rol: _usuario(db, rol, obra.id) for rol in roles}


@pytest.fixture
def actors(users):
    return {rol: _actor(usuario) for rol, usuario in users.items()}


@pytest.fixture
def jefe_otra_obra(db, otra_obra):
    return _actor(_usuario(db, "jefe_obra", otra_obra.id))


@pytest.fixture
def insumos(db, obra):
    """A (ref 100), B (unit price 200 only), C (ref 50)."""
    items = {
        "A": Insumo(obra_id=obra.id, nombre="Cemento", unidad="bolsa", tipo="material", precio_referencia=100),
        "B": Insumo(obra_id=obra.id, nombre="Oficial albañil", unidad="hora", tipo="mano_de_obra", precio_unitario=200),
        "C": Insumo(obra_id=obra.id, nombre="Arena", unidad="m3", tipo="material", precio_referencia=50),
    }
    db.add_all(items.values())
    db.commit()
    for item in items.values():
        db.refresh(item)
    return items


@pytest.fixture
def make_rubro(db, obra, insumos):
    def _make(presupuesto=10000.0, formula=None, obra_id=None, nombre="Mampostería"):
        if formula is None:
            formula = [("A", 10), ("B", 5), ("C", 20)]
        rubro = Rubro(obra_id=obra_id or obra.id, nombre=nombre, unidad="m2", presupuesto=presupuesto)
        rubro.formulas = [
            Formula(insumo_id=insumos[key].id, cantidad_por_unidad=coef) for key, coef in formula
        ]
        db.add(rubro)
        db.commit()
        db.refresh(rubro)
        return rubro

    return _make


@pytest.fixture
def rubro(make_rubro):
    """Formula costing 3000 per unit against a 10000 budget."""
    return make_rubro()
