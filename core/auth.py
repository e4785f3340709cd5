"""Current-actor resolution.

Authentication itself belongs to the identity provider in front of this
service; requests reach us with the authenticated user's id in the
``X-Usuario-Id`` header and we resolve it against the active ``usuarios`` rows.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from core.database import get_db


@dataclass(frozen=True)
class Actor:
    id: int
    rol: str
    obra_id: Optional[int] = None


def resolve_actor(db: Session, usuario_id: Optional[int]) -> Optional[Actor]:
    from modules.catalog.models import Usuario

    if usuario_id is None:
        return None
    usuario = (
        db.query(Usuario)
        .filter(Usuario.id == usuario_id)
        .filter(Usuario.activo.is_(True))
        .first()
    )
    if not usuario:
        return None
    return Actor(id=usuario.id, rol=usuario.rol, obra_id=usuario.obra_id)


def get_current_actor(
    x_usuario_id: Optional[int] = Header(default=None),
    db: Session = Depends(get_db),
) -> Optional[Actor]:
    return resolve_actor(db, x_usuario_id)
