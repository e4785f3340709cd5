"""
Work order authorization policy.

One table maps each lifecycle action to the roles allowed to perform it and the
obra scope each role gets. Every mutating entry point calls ``authorize`` once
before touching anything.

Uso:
    actor = authorize(actor, WorkOrderAction.CLOSE, obra_id=ot.obra_id)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional

from core.auth import Actor
from core.errors import NotAuthenticatedException, PermissionDeniedException

ADMIN = "admin"
DIRECTOR_OBRA = "director_obra"
JEFE_OBRA = "jefe_obra"

KNOWN_ROLES = frozenset({ADMIN, DIRECTOR_OBRA, JEFE_OBRA, "compras", "encargado_stock", "capataz"})

ROLE_DISPLAY_NAMES = {
    ADMIN: "Administrador",
    DIRECTOR_OBRA: "Director de Obra",
    JEFE_OBRA: "Jefe de Obra",
    "compras": "Compras",
    "encargado_stock": "Encargado de Stock",
    "capataz": "Capataz",
}


class Scope(Enum):
    ANY_OBRA = "any_obra"
    ASSIGNED_OBRA = "assigned_obra"


class WorkOrderAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    APPROVE = "approve"
    START = "start"
    CLOSE = "close"
    RECORD_COST = "record_cost"
    DELETE = "delete"
    RESTORE = "restore"
    LIST_TRASH = "list_trash"


@dataclass(frozen=True)
class Rule:
    roles: Mapping[str, Scope]
    denied: str
    out_of_scope: str = "No tiene acceso a esta obra"


_MANAGERS = {ADMIN: Scope.ANY_OBRA, DIRECTOR_OBRA: Scope.ANY_OBRA}
_FIELD_STAFF = {**_MANAGERS, JEFE_OBRA: Scope.ASSIGNED_OBRA}

POLICY: Dict[WorkOrderAction, Rule] = {
    WorkOrderAction.CREATE: Rule(
        _FIELD_STAFF,
        "No tiene permisos para crear órdenes de trabajo",
        "Solo puede crear OTs para su obra asignada",
    ),
    WorkOrderAction.UPDATE: Rule(
        _FIELD_STAFF,
        "No tiene permisos para editar órdenes de trabajo",
        "Solo puede editar OTs de su obra asignada",
    ),
    WorkOrderAction.APPROVE: Rule(_MANAGERS, "Solo el Director de Obra puede aprobar OTs"),
    WorkOrderAction.START: Rule(
        _FIELD_STAFF,
        "No tiene permisos para iniciar ejecución",
        "Solo puede iniciar OTs de su obra asignada",
    ),
    WorkOrderAction.CLOSE: Rule(
        _FIELD_STAFF,
        "No tiene permisos para cerrar OTs",
        "Solo puede cerrar OTs de su obra asignada",
    ),
    WorkOrderAction.RECORD_COST: Rule(
        _FIELD_STAFF,
        "No tiene permisos para registrar el costo real",
        "Solo puede registrar costos de OTs de su obra asignada",
    ),
    WorkOrderAction.DELETE: Rule(_MANAGERS, "No tiene permisos para eliminar OTs"),
    WorkOrderAction.RESTORE: Rule({ADMIN: Scope.ANY_OBRA}, "Solo administradores pueden restaurar elementos"),
    WorkOrderAction.LIST_TRASH: Rule({ADMIN: Scope.ANY_OBRA}, "Solo administradores pueden acceder a la papelera"),
}


def authorize(actor: Optional[Actor], action: WorkOrderAction, obra_id: Optional[int] = None) -> Actor:
    """Return the actor if allowed, otherwise raise the matching error."""
    if actor is None:
        raise NotAuthenticatedException()
    rule = POLICY[action]
    scope = rule.roles.get(actor.rol)
    if scope is None:
        raise PermissionDeniedException(rule.denied)
    if scope is Scope.ASSIGNED_OBRA and (obra_id is None or actor.obra_id != obra_id):
        raise PermissionDeniedException(rule.out_of_scope)
    return actor


def get_role_display_name(rol: Optional[str]) -> str:
    if not rol:
        return "Usuario"
    return ROLE_DISPLAY_NAMES.get(rol, rol)
