"""Work order state graph.

borrador -> aprobada -> en_ejecucion -> cerrada, strictly forward, one step at a
time. Soft deletion is orthogonal and never touches ``estado``.
"""

from enum import Enum
from typing import Dict, Optional, Tuple

from core.errors import InvalidStateException


class OTStatus(str, Enum):
    BORRADOR = "borrador"
    APROBADA = "aprobada"
    EN_EJECUCION = "en_ejecucion"
    CERRADA = "cerrada"


LIFECYCLE: Tuple[OTStatus, ...] = (
    OTStatus.BORRADOR,
    OTStatus.APROBADA,
    OTStatus.EN_EJECUCION,
    OTStatus.CERRADA,
)

TRANSITIONS: Dict[OTStatus, OTStatus] = {
    current: target for current, target in zip(LIFECYCLE, LIFECYCLE[1:])
}

# States whose estimated cost counts against the rubro budget
COMMITTED_STATES: Tuple[OTStatus, ...] = (OTStatus.APROBADA, OTStatus.EN_EJECUCION, OTStatus.CERRADA)


def next_state(current: OTStatus) -> Optional[OTStatus]:
    return TRANSITIONS.get(OTStatus(current))


def can_transition(current: OTStatus, target: OTStatus) -> bool:
    return next_state(current) == OTStatus(target)


def require_state(current: str, expected: OTStatus, message: str) -> None:
    if OTStatus(current) != expected:
        raise InvalidStateException(message)
