import pytest

from core.errors import InvalidStateException
from modules.work_orders.states import (
    COMMITTED_STATES,
    OTStatus,
    can_transition,
    next_state,
    require_state,
)


def test_lifecycle_moves_forward_one_step_at_a_time():
    assert next_state(OTStatus.BORRADOR) == OTStatus.APROBADA
    assert next_state(OTStatus.APROBADA) == OTStatus.EN_EJECUCION
    assert next_state(OTStatus.EN_EJECUCION) == OTStatus.CERRADA
    assert next_state(OTStatus.CERRADA) is None


@pytest.mark.parametrize(
    "current,target",
    [
        (OTStatus.BORRADOR, OTStatus.EN_EJECUCION),
        (OTStatus.BORRADOR, OTStatus.CERRADA),
        (OTStatus.APROBADA, OTStatus.BORRADOR),
        (OTStatus.CERRADA, OTStatus.BORRADOR),
        (OTStatus.EN_EJECUCION, OTStatus.EN_EJECUCION),
    ],
)
def test_skips_and_backward_moves_are_not_transitions(current, target):
    assert not can_transition(current, target)


def test_string_values_are_accepted():
    assert can_transition("borrador", "aprobada")
    assert next_state("en_ejecucion") == OTStatus.CERRADA


def test_require_state():
    require_state("borrador", OTStatus.BORRADOR, "ok")
    with pytest.raises(InvalidStateException) as exc_info:
        require_state("aprobada", OTStatus.BORRADOR, "Solo se pueden editar OTs en estado borrador")
    assert exc_info.value.status_code == 409
    assert exc_info.value.message == "Solo se pueden editar OTs en estado borrador"


def test_draft_is_not_committed():
    assert OTStatus.BORRADOR not in COMMITTED_STATES
    assert set(COMMITTED_STATES) == {OTStatus.APROBADA, OTStatus.EN_EJECUCION, OTStatus.CERRADA}
