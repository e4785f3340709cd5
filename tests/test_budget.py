import pytest

from core.errors import BudgetExceededException, DeviationNotAcknowledgedException
from modules.budget.service import (
    BudgetCheck,
    compute_deviation,
    describe_deviation,
    enforce_budget_gate,
    deviation_status,
    enforce_deviation_gate,
    get_deviations_by_rubro,
    get_rubro_budget_status,
)
from modules.catalog.models import Rubro
from modules.work_orders.models import OrdenTrabajo


def add_ot(db, obra, rubro, usuario, numero, estado, costo_estimado, costo_real=None, deleted=False):
    from core.models import utcnow

    ot = OrdenTrabajo(
        numero=numero,
        obra_id=obra.id,
        rubro_id=rubro.id,
        descripcion=f"OT {numero}",
        cantidad=1,
        costo_estimado=costo_estimado,
        costo_real=costo_real,
        estado=estado,
        created_by=usuario.id,
        deleted_at=utcnow() if deleted else None,
    )
    db.add(ot)
    db.commit()
    return ot


@pytest.fixture
def plain_rubro(db, obra):
    rubro = Rubro(obra_id=obra.id, nombre="Estructura", presupuesto=10000)
    db.add(rubro)
    db.commit()
    db.refresh(rubro)
    return rubro


def test_budget_status_uses_real_cost_only_for_closed_orders(db, obra, plain_rubro, users):
    admin = users["admin"]
    add_ot(db, obra, plain_rubro, admin, 1, "aprobada", 2000)
    add_ot(db, obra, plain_rubro, admin, 2, "cerrada", 3000, costo_real=3500)

    status = get_rubro_budget_status(db, plain_rubro.id).data

    assert status["presupuesto"] == 10000
    assert status["gastado"] == pytest.approx(5500)
    assert status["disponible"] == pytest.approx(4500)
    assert status["porcentaje_usado"] == pytest.approx(55)


def test_budget_status_ignores_drafts_and_deleted(db, obra, plain_rubro, users):
    admin = users["admin"]
    add_ot(db, obra, plain_rubro, admin, 1, "borrador", 4000)
    add_ot(db, obra, plain_rubro, admin, 2, "en_ejecucion", 1000, costo_real=1800)
    add_ot(db, obra, plain_rubro, admin, 3, "aprobada", 5000, deleted=True)

    status = get_rubro_budget_status(db, plain_rubro.id).data

    # In-progress orders count their estimate even with a recorded real cost
    assert status["gastado"] == pytest.approx(1000)


def test_zero_budget_reports_zero_percent(db, obra, users):
    rubro = Rubro(obra_id=obra.id, nombre="Imprevistos", presupuesto=0)
    db.add(rubro)
    db.commit()
    add_ot(db, obra, rubro, users["admin"], 1, "aprobada", 700)

    status = get_rubro_budget_status(db, rubro.id).data

    assert status["porcentaje_usado"] == 0
    assert status["disponible"] == pytest.approx(-700)


def test_budget_status_unknown_rubro(db):
    result = get_rubro_budget_status(db, 404)
    assert not result.success
    assert result.code == "not_found"


def test_budget_gate():
    assert enforce_budget_gate(BudgetCheck(presupuesto=10000, comprometido=7000, costo_estimado=3000), False) is False

    over = BudgetCheck(presupuesto=10000, comprometido=8000, costo_estimado=3000)
    assert over.excedente == pytest.approx(1000)
    with pytest.raises(BudgetExceededException) as exc_info:
        enforce_budget_gate(over, False)
    assert exc_info.value.excedente == pytest.approx(1000)
    assert "$1.000" in exc_info.value.message
    assert enforce_budget_gate(over, True) is True


def test_deviation_gate():
    assert enforce_deviation_gate(compute_deviation(3000, 3000), False) is False
    assert enforce_deviation_gate(compute_deviation(3000, 2000), False) is False

    deviation = compute_deviation(2000, 2500)
    assert describe_deviation(deviation) == "$500 (25.0%)"
    with pytest.raises(DeviationNotAcknowledgedException) as exc_info:
        enforce_deviation_gate(deviation, False)
    assert exc_info.value.desvio_porcentaje == pytest.approx(25)
    assert enforce_deviation_gate(deviation, True) is True


def test_deviation_against_zero_estimate():
    deviation = compute_deviation(0, 800)
    assert deviation.desvio == 800
    assert deviation.desvio_porcentaje == 0
    assert deviation.positive


def test_deviation_status_thresholds():
    assert deviation_status(-15) == "ok"
    assert deviation_status(0) == "ok"
    assert deviation_status(0.1) == "warning"
    assert deviation_status(20) == "warning"
    assert deviation_status(20.1) == "alert"


def test_deviations_by_rubro(db, obra, users):
    admin = users["admin"]

    def rubro(nombre, deleted=False):
        from core.models import utcnow

        item = Rubro(obra_id=obra.id, nombre=nombre, presupuesto=5000, deleted_at=utcnow() if deleted else None)
        db.add(item)
        db.commit()
        return item

    exacto = rubro("Revoques")
    sobre = rubro("Sanitaria")
    sin_desvio = rubro("Estructura")
    vacio = rubro("Pintura")
    borrado = rubro("Demolición", deleted=True)

    add_ot(db, obra, exacto, admin, 1, "cerrada", 1000, costo_real=1200)
    add_ot(db, obra, sobre, admin, 2, "cerrada", 1000, costo_real=1201)
    add_ot(db, obra, sin_desvio, admin, 3, "cerrada", 1000, costo_real=1000)
    add_ot(db, obra, sin_desvio, admin, 4, "borrador", 5000, costo_real=9000)
    add_ot(db, obra, sin_desvio, admin, 5, "cerrada", 1000, costo_real=5000, deleted=True)
    add_ot(db, obra, borrado, admin, 6, "cerrada", 1000, costo_real=3000)

    rows = get_deviations_by_rubro(db, obra.id).data

    assert [row["rubro_nombre"] for row in rows] == ["Estructura", "Pintura", "Revoques", "Sanitaria"]
    by_name = {row["rubro_nombre"]: row for row in rows}

    assert by_name["Revoques"]["desvio"] == pytest.approx(200)
    assert by_name["Revoques"]["desvio_porcentaje"] == pytest.approx(20)
    assert by_name["Revoques"]["status"] == "warning"
    assert by_name["Sanitaria"]["status"] == "alert"

    estructura = by_name["Estructura"]
    assert estructura["costo_estimado_total"] == pytest.approx(1000)
    assert estructura["costo_real_total"] == pytest.approx(1000)
    assert estructura["ots_count"] == 1
    assert estructura["status"] == "ok"

    assert by_name["Pintura"] == {
        "rubro_id": vacio.id,
        "rubro_nombre": "Pintura",
        "presupuesto": 5000,
        "costo_estimado_total": 0,
        "costo_real_total": 0,
        "desvio": 0,
        "desvio_porcentaje": 0,
        "ots_count": 0,
        "status": "ok",
    }


def test_deviations_count_unrecorded_real_cost_as_zero(db, obra, plain_rubro, users):
    add_ot(db, obra, plain_rubro, users["admin"], 1, "aprobada", 2000)
    add_ot(db, obra, plain_rubro, users["admin"], 2, "en_ejecucion", 1000, costo_real=1500)

    (row,) = get_deviations_by_rubro(db, obra.id).data

    assert row["costo_estimado_total"] == pytest.approx(3000)
    assert row["costo_real_total"] == pytest.approx(1500)
    assert row["desvio"] == pytest.approx(-1500)
    assert row["ots_count"] == 2
    assert row["status"] == "ok"


def test_deviations_for_obra_without_rubros(db, otra_obra):
    result = get_deviations_by_rubro(db, otra_obra.id)
    assert result.success
    assert result.data == []
