import pytest

from core.errors import NotFoundException, ValidationAppException
from modules.catalog.models import Formula, Insumo, Rubro
from modules.costing.service import (
    CostEstimator,
    calculate_estimated_insumos,
    estimate_rubro_cost,
    resolve_unit_price,
)


def build_rubro(entries):
    """entries: [(insumo_id, coef, precio_referencia, precio_unitario)]"""
    rubro = Rubro(id=1, obra_id=1, nombre="Contrapiso", presupuesto=0)
    rubro.formulas = [
        Formula(
            insumo_id=insumo_id,
            cantidad_por_unidad=coef,
            insumo=Insumo(id=insumo_id, obra_id=1, nombre=f"Insumo {insumo_id}", unidad="u", precio_referencia=ref, precio_unitario=unit),
        )
        for insumo_id, coef, ref, unit in entries
    ]
    return rubro


def test_estimate_sums_coefficient_times_quantity_times_price():
    rubro = build_rubro([(1, 10, 100, None), (2, 5, 200, None), (3, 20, 50, None)])

    estimate = CostEstimator().estimate(rubro, 1)

    assert estimate.costo_estimado == pytest.approx(3000)
    assert [line.precio_estimado for line in estimate.lines] == [1000, 1000, 1000]
    assert [line.cantidad_estimada for line in estimate.lines] == [10, 5, 20]


def test_estimate_scales_with_quantity():
    rubro = build_rubro([(1, 10, 100, None), (2, 5, 200, None), (3, 20, 50, None)])

    estimate = CostEstimator().estimate(rubro, 2.5)

    assert estimate.costo_estimado == pytest.approx(7500)
    assert estimate.lines[0].cantidad_estimada == pytest.approx(25)


def test_missing_price_contributes_zero():
    rubro = build_rubro([(1, 10, 100, None), (2, 5, None, None)])

    estimate = CostEstimator().estimate(rubro, 1)

    assert estimate.costo_estimado == pytest.approx(1000)
    assert estimate.lines[1].precio_estimado == 0
    assert estimate.lines[1].cantidad_estimada == 5
    assert estimate.insumos_sin_precio == [2]


def test_unit_price_is_used_when_reference_missing():
    insumo = Insumo(nombre="Hierro", unidad="kg", precio_referencia=None, precio_unitario=45.5)
    assert resolve_unit_price(insumo) == 45.5
    assert resolve_unit_price(Insumo(nombre="x", unidad="u", precio_referencia=12, precio_unitario=45.5)) == 12
    assert resolve_unit_price(None) == 0.0


def test_empty_formula_estimates_zero():
    rubro = build_rubro([])

    estimate = CostEstimator().estimate(rubro, 3)

    assert estimate.costo_estimado == 0
    assert estimate.lines == []


@pytest.mark.parametrize("cantidad", [0, -1])
def test_non_positive_quantity_is_rejected(cantidad):
    rubro = build_rubro([(1, 10, 100, None)])
    with pytest.raises(ValidationAppException):
        CostEstimator().estimate(rubro, cantidad)


def test_calculate_estimated_insumos_reads_formula_from_db(db, obra, rubro, insumos):
    estimate = calculate_estimated_insumos(db, rubro.id, 1, obra.id)

    assert estimate.costo_estimado == pytest.approx(3000)
    assert estimate.obra_id == obra.id
    assert {line.insumo_id for line in estimate.lines} == {i.id for i in insumos.values()}


def test_calculate_estimated_insumos_unknown_rubro(db, obra):
    with pytest.raises(NotFoundException):
        calculate_estimated_insumos(db, 999, 1, obra.id)


def test_estimate_rubro_cost_action_returns_tagged_result(db, rubro):
    ok = estimate_rubro_cost(db, rubro.id, 2)
    assert ok.success
    assert ok.data["costo_estimado"] == pytest.approx(6000)
    assert len(ok.data["insumos"]) == 3

    missing = estimate_rubro_cost(db, 999, 1)
    assert not missing.success
    assert missing.code == "not_found"
    assert missing.error == "Rubro no encontrado"
