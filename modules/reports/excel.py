from io import BytesIO
from typing import Any, Dict, List

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from core.currency import format_pesos, format_ur_with_pesos
from modules.work_orders.states import OTStatus

ESTADO_LABELS = {
    None: "-",
    OTStatus.BORRADOR.value: "Borrador",
    OTStatus.APROBADA.value: "Aprobada",
    OTStatus.EN_EJECUCION.value: "En ejecución",
    OTStatus.CERRADA.value: "Cerrada",
}


def _create_styles():
    """Create reusable style definitions."""
    thin_border = Side(style="thin", color="000000")
    return {
        "title_font": Font(bold=True, size=14),
        "section_font": Font(bold=True, size=11),
        "label_font": Font(bold=True),
        "header_font": Font(bold=True, size=10),
        "header_fill": PatternFill(start_color="D9E1F2", end_color="D9E1F2", fill_type="solid"),
        "warning_fill": PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid"),
        "total_font": Font(bold=True),
        "border": Border(left=thin_border, right=thin_border, top=thin_border, bottom=thin_border),
        "center_align": Alignment(horizontal="center", vertical="center"),
        "right_align": Alignment(horizontal="right", vertical="center"),
        "left_align": Alignment(horizontal="left", vertical="center", wrap_text=True),
    }


def _apply_header_row(ws, row: int, columns: List[str], styles: dict):
    for col_idx, col_name in enumerate(columns, start=1):
        cell = ws.cell(row=row, column=col_idx, value=col_name)
        cell.font = styles["header_font"]
        cell.fill = styles["header_fill"]
        cell.border = styles["border"]
        cell.alignment = styles["center_align"]


def _apply_data_row(ws, row: int, values: List[Any], styles: dict, alignments: List[str] = None):
    for col_idx, value in enumerate(values, start=1):
        cell = ws.cell(row=row, column=col_idx, value=value)
        cell.border = styles["border"]
        if alignments and col_idx <= len(alignments):
            cell.alignment = styles.get(f"{alignments[col_idx - 1]}_align", styles["left_align"])


def _write_pairs(ws, row: int, pairs: List[tuple], styles: dict) -> int:
    for label, value in pairs:
        ws.cell(row=row, column=1, value=label).font = styles["label_font"]
        ws.cell(row=row, column=2, value=value)
        row += 1
    return row


def _set_column_widths(ws, widths: List[int]):
    for col_idx, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(col_idx)].width = width


def _format_quantity(value: float) -> str:
    if value is None:
        return "-"
    return f"{value:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")


def _format_date(value: Any) -> str:
    if not value:
        return "-"
    return str(value)[:10]


def _format_rubro_budget(rubro: Dict[str, Any]) -> str:
    # Budgets set in UR show their peso equivalent at the configured rate
    if rubro.get("presupuesto_ur") is not None:
        return format_ur_with_pesos(rubro["presupuesto_ur"])
    return format_pesos(rubro.get("presupuesto"))


def _format_user(entry: Dict[str, Any]) -> str:
    nombre = entry.get("usuario")
    if not nombre:
        return "-"
    rol = entry.get("usuario_rol")
    return f"{nombre} ({rol})" if rol else nombre


def build_work_order_excel(detail: Dict[str, Any]) -> BytesIO:
    """Render a work order detail (as returned by the detail read) into an xlsx stream."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Orden de Trabajo"
    styles = _create_styles()

    obra = detail.get("obra") or {}
    rubro = detail.get("rubro") or {}
    summary = detail.get("cost_summary") or {}
    insumos = detail.get("insumos_estimados", [])
    historial = detail.get("historial", [])

    current_row = 1

    # === ENCABEZADO ===
    title = f"ORDEN DE TRABAJO {detail.get('codigo', '')}".strip()
    ws.cell(row=current_row, column=1, value=title).font = styles["title_font"]
    ws.merge_cells(start_row=current_row, start_column=1, end_row=current_row, end_column=5)
    current_row += 2

    current_row = _write_pairs(
        ws,
        current_row,
        [
            ("Obra:", obra.get("nombre", "-")),
            ("Rubro:", rubro.get("nombre", "-")),
            ("Presupuesto rubro:", _format_rubro_budget(rubro)),
            ("Descripción:", detail.get("descripcion", "-")),
            ("Cantidad:", f"{_format_quantity(detail.get('cantidad'))} {rubro.get('unidad', '')}".strip()),
            ("Estado:", ESTADO_LABELS.get(detail.get("estado"), detail.get("estado"))),
            ("Fecha inicio:", _format_date(detail.get("fecha_inicio"))),
            ("Fecha fin:", _format_date(detail.get("fecha_fin"))),
        ],
        styles,
    )
    current_row += 1

    # === COSTOS ===
    ws.cell(row=current_row, column=1, value="RESUMEN DE COSTOS").font = styles["section_font"]
    current_row += 1

    desvio = summary.get("desvio")
    current_row = _write_pairs(
        ws,
        current_row,
        [
            ("Costo estimado:", format_pesos(detail.get("costo_estimado"))),
            ("Costo real:", format_pesos(detail.get("costo_real"))),
            ("Desvío:", format_pesos(desvio)),
            ("Desvío (%):", f"{summary['desvio_porcentaje']:.1f}%" if "desvio_porcentaje" in summary else "-"),
        ],
        styles,
    )
    if desvio is not None and desvio > 0:
        for col in (1, 2):
            ws.cell(row=current_row - 2, column=col).fill = styles["warning_fill"]
    current_row += 1

    # === INSUMOS ESTIMADOS ===
    ws.cell(row=current_row, column=1, value="INSUMOS ESTIMADOS").font = styles["section_font"]
    current_row += 1

    _apply_header_row(ws, current_row, ["Insumo", "Unidad", "Cantidad", "Precio unitario", "Subtotal"], styles)
    current_row += 1

    insumo_alignments = ["left", "center", "right", "right", "right"]
    total = 0.0
    for line in insumos:
        cantidad = line.get("cantidad_estimada") or 0.0
        precio = line.get("precio_estimado") or 0.0
        subtotal = cantidad * precio
        total += subtotal
        row_values = [
            line.get("nombre") or "-",
            line.get("unidad") or "-",
            _format_quantity(cantidad),
            format_pesos(precio),
            format_pesos(subtotal),
        ]
        _apply_data_row(ws, current_row, row_values, styles, insumo_alignments)
        if not precio:
            for col in range(1, 6):
                ws.cell(row=current_row, column=col).fill = styles["warning_fill"]
        current_row += 1

    _apply_data_row(ws, current_row, ["TOTAL", "", "", "", format_pesos(total)], styles, insumo_alignments)
    for col in range(1, 6):
        ws.cell(row=current_row, column=col).font = styles["total_font"]
    current_row += 2

    # === HISTORIAL ===
    if historial:
        ws.cell(row=current_row, column=1, value="HISTORIAL").font = styles["section_font"]
        current_row += 1

        _apply_header_row(ws, current_row, ["Fecha", "Estado anterior", "Estado nuevo", "Usuario", "Notas"], styles)
        current_row += 1

        history_alignments = ["center", "center", "center", "left", "left"]
        for entry in historial:
            row_values = [
                _format_date(entry.get("created_at")),
                ESTADO_LABELS.get(entry.get("estado_anterior"), entry.get("estado_anterior")),
                ESTADO_LABELS.get(entry.get("estado_nuevo"), entry.get("estado_nuevo")),
                _format_user(entry),
                entry.get("notas") or "",
            ]
            _apply_data_row(ws, current_row, row_values, styles, history_alignments)
            current_row += 1

    _set_column_widths(ws, [22, 18, 16, 18, 48])

    stream = BytesIO()
    wb.save(stream)
    stream.seek(0)
    return stream
