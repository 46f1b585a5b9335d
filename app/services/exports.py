from typing import Any, Dict, List
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment
from openpyxl.utils import get_column_letter

from app.services.mail_templates import ESPECIALIDAD_LABEL, MESES


# ---------------------------
# Helpers de formato Excel
# ---------------------------
def _autosize(ws) -> None:
    for col_idx, column_cells in enumerate(ws.columns, start=1):
        max_length = 0
        for cell in column_cells:
            val = "" if cell.value is None else str(cell.value)
            max_length = max(max_length, len(val))
        ws.column_dimensions[get_column_letter(col_idx)].width = min(max_length + 2, 60)


def _header(ws, row: int, values: List[str]) -> None:
    for col, val in enumerate(values, start=1):
        c = ws.cell(row=row, column=col, value=val)
        c.font = Font(bold=True)
        c.alignment = Alignment(vertical="center")


NOMINA_COLUMNAS = [
    "Terapeuta", "Especialidad", "Sesiones Intra", "Sesiones Domi",
    "Subtotal Intra", "Subtotal Domi", "Total",
]


# ---------------------------
# Armado del Excel
# ---------------------------
def build_excel_nomina(periodo: Dict[str, Any], filas: List[Dict[str, Any]]) -> bytes:
    """
    periodo: {mes, anio, estado}
    filas: [{terapeuta, especialidad, sesiones_intramural, sesiones_domiciliaria,
             subtotal_intramural, subtotal_domiciliaria, total_bruto}]
    Devuelve el .xlsx en bytes con una hoja "Nómina" y una fila de totales.
    """
    mes = int(periodo["mes"])
    anio = int(periodo["anio"])

    wb = Workbook()
    ws = wb.active
    ws.title = "Nómina"

    titulo = ws.cell(row=1, column=1, value=f"Nómina {MESES[mes - 1]} {anio} ({periodo.get('estado', '')})")
    titulo.font = Font(bold=True, size=13)

    _header(ws, 3, NOMINA_COLUMNAS)

    fila = 4
    tot_intra = tot_domi = 0.0
    tot_total = 0.0
    for f in filas:
        sub_intra = float(f.get("subtotal_intramural") or 0)
        sub_domi = float(f.get("subtotal_domiciliaria") or 0)
        total = float(f.get("total_bruto") or 0)
        ws.append([
            f.get("terapeuta") or "",
            ESPECIALIDAD_LABEL.get(f.get("especialidad"), f.get("especialidad") or ""),
            int(f.get("sesiones_intramural") or 0),
            int(f.get("sesiones_domiciliaria") or 0),
            sub_intra,
            sub_domi,
            total,
        ])
        for col in (5, 6, 7):
            ws.cell(row=fila, column=col).number_format = "#,##0.00"
        tot_intra += sub_intra
        tot_domi += sub_domi
        tot_total += total
        fila += 1

    ws.cell(row=fila, column=1, value="TOTAL").font = Font(bold=True)
    for col, val in ((5, tot_intra), (6, tot_domi), (7, tot_total)):
        c = ws.cell(row=fila, column=col, value=round(val, 2))
        c.font = Font(bold=True)
        c.number_format = "#,##0.00"

    _autosize(ws)

    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()
