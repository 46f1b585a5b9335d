# app/services/mail_templates.py
from __future__ import annotations
from html import escape
from datetime import date, datetime, time
from typing import Optional, Tuple

BRAND = {
    "name": "ERP Clínico",
    "primary": "#0F766E",
    "success": "#16A34A",
    "danger": "#EF4444",
    "gray900": "#0F172A",
    "gray700": "#334155",
    "gray500": "#64748B",
    "gray100": "#F1F5F9",
    "bg": "#ffffff",
}

ESPECIALIDAD_LABEL = {
    "fisioterapia": "Fisioterapia",
    "fonoaudiologia": "Fonoaudiología",
    "terapia_ocupacional": "Terapia Ocupacional",
    "psicologia": "Psicología",
    "terapia_acuatica": "Terapia Acuática",
}

ESTADO_SESION_LABEL = {
    "programada": "Programada",
    "completada": "Completada",
    "cancelada": "Cancelada",
    "reprogramada": "Reprogramada",
    "plan_casero": "Plan casero",
}

MESES = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]


def _esc(s: Optional[str]) -> str:
    return escape(s or "")


def _fmt_date(d: Optional[datetime | date | str]) -> str:
    """Devuelve DD de <mes> de YYYY. Acepta str ISO, date o datetime."""
    if d is None or d == "":
        return "-"
    if isinstance(d, str):
        try:
            d = datetime.fromisoformat(d.replace("Z", "+00:00"))
        except ValueError:
            return "-"
    if isinstance(d, datetime):
        d = d.date()
    if not isinstance(d, date):
        return "-"
    return f"{d.day:02d} de {MESES[d.month - 1]} de {d.year}"


def _fmt_time(t: Optional[time]) -> str:
    return t.strftime("%H:%M") if t else "-"


def _wrap_base(status_badge: str, preheader: str, body_inner_html: str) -> str:
    return f"""<!doctype html>
<html lang="es"><head><meta charset="utf-8"><meta name="viewport" content="width=device-width">
<title>{_esc(BRAND['name'])}</title>
</head>
<body style="margin:0;background:{BRAND['gray100']};font-family:Arial,Helvetica,sans-serif;line-height:1.5;">
<div style="display:none;max-height:0;overflow:hidden;opacity:0;color:transparent;height:0;">{_esc(preheader)}</div>
<table role="presentation" width="100%" cellspacing="0" cellpadding="0" border="0"><tr><td align="center" style="padding:32px 16px;">
<table role="presentation" width="100%" cellpadding="0" cellspacing="0" border="0" style="max-width:620px;background:{BRAND['bg']};padding:28px;border-radius:16px;">
<tr><td style="text-align:center;padding-bottom:8px;">
  <div style="font-size:20px;font-weight:700;color:{BRAND['gray900']};">{_esc(BRAND['name'])}</div>
</td></tr>
<tr><td style="padding:24px;border:1px solid #E2E8F0;border-radius:12px;">
  <div style="text-align:center;margin-bottom:16px;">{status_badge}</div>
  {body_inner_html}
</td></tr>
<tr><td style="text-align:center;padding-top:16px;color:{BRAND['gray500']};font-size:12px;">
  Este es un mensaje automático. No respondas a este correo.
</td></tr>
</table>
</td></tr></table>
</body></html>"""


def build_welcome_therapist_email(
    *,
    name: str,
    email: str,
    especialidad: str,
    login_url: Optional[str] = None,
) -> Tuple[str, str]:
    esp = ESPECIALIDAD_LABEL.get(especialidad, especialidad)
    badge = f'<span style="display:inline-block;background:{BRAND["success"]};color:#fff;font-weight:700;font-size:12px;padding:6px 10px;border-radius:999px;">CUENTA CREADA</span>'
    preheader = "Tu cuenta de terapeuta está lista."
    link = (
        f'<div style="text-align:center;margin-top:18px;"><a href="{_esc(login_url)}" style="display:inline-block;background:{BRAND["primary"]};color:#fff;text-decoration:none;font-weight:700;font-size:14px;padding:12px 18px;border-radius:10px;">Ingresar</a></div>'
        if login_url else ""
    )

    body = f"""
  <h1 style="margin:0 0 8px 0;font-size:22px;color:{BRAND['gray900']};text-align:center;">Bienvenido/a, {_esc(name)}</h1>
  <p style="margin:0 0 16px 0;color:{BRAND['gray700']};text-align:center;">Se creó tu cuenta de terapeuta en {_esc(BRAND['name'])}.</p>
  <table role="presentation" width="100%" cellpadding="0" cellspacing="0" border="0">
    <tr><td style="padding:10px 0;border-bottom:1px solid #E2E8F0;"><strong>Usuario:</strong> {_esc(email)}</td></tr>
    <tr><td style="padding:10px 0;border-bottom:1px solid #E2E8F0;"><strong>Especialidad:</strong> {_esc(esp)}</td></tr>
  </table>
  <p style="margin:16px 0 0 0;color:{BRAND['gray700']}">La contraseña inicial te la entrega la administración. Cambiala en tu primer ingreso.</p>
  {link}
    """

    html = _wrap_base(badge, preheader, body)
    text = f"""Bienvenido/a, {name}

Se creó tu cuenta de terapeuta en {BRAND['name']}.
Usuario: {email}
Especialidad: {esp}

La contraseña inicial te la entrega la administración. Cambiala en tu primer ingreso.
"""
    return html, text


def _fila(label: str, valor: Optional[str]) -> str:
    return (
        f'<tr><th style="text-align:left;padding:6px 8px;width:35%;color:{BRAND["gray700"]};">{_esc(label)}</th>'
        f'<td style="padding:6px 8px;">{_esc(valor) or "-"}</td></tr>'
    )


def _bloque(titulo: str, contenido: Optional[str]) -> str:
    if not contenido:
        return ""
    texto = _esc(contenido).replace("\n", "<br/>")
    return f'<h3 style="margin:16px 0 4px 0;font-size:15px;">{_esc(titulo)}</h3><p style="margin:0;">{texto}</p>'


def build_evolucion_document(*, paciente, orden, sesion, evolucion, terapeuta) -> str:
    """
    HTML imprimible de una evolución clínica (paciente, orden, sesión, nota y firma).
    """
    esp = ESPECIALIDAD_LABEL.get(orden.especialidad, orden.especialidad)
    firma = (
        f'<img src="{_esc(evolucion.firma_url)}" alt="Firma" style="max-height:80px;"/>'
        if evolucion.firma_url else '<div style="height:60px;"></div>'
    )
    cierre = (
        f'<p style="margin:8px 0;font-weight:700;color:{BRAND["primary"]};">Evolución de cierre</p>'
        if evolucion.es_cierre else ""
    )

    return f"""<!doctype html>
<html lang="es"><head><meta charset="utf-8">
<title>Evolución sesión {sesion.numero_sesion} - {_esc(paciente.nombre_completo)}</title>
<style>@media print{{body{{margin:0}}}} table{{border-collapse:collapse;width:100%}} th,td{{border:1px solid #E2E8F0;font-size:13px}}</style>
</head>
<body style="font-family:Arial,Helvetica,sans-serif;color:{BRAND['gray900']};max-width:800px;margin:24px auto;">
<h1 style="font-size:20px;margin:0;">{_esc(BRAND['name'])}</h1>
<h2 style="font-size:16px;margin:4px 0 16px 0;color:{BRAND['gray700']};">Evolución clínica - {_esc(esp)}</h2>

<h3 style="font-size:15px;">Paciente</h3>
<table>
{_fila("Nombre", paciente.nombre_completo)}
{_fila("Cédula", paciente.cedula)}
{_fila("Fecha de nacimiento", _fmt_date(paciente.fecha_nacimiento))}
{_fila("EPS", paciente.eps)}
</table>

<h3 style="font-size:15px;">Orden médica</h3>
<table>
{_fila("Código", orden.codigo_orden)}
{_fila("Diagnóstico", orden.diagnostico)}
{_fila("Sesión", f"{sesion.numero_sesion} de {orden.total_sesiones}")}
{_fila("Fecha", _fmt_date(sesion.fecha_programada))}
{_fila("Horario", f"{_fmt_time(sesion.hora_inicio)} - {_fmt_time(sesion.hora_fin)}")}
{_fila("Ubicación", sesion.ubicacion)}
{_fila("Estado", ESTADO_SESION_LABEL.get(sesion.estado, sesion.estado))}
</table>

<h3 style="font-size:15px;">Evolución</h3>
{cierre}
{_bloque("Contenido", evolucion.contenido)}
{_bloque("Procedimientos", evolucion.procedimientos)}
{_bloque("Plan de tratamiento", evolucion.plan_tratamiento)}
{_bloque("Recomendaciones", evolucion.recomendaciones)}
{_bloque("Concepto profesional", evolucion.concepto_profesional)}
{_bloque("Evaluación final", evolucion.evaluacion_final)}

<div style="margin-top:32px;">
  {firma}
  <div style="border-top:1px solid {BRAND['gray900']};width:260px;padding-top:4px;">
    {_esc(terapeuta.nombre_completo)}<br/>
    <span style="color:{BRAND['gray500']};font-size:12px;">C.C. {_esc(terapeuta.cedula)} · {_esc(esp)}</span>
  </div>
  <p style="color:{BRAND['gray500']};font-size:12px;">Registrada el {_esc(_fmt_date(evolucion.created_at))}</p>
</div>
</body></html>"""
