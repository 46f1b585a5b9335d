# app/services/evoluciones.py
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import ContextoSesion
from app.core.config import settings
from app.core.errors import ErrorAutorizacion, ErrorConsistencia, ErrorValidacion, NoEncontrado
from app.db.models import EvaluacionInicial, Evolucion, OrdenMedica, Sesion, TherapistProfile
from app.services.sesiones import aplicar_pendiente, get_sesion, validar_terapeuta_asignado

logger = logging.getLogger(__name__)

CONTENIDO_MIN = 10
CAMPOS_EDITABLES = (
    "contenido",
    "procedimientos",
    "plan_tratamiento",
    "recomendaciones",
    "concepto_profesional",
    "evaluacion_final",
    "es_cierre",
)
CAMPOS_EVALUACION_REQUERIDOS = ("diagnostico_cie10", "objetivos_generales", "plan_intervencion")
CAMPOS_EVALUACION_OPCIONALES = (
    "codigo_cie10",
    "funciones_corporales",
    "estructuras_corporales",
    "actividades_participacion",
    "factores_ambientales",
    "factores_personales",
    "objetivos_especificos",
    "frecuencia_sesiones",
    "duracion_estimada",
)


@dataclass(frozen=True)
class EstadoBloqueo:
    editable: bool
    horas_restantes: float
    bloqueado: bool


def _utc(dt: datetime) -> datetime:
    # sqlite devuelve naive; se asume UTC
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def estado_bloqueo(evolucion: Evolucion, now: Optional[datetime] = None) -> EstadoBloqueo:
    """
    editable = no bloqueada y menos de N horas desde la creación.
    A las N horas exactas ya no es editable.
    """
    ventana = float(settings.EVOLUCION_HORAS_EDICION)
    now = _utc(now or datetime.now(timezone.utc))
    creada = _utc(evolucion.created_at) if evolucion.created_at else now
    horas = (now - creada).total_seconds() / 3600.0

    restantes = round(max(0.0, ventana - horas), 2)
    editable = (not evolucion.bloqueado) and horas < ventana
    return EstadoBloqueo(
        editable=editable,
        horas_restantes=restantes if editable else 0.0,
        bloqueado=bool(evolucion.bloqueado) or horas >= ventana,
    )


def _texto(valor: Any) -> Optional[str]:
    if valor is None:
        return None
    valor = str(valor).strip()
    return valor or None


def _validar_contenido(contenido: Optional[str]) -> str:
    contenido = (contenido or "").strip()
    if len(contenido) < CONTENIDO_MIN:
        raise ErrorValidacion(f"El contenido debe tener al menos {CONTENIDO_MIN} caracteres")
    return contenido


async def get_evolucion(db: AsyncSession, evolucion_id: int) -> Evolucion:
    evo = await db.get(Evolucion, evolucion_id)
    if not evo:
        raise NoEncontrado("Evolución no encontrada")
    return evo


async def get_evaluacion_inicial(db: AsyncSession, order_id: int) -> Optional[EvaluacionInicial]:
    return (await db.execute(
        select(EvaluacionInicial).where(EvaluacionInicial.medical_order_id == order_id)
    )).scalar_one_or_none()


async def sesiones_previas_sin_evolucion(db: AsyncSession, sesion: Sesion) -> list[Sesion]:
    """Sesiones anteriores (por fecha y hora) de la orden, no canceladas, sin evolución."""
    anterior = or_(
        Sesion.fecha_programada < sesion.fecha_programada,
        and_(Sesion.fecha_programada == sesion.fecha_programada, Sesion.hora_inicio < sesion.hora_inicio),
    )
    stmt = (
        select(Sesion)
        .outerjoin(Evolucion, Evolucion.session_id == Sesion.id)
        .where(
            Sesion.medical_order_id == sesion.medical_order_id,
            Sesion.id != sesion.id,
            Sesion.estado.not_in(("cancelada", "reprogramada")),
            Evolucion.id.is_(None),
            anterior,
        )
        .order_by(Sesion.fecha_programada, Sesion.hora_inicio)
    )
    return list((await db.execute(stmt)).scalars().all())


async def canceladas_previas_sin_reprogramar(db: AsyncSession, sesion: Sesion) -> list[Sesion]:
    anterior = or_(
        Sesion.fecha_programada < sesion.fecha_programada,
        and_(Sesion.fecha_programada == sesion.fecha_programada, Sesion.hora_inicio < sesion.hora_inicio),
    )
    stmt = select(Sesion).where(
        Sesion.medical_order_id == sesion.medical_order_id,
        Sesion.id != sesion.id,
        Sesion.estado == "cancelada",
        Sesion.reprogramada_a.is_(None),
        anterior,
    )
    return list((await db.execute(stmt)).scalars().all())


async def crear_evolucion(
    db: AsyncSession,
    ctx: ContextoSesion,
    session_id: int,
    datos: dict,
) -> Evolucion:
    """
    Registra la evolución de una sesión y, si había un completado pendiente,
    aplica la transición en la misma transacción. Sin commit.
    """
    contenido = _validar_contenido(datos.get("contenido"))

    sesion = await get_sesion(db, session_id)
    orden = sesion.orden
    validar_terapeuta_asignado(ctx, orden)

    if sesion.estado in ("cancelada", "reprogramada"):
        raise ErrorConsistencia(f"No se registran evoluciones de sesiones en estado {sesion.estado}")

    existente = (await db.execute(
        select(Evolucion.id).where(Evolucion.session_id == sesion.id)
    )).scalar_one_or_none()
    if existente:
        raise ErrorConsistencia("Ya existe una evolución para esta sesión")

    if sesion.numero_sesion == 1 and not await get_evaluacion_inicial(db, orden.id):
        raise ErrorConsistencia("Debe registrar la evaluación inicial antes de la primera evolución")

    pendientes = await sesiones_previas_sin_evolucion(db, sesion)
    if pendientes:
        numeros = ", ".join(str(s.numero_sesion) for s in pendientes)
        raise ErrorConsistencia(f"Hay sesiones anteriores sin evolución: {numeros}")

    canceladas = await canceladas_previas_sin_reprogramar(db, sesion)
    if canceladas:
        numeros = ", ".join(str(s.numero_sesion) for s in canceladas)
        raise ErrorConsistencia(f"Hay sesiones anteriores canceladas sin reprogramar: {numeros}")

    terapeuta = await db.get(TherapistProfile, ctx.therapist_id)

    evo = Evolucion(
        session_id=sesion.id,
        therapist_id=ctx.therapist_id,
        contenido=contenido,
        procedimientos=_texto(datos.get("procedimientos")),
        plan_tratamiento=_texto(datos.get("plan_tratamiento")),
        recomendaciones=_texto(datos.get("recomendaciones")),
        concepto_profesional=_texto(datos.get("concepto_profesional")),
        evaluacion_final=_texto(datos.get("evaluacion_final")),
        es_cierre=bool(datos.get("es_cierre", False)),
        firma_url=terapeuta.firma_digital_url if terapeuta else None,
        bloqueado=False,
    )
    db.add(evo)
    await db.flush()
    await db.refresh(evo)

    logger.info("Evolución %s creada para sesión %s", evo.id, sesion.id)
    await aplicar_pendiente(db, ctx, sesion)
    return evo


async def editar_evolucion(
    db: AsyncSession,
    ctx: ContextoSesion,
    evolucion_id: int,
    cambios: dict,
    now: Optional[datetime] = None,
) -> Evolucion:
    evo = await get_evolucion(db, evolucion_id)
    if ctx.es_admin or ctx.therapist_id != evo.therapist_id:
        raise ErrorAutorizacion("Solo el terapeuta autor puede editar la evolución")

    if not estado_bloqueo(evo, now).editable:
        logger.warning("Edición rechazada: evolución %s bloqueada", evo.id)
        raise ErrorConsistencia("La evolución está bloqueada y no puede editarse")

    for campo in CAMPOS_EDITABLES:
        if campo not in cambios:
            continue
        valor = cambios[campo]
        if campo == "contenido":
            valor = _validar_contenido(valor)
        elif campo == "es_cierre":
            valor = bool(valor)
        else:
            valor = _texto(valor)
        setattr(evo, campo, valor)

    await db.flush()
    await db.refresh(evo)
    logger.info("Evolución %s editada", evo.id)
    return evo


async def lock_evolution(db: AsyncSession, ctx: ContextoSesion, evolucion_id: int) -> Evolucion:
    if not ctx.es_admin:
        raise ErrorAutorizacion("Solo un administrador puede bloquear evoluciones")
    evo = await get_evolucion(db, evolucion_id)
    if not evo.bloqueado:
        evo.bloqueado = True
        evo.bloqueado_at = datetime.now(timezone.utc)
        await db.flush()
        await db.refresh(evo)
        logger.info("Evolución %s bloqueada por user_id=%s", evo.id, ctx.user_id)
    return evo


async def sync_expired_locks(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Persiste `bloqueado` en las evoluciones cuya ventana de edición ya venció.
    La regla de edición se sigue calculando en vivo; esto sólo deja el flag al día.
    """
    now = _utc(now or datetime.now(timezone.utc))
    candidatas = (await db.execute(
        select(Evolucion).where(Evolucion.bloqueado.is_(False))
    )).scalars().all()

    n = 0
    for evo in candidatas:
        if estado_bloqueo(evo, now).bloqueado:
            evo.bloqueado = True
            evo.bloqueado_at = now
            n += 1

    if n:
        await db.flush()
        logger.info("Barrido de bloqueos: %s evoluciones bloqueadas", n)
    return n


async def crear_evaluacion_inicial(
    db: AsyncSession,
    ctx: ContextoSesion,
    order_id: int,
    datos: dict,
) -> EvaluacionInicial:
    """Una por orden, sólo el terapeuta asignado. No hay camino de edición."""
    orden = await db.get(OrdenMedica, order_id)
    if not orden:
        raise NoEncontrado("Orden no encontrada")
    validar_terapeuta_asignado(ctx, orden)

    valores: dict[str, Optional[str]] = {}
    for campo in CAMPOS_EVALUACION_REQUERIDOS:
        valor = (datos.get(campo) or "").strip()
        if len(valor) < CONTENIDO_MIN:
            raise ErrorValidacion(f"{campo} debe tener al menos {CONTENIDO_MIN} caracteres")
        valores[campo] = valor
    for campo in CAMPOS_EVALUACION_OPCIONALES:
        valores[campo] = _texto(datos.get(campo))

    if await get_evaluacion_inicial(db, orden.id):
        raise ErrorConsistencia("La orden ya tiene evaluación inicial")

    ev = EvaluacionInicial(medical_order_id=orden.id, therapist_id=ctx.therapist_id, **valores)
    db.add(ev)
    await db.flush()
    await db.refresh(ev)
    logger.info("Evaluación inicial %s creada para orden %s", ev.id, orden.id)
    return ev


async def listar_evoluciones(
    db: AsyncSession,
    therapist_id: Optional[int] = None,
    patient_id: Optional[int] = None,
    order_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Evolucion]:
    stmt = (
        select(Evolucion)
        .join(Sesion, Sesion.id == Evolucion.session_id)
        .join(OrdenMedica, OrdenMedica.id == Sesion.medical_order_id)
        .order_by(Evolucion.created_at.desc(), Evolucion.id.desc())
        .limit(limit)
        .offset(offset)
    )
    if therapist_id is not None:
        stmt = stmt.where(Evolucion.therapist_id == therapist_id)
    if patient_id is not None:
        stmt = stmt.where(OrdenMedica.patient_id == patient_id)
    if order_id is not None:
        stmt = stmt.where(OrdenMedica.id == order_id)
    return list((await db.execute(stmt)).scalars().all())
