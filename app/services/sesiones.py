# app/services/sesiones.py
"""
Máquina de estados de sesiones.

Sólo se sale de `programada`. `completada` y `plan_casero` exigen que la
evolución exista; el flujo en dos pasos (guardar evolución, después cambiar el
estado) queda registrado en `pending_completions` para poder retomarlo o
descartarlo si se corta a mitad de camino.
"""
import logging
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import ContextoSesion
from app.core.errors import ErrorAutorizacion, ErrorConsistencia, ErrorValidacion, NoEncontrado
from app.db.models import CompletadoPendiente, Evolucion, OrdenMedica, Sesion
from app.services.agenda import cerrar_orden_si_corresponde

logger = logging.getLogger(__name__)

DESTINOS = {"completada", "cancelada", "plan_casero"}
ESTADOS_COMPLETOS = {"completada", "plan_casero"}


async def get_sesion(db: AsyncSession, session_id: int) -> Sesion:
    sesion = await db.get(Sesion, session_id)
    if not sesion:
        raise NoEncontrado("Sesión no encontrada")
    return sesion


def validar_terapeuta_asignado(ctx: ContextoSesion, orden: OrdenMedica) -> None:
    """Sólo el terapeuta de la orden opera sus sesiones; un admin tampoco."""
    if ctx.es_admin or ctx.therapist_id is None or ctx.therapist_id != orden.therapist_id:
        logger.warning("user_id=%s no es el terapeuta asignado de la orden %s", ctx.user_id, orden.id)
        raise ErrorAutorizacion("Solo el terapeuta asignado puede modificar esta sesión")


async def tiene_evolucion(db: AsyncSession, session_id: int) -> bool:
    evo_id = (await db.execute(
        select(Evolucion.id).where(Evolucion.session_id == session_id)
    )).scalar_one_or_none()
    return evo_id is not None


async def sesion_anterior(db: AsyncSession, sesion: Sesion) -> Optional[Sesion]:
    """
    Sesión con número inmediato anterior. Si fue reprogramada se toma la cabeza
    de la cadena (la que no tiene sucesora).
    """
    stmt = (
        select(Sesion)
        .where(
            Sesion.medical_order_id == sesion.medical_order_id,
            Sesion.numero_sesion == sesion.numero_sesion - 1,
            Sesion.reprogramada_a.is_(None),
        )
        .order_by(Sesion.id.desc())
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def validar_transicion(
    db: AsyncSession,
    ctx: ContextoSesion,
    sesion: Sesion,
    target_state: str,
    notas: Optional[str] = None,
    requiere_evolucion: bool = True,
) -> None:
    """Todas las guardas; no escribe nada."""
    orden = sesion.orden

    if target_state not in DESTINOS:
        raise ErrorValidacion(f"Estado destino inválido: {target_state}")

    validar_terapeuta_asignado(ctx, orden)

    if orden.estado != "activa":
        raise ErrorConsistencia("La orden está cerrada")
    if sesion.estado != "programada":
        raise ErrorConsistencia(f"La sesión está {sesion.estado}; sólo se modifican sesiones programadas")

    if target_state == "cancelada":
        if not (notas or "").strip():
            raise ErrorValidacion("Debe indicar el motivo de la cancelación")
        return

    if target_state == "plan_casero":
        if sesion.numero_sesion == 1:
            raise ErrorConsistencia("La primera sesión no puede ser plan casero")
        if sesion.numero_sesion == orden.total_sesiones:
            raise ErrorConsistencia("La última sesión no puede ser plan casero")
        anterior = await sesion_anterior(db, sesion)
        if anterior is None or anterior.estado not in ESTADOS_COMPLETOS:
            raise ErrorConsistencia("La sesión anterior debe estar completada o en plan casero")

    if requiere_evolucion and not await tiene_evolucion(db, sesion.id):
        raise ErrorConsistencia("Debe registrar la evolución antes de completar la sesión")


async def _aplicar(db: AsyncSession, sesion: Sesion, target_state: str, notas: Optional[str] = None) -> Sesion:
    valores = {"estado": target_state}
    if target_state == "cancelada":
        valores["notas_cancelacion"] = notas.strip()

    # condicional: si otro request ya la movió, no pisamos
    res = await db.execute(
        update(Sesion)
        .where(Sesion.id == sesion.id, Sesion.estado == "programada")
        .values(**valores)
    )
    if res.rowcount != 1:
        raise ErrorConsistencia("La sesión fue modificada por otro usuario")

    if target_state in ESTADOS_COMPLETOS:
        orden = sesion.orden
        orden.sesiones_completadas = min(orden.sesiones_completadas + 1, orden.total_sesiones)
        cerrar_orden_si_corresponde(orden)

    await db.execute(delete(CompletadoPendiente).where(CompletadoPendiente.session_id == sesion.id))
    await db.flush()

    logger.info(
        "Sesión %s (orden %s, n° %s) -> %s",
        sesion.id, sesion.medical_order_id, sesion.numero_sesion, target_state,
    )
    return sesion


async def transition_session(
    db: AsyncSession,
    ctx: ContextoSesion,
    session_id: int,
    target_state: str,
    notas: Optional[str] = None,
) -> Sesion:
    """Cambia el estado de una sesión programada. Sin commit."""
    sesion = await get_sesion(db, session_id)
    await validar_transicion(db, ctx, sesion, target_state, notas)
    return await _aplicar(db, sesion, target_state, notas)


async def get_pendiente(db: AsyncSession, session_id: int) -> Optional[CompletadoPendiente]:
    return (await db.execute(
        select(CompletadoPendiente).where(CompletadoPendiente.session_id == session_id)
    )).scalar_one_or_none()


async def start_completion(
    db: AsyncSession,
    ctx: ContextoSesion,
    session_id: int,
    estado_objetivo: str = "completada",
) -> CompletadoPendiente:
    """
    Paso 1 del completado: valida las guardas (salvo la evolución, que todavía no
    existe) y registra la intención. La evolución, al guardarse, aplica el cambio.
    """
    if estado_objetivo not in ESTADOS_COMPLETOS:
        raise ErrorValidacion("El completado sólo admite 'completada' o 'plan_casero'")

    sesion = await get_sesion(db, session_id)
    await validar_transicion(db, ctx, sesion, estado_objetivo, requiere_evolucion=False)

    if await tiene_evolucion(db, sesion.id):
        raise ErrorConsistencia("La sesión ya tiene evolución; use reanudar completado")

    pendiente = await get_pendiente(db, sesion.id)
    if pendiente:
        pendiente.estado_objetivo = estado_objetivo
    else:
        pendiente = CompletadoPendiente(
            session_id=sesion.id,
            estado_objetivo=estado_objetivo,
            created_by=ctx.user_id,
        )
        db.add(pendiente)
    await db.flush()
    logger.info("Completado pendiente registrado sesión=%s objetivo=%s", sesion.id, estado_objetivo)
    return pendiente


async def aplicar_pendiente(db: AsyncSession, ctx: ContextoSesion, sesion: Sesion) -> Optional[Sesion]:
    """Usado al crear la evolución: si había intención de completar, se aplica."""
    pendiente = await get_pendiente(db, sesion.id)
    if not pendiente:
        return None
    await validar_transicion(db, ctx, sesion, pendiente.estado_objetivo)
    return await _aplicar(db, sesion, pendiente.estado_objetivo)


async def abandon_completion(db: AsyncSession, ctx: ContextoSesion, session_id: int) -> None:
    sesion = await get_sesion(db, session_id)
    validar_terapeuta_asignado(ctx, sesion.orden)
    pendiente = await get_pendiente(db, session_id)
    if not pendiente:
        raise NoEncontrado("No hay completado pendiente para esta sesión")
    await db.delete(pendiente)
    await db.flush()
    logger.info("Completado pendiente descartado sesión=%s", session_id)


async def resume_completion(
    db: AsyncSession,
    ctx: ContextoSesion,
    session_id: int,
    estado_objetivo: Optional[str] = None,
) -> Sesion:
    """
    Termina un flujo cortado: la evolución existe pero la sesión sigue programada.
    Usa el objetivo pendiente si lo hay; si no, el indicado o 'completada'.
    """
    sesion = await get_sesion(db, session_id)
    pendiente = await get_pendiente(db, session_id)
    objetivo = estado_objetivo or (pendiente.estado_objetivo if pendiente else "completada")
    if objetivo not in ESTADOS_COMPLETOS:
        raise ErrorValidacion("El completado sólo admite 'completada' o 'plan_casero'")

    await validar_transicion(db, ctx, sesion, objetivo)
    return await _aplicar(db, sesion, objetivo)
