# app/services/reprogramacion.py
import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.auth.deps import ContextoSesion
from app.core.errors import ErrorAutorizacion, ErrorConsistencia, ErrorValidacion
from app.db.models import OrdenMedica, Sesion
from app.services.sesiones import get_sesion

logger = logging.getLogger(__name__)


def _hora_fin_equivalente(original: Sesion, new_time: time) -> Optional[time]:
    """Conserva la duración de la sesión original si tenía hora de fin."""
    if not original.hora_fin:
        return None
    base = date(2000, 1, 1)
    duracion = datetime.combine(base, original.hora_fin) - datetime.combine(base, original.hora_inicio)
    if duracion <= timedelta(0):
        return None
    fin = datetime.combine(base, new_time) + duracion
    if fin.date() != base:
        return None
    return fin.time()


async def reschedule_session(
    db: AsyncSession,
    ctx: ContextoSesion,
    original_session_id: int,
    new_date: date,
    new_time: time,
    today: Optional[date] = None,
) -> tuple[Sesion, Sesion]:
    """
    Convierte una sesión cancelada en una nueva sesión programada:
    inserta la sucesora (mismo número y ubicación) y marca la original como
    `reprogramada` apuntando a ella. Todo en la transacción del caller.
    """
    if not ctx.es_admin:
        raise ErrorAutorizacion("Solo un administrador puede reprogramar sesiones")

    today = today or date.today()
    if new_date < today:
        raise ErrorValidacion("La nueva fecha no puede ser anterior a hoy")

    original = await get_sesion(db, original_session_id)
    if original.reprogramada_a is not None:
        raise ErrorConsistencia("La sesión ya fue reprogramada")
    if original.estado != "cancelada":
        raise ErrorConsistencia("Sólo se reprograman sesiones canceladas")
    if original.orden.estado != "activa":
        raise ErrorConsistencia("La orden está cerrada")

    sucesora = Sesion(
        medical_order_id=original.medical_order_id,
        numero_sesion=original.numero_sesion,
        fecha_programada=new_date,
        hora_inicio=new_time,
        hora_fin=_hora_fin_equivalente(original, new_time),
        ubicacion=original.ubicacion,
        estado="programada",
        reprogramada_de=original.id,
    )
    db.add(sucesora)
    await db.flush()

    res = await db.execute(
        update(Sesion)
        .where(
            Sesion.id == original.id,
            Sesion.estado == "cancelada",
            Sesion.reprogramada_a.is_(None),
        )
        .values(estado="reprogramada", reprogramada_a=sucesora.id)
    )
    if res.rowcount != 1:
        # otro admin la reprogramó en paralelo; el caller hace rollback de la sucesora
        raise ErrorConsistencia("La sesión ya fue reprogramada")
    await db.flush()

    logger.info(
        "Sesión %s reprogramada -> %s (%s %s)",
        original.id, sucesora.id, new_date.isoformat(), new_time.strftime("%H:%M"),
    )
    return original, sucesora


async def list_pending_reschedules(db: AsyncSession, therapist_id: Optional[int] = None) -> list[Sesion]:
    """Canceladas sin sucesora, ordenadas por fecha."""
    stmt = (
        select(Sesion)
        .join(OrdenMedica, OrdenMedica.id == Sesion.medical_order_id)
        .where(Sesion.estado == "cancelada", Sesion.reprogramada_a.is_(None))
        .order_by(Sesion.fecha_programada, Sesion.hora_inicio)
    )
    if therapist_id is not None:
        stmt = stmt.where(OrdenMedica.therapist_id == therapist_id)
    return list((await db.execute(stmt)).scalars().all())


async def reconcile_reschedules(db: AsyncSession) -> int:
    """
    Repara reprogramaciones a medio aplicar: existe la sucesora (reprogramada_de
    apunta a la original) pero la original no quedó actualizada.
    Devuelve cuántas originales se corrigieron.
    """
    sucesora = aliased(Sesion)
    stmt = (
        select(Sesion, sucesora.id)
        .join(sucesora, sucesora.reprogramada_de == Sesion.id)
        .where(Sesion.reprogramada_a.is_(None))
        .order_by(Sesion.id, sucesora.id)
    )
    filas = (await db.execute(stmt)).all()

    corregidas = 0
    vistas: set[int] = set()
    for original, sucesora_id in filas:
        if original.id in vistas:
            logger.warning("Sesión %s tiene más de una sucesora; se enlaza la primera", original.id)
            continue
        vistas.add(original.id)
        original.estado = "reprogramada"
        original.reprogramada_a = sucesora_id
        corregidas += 1

    if corregidas:
        await db.flush()
        logger.info("Reconciliación de reprogramaciones: %s corregidas", corregidas)
    return corregidas
