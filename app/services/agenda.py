# app/services/agenda.py
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import ErrorConsistencia, ErrorValidacion, NoEncontrado
from app.db.models import OrderTransfer, OrdenMedica, Paciente, Sesion, TherapistProfile

logger = logging.getLogger(__name__)

TOTAL_SESIONES_MAX = 100
ESPECIALIDADES_DOMICILIARIAS = {"fisioterapia", "fonoaudiologia", "terapia_ocupacional"}


@dataclass(frozen=True)
class SesionGenerada:
    numero_sesion: int
    fecha_programada: date
    hora_inicio: time
    ubicacion: str
    hora_fin: Optional[time] = None
    estado: str = "programada"


def normalizar_dias(weekdays: Iterable[int]) -> set[int]:
    """ISO 1=lunes..7=domingo; 0 se interpreta como domingo."""
    dias = set()
    for d in weekdays:
        d = int(d)
        if d == 0:
            d = 7
        if not 1 <= d <= 7:
            raise ErrorValidacion(f"Día de semana inválido: {d}")
        dias.add(d)
    return dias


def generate_sessions(
    start_date: date,
    start_time: time,
    count: int,
    weekdays: Iterable[int],
    location: str,
    end_time: Optional[time] = None,
    max_days: Optional[int] = None,
) -> list[SesionGenerada]:
    """
    Recorre día a día desde `start_date` (inclusive) y emite una sesión por cada
    día cuyo día ISO esté en `weekdays`, hasta juntar `count`.

    El recorrido se corta al pasar `start_date + max_days`; en ese caso devuelve
    menos de `count` sesiones y es el caller quien detecta la diferencia.
    """
    dias = normalizar_dias(weekdays)
    limite = start_date + timedelta(days=max_days if max_days is not None else settings.AGENDA_MAX_DIAS)

    sesiones: list[SesionGenerada] = []
    if count <= 0 or not dias:
        return sesiones

    actual = start_date
    numero = 1
    while numero <= count:
        if actual.isoweekday() in dias:
            sesiones.append(SesionGenerada(
                numero_sesion=numero,
                fecha_programada=actual,
                hora_inicio=start_time,
                hora_fin=end_time,
                ubicacion=location,
            ))
            numero += 1

        actual = actual + timedelta(days=1)
        if actual > limite:
            break

    return sesiones


async def _terapeuta_para(db: AsyncSession, therapist_id: int, especialidad: str) -> TherapistProfile:
    ter = await db.get(TherapistProfile, therapist_id)
    if not ter:
        raise NoEncontrado("Terapeuta no encontrado")
    if not ter.activo:
        raise ErrorConsistencia("El terapeuta está inactivo")
    if ter.especialidad != especialidad:
        raise ErrorValidacion("El terapeuta no corresponde a la especialidad de la orden")
    return ter


async def crear_orden_con_sesiones(
    db: AsyncSession,
    *,
    created_by: int,
    patient_id: int,
    therapist_id: int,
    especialidad: str,
    total_sesiones: int,
    ubicacion: str,
    fecha_inicio: date,
    hora_inicio: time,
    dias_semana: Iterable[int],
    hora_fin: Optional[time] = None,
    codigo_orden: Optional[str] = None,
    diagnostico: Optional[str] = None,
    observaciones: Optional[str] = None,
) -> tuple[OrdenMedica, list[Sesion]]:
    """
    Crea la orden y su agenda inicial en la misma transacción (sin commit).
    Si el calendario no alcanza para `total_sesiones` dentro del año, se rechaza.
    """
    if not 1 <= total_sesiones <= TOTAL_SESIONES_MAX:
        raise ErrorValidacion(f"total_sesiones debe estar entre 1 y {TOTAL_SESIONES_MAX}")
    if ubicacion == "domiciliaria" and especialidad not in ESPECIALIDADES_DOMICILIARIAS:
        raise ErrorValidacion("La atención domiciliaria no está disponible para esta especialidad")
    if hora_fin is not None and hora_fin <= hora_inicio:
        raise ErrorValidacion("hora_fin debe ser posterior a hora_inicio")

    paciente = await db.get(Paciente, patient_id)
    if not paciente:
        raise NoEncontrado("Paciente no encontrado")
    if not paciente.activo:
        raise ErrorConsistencia("El paciente está inactivo")
    await _terapeuta_para(db, therapist_id, especialidad)

    generadas = generate_sessions(fecha_inicio, hora_inicio, total_sesiones, dias_semana, ubicacion, hora_fin)
    if len(generadas) != total_sesiones:
        raise ErrorValidacion(
            f"Sólo se pudieron agendar {len(generadas)} de {total_sesiones} sesiones "
            f"dentro de {settings.AGENDA_MAX_DIAS} días"
        )

    orden = OrdenMedica(
        patient_id=patient_id,
        therapist_id=therapist_id,
        especialidad=especialidad,
        total_sesiones=total_sesiones,
        sesiones_completadas=0,
        ubicacion=ubicacion,
        estado="activa",
        codigo_orden=codigo_orden,
        diagnostico=diagnostico,
        observaciones=observaciones,
        created_by=created_by,
    )
    db.add(orden)
    await db.flush()

    sesiones = [
        Sesion(
            medical_order_id=orden.id,
            numero_sesion=g.numero_sesion,
            fecha_programada=g.fecha_programada,
            hora_inicio=g.hora_inicio,
            hora_fin=g.hora_fin,
            ubicacion=g.ubicacion,
            estado=g.estado,
        )
        for g in generadas
    ]
    db.add_all(sesiones)
    await db.flush()

    logger.info(
        "Orden %s creada: paciente=%s terapeuta=%s sesiones=%s desde %s",
        orden.id, patient_id, therapist_id, total_sesiones, fecha_inicio,
    )
    return orden, sesiones


async def transferir_orden(
    db: AsyncSession,
    *,
    order_id: int,
    to_therapist_id: int,
    motivo: str,
    transferred_by: int,
) -> OrderTransfer:
    """
    Reasigna la orden a otro terapeuta de la misma especialidad. El historial de
    sesiones y evoluciones queda como está; sólo cambia el terapeuta de la orden.
    """
    if not (motivo or "").strip():
        raise ErrorValidacion("El motivo de la transferencia es obligatorio")

    orden = await db.get(OrdenMedica, order_id)
    if not orden:
        raise NoEncontrado("Orden no encontrada")
    if orden.estado != "activa":
        raise ErrorConsistencia("Sólo se pueden transferir órdenes activas")
    if orden.therapist_id == to_therapist_id:
        raise ErrorValidacion("El terapeuta destino es el mismo que el actual")

    await _terapeuta_para(db, to_therapist_id, orden.especialidad)

    transferencia = OrderTransfer(
        medical_order_id=orden.id,
        from_therapist_id=orden.therapist_id,
        to_therapist_id=to_therapist_id,
        motivo=motivo.strip(),
        transferred_by=transferred_by,
    )
    db.add(transferencia)
    orden.therapist_id = to_therapist_id
    await db.flush()
    # terapeuta es selectin; tras cambiar el FK hay que recargarlo
    await db.refresh(orden, attribute_names=["terapeuta"])

    logger.info(
        "Orden %s transferida de terapeuta %s a %s",
        orden.id, transferencia.from_therapist_id, to_therapist_id,
    )
    return transferencia


def cerrar_orden_si_corresponde(orden: OrdenMedica) -> bool:
    if orden.estado == "activa" and orden.sesiones_completadas >= orden.total_sesiones:
        orden.estado = "cerrada"
        orden.closed_at = datetime.now(timezone.utc)
        logger.info("Orden %s cerrada (%s/%s sesiones)", orden.id, orden.sesiones_completadas, orden.total_sesiones)
        return True
    return False


async def agenda_terapeuta(
    db: AsyncSession,
    therapist_id: Optional[int],
    desde: date,
    hasta: date,
    estado: Optional[str] = None,
) -> list[Sesion]:
    stmt = (
        select(Sesion)
        .join(OrdenMedica, OrdenMedica.id == Sesion.medical_order_id)
        .where(Sesion.fecha_programada >= desde, Sesion.fecha_programada <= hasta)
        .order_by(Sesion.fecha_programada, Sesion.hora_inicio, Sesion.id)
    )
    if therapist_id is not None:
        stmt = stmt.where(OrdenMedica.therapist_id == therapist_id)
    if estado:
        stmt = stmt.where(Sesion.estado == estado)
    return list((await db.execute(stmt)).scalars().all())
