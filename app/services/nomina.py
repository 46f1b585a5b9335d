# app/services/nomina.py
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.auth.deps import ContextoSesion
from app.core.errors import ErrorConsistencia, ErrorValidacion, NoEncontrado
from app.db.models import DetalleNomina, OrdenMedica, PeriodoNomina, Sesion, TarifaTerapeuta, TherapistProfile

logger = logging.getLogger(__name__)

ESTADOS_PAGABLES = ("completada", "plan_casero")
CAMPOS_TARIFA = ("es_por_hora", "valor_sesion", "valor_sesion_domiciliaria", "valor_hora", "valor_hora_domiciliaria", "activo")


def to_dec(x) -> Decimal:
    try:
        return Decimal(str(x or "0")).quantize(Decimal("0.01"))
    except Exception:
        return Decimal("0")


def calcular_horas(hora_inicio: Optional[time], hora_fin: Optional[time]) -> Decimal:
    """hora_fin - hora_inicio si ambas están cargadas; si no, 1 hora."""
    if hora_inicio and hora_fin:
        inicio = hora_inicio.hour * 3600 + hora_inicio.minute * 60 + hora_inicio.second
        fin = hora_fin.hour * 3600 + hora_fin.minute * 60 + hora_fin.second
        if fin > inicio:
            return Decimal(fin - inicio) / Decimal(3600)
    return Decimal("1")


@dataclass
class SesionPagable:
    ubicacion: str
    hora_inicio: Optional[time] = None
    hora_fin: Optional[time] = None


@dataclass
class FilaNomina:
    therapist_id: int
    sesiones_intramural: int = 0
    sesiones_domiciliaria: int = 0
    horas_intramural: Decimal = Decimal("0.00")
    horas_domiciliaria: Decimal = Decimal("0.00")
    es_por_hora: bool = False
    tarifa_sesion_intramural: Optional[Decimal] = None
    tarifa_sesion_domiciliaria: Optional[Decimal] = None
    tarifa_hora_intramural: Optional[Decimal] = None
    tarifa_hora_domiciliaria: Optional[Decimal] = None
    subtotal_intramural: Decimal = Decimal("0.00")
    subtotal_domiciliaria: Decimal = Decimal("0.00")
    total_bruto: Decimal = Decimal("0.00")
    notas: Optional[str] = None
    advertencias: List[str] = field(default_factory=list)


def calcular_fila(
    therapist_id: int,
    nombre: str,
    sesiones: List[SesionPagable],
    tarifa: Optional[TarifaTerapeuta],
) -> FilaNomina:
    """
    Fila de nómina de un terapeuta. Sin tarifa: fila en cero y advertencia si
    hubo sesiones. La tarifa domiciliaria, si no está cargada, toma la intramural.
    """
    intra = [s for s in sesiones if s.ubicacion == "intramural"]
    domi = [s for s in sesiones if s.ubicacion == "domiciliaria"]
    horas_intra = sum((calcular_horas(s.hora_inicio, s.hora_fin) for s in intra), Decimal("0"))
    horas_domi = sum((calcular_horas(s.hora_inicio, s.hora_fin) for s in domi), Decimal("0"))

    fila = FilaNomina(
        therapist_id=therapist_id,
        sesiones_intramural=len(intra),
        sesiones_domiciliaria=len(domi),
        horas_intramural=to_dec(horas_intra),
        horas_domiciliaria=to_dec(horas_domi),
    )

    if tarifa is None:
        if intra or domi:
            fila.advertencias.append(f"{nombre} no tiene tarifas configuradas")
            fila.notas = "Sin tarifa configurada"
        return fila

    fila.es_por_hora = bool(tarifa.es_por_hora)
    fila.tarifa_sesion_intramural = tarifa.valor_sesion
    fila.tarifa_sesion_domiciliaria = tarifa.valor_sesion_domiciliaria
    fila.tarifa_hora_intramural = tarifa.valor_hora
    fila.tarifa_hora_domiciliaria = tarifa.valor_hora_domiciliaria

    if tarifa.es_por_hora:
        valor_intra = to_dec(tarifa.valor_hora)
        valor_domi = to_dec(tarifa.valor_hora_domiciliaria or tarifa.valor_hora)
        fila.subtotal_intramural = to_dec(horas_intra * valor_intra)
        fila.subtotal_domiciliaria = to_dec(horas_domi * valor_domi)
    else:
        valor_intra = to_dec(tarifa.valor_sesion)
        valor_domi = to_dec(tarifa.valor_sesion_domiciliaria or tarifa.valor_sesion)
        fila.subtotal_intramural = to_dec(len(intra) * valor_intra)
        fila.subtotal_domiciliaria = to_dec(len(domi) * valor_domi)

    fila.total_bruto = fila.subtotal_intramural + fila.subtotal_domiciliaria
    return fila


# ---------------------------
# Períodos
# ---------------------------
def rango_mes(anio: int, mes: int) -> Tuple[date, date]:
    if not 1 <= mes <= 12:
        raise ErrorValidacion("mes fuera de rango")
    if not 1900 <= anio <= 3000:
        raise ErrorValidacion("año fuera de rango")
    ultimo = calendar.monthrange(anio, mes)[1]
    return date(anio, mes, 1), date(anio, mes, ultimo)


async def get_periodo(db: AsyncSession, period_id: int) -> PeriodoNomina:
    periodo = await db.get(PeriodoNomina, period_id)
    if not periodo:
        raise NoEncontrado("Período no encontrado")
    return periodo


def _check_version(obj, version: Optional[int]) -> None:
    if version is not None and obj.version != version:
        raise ErrorConsistencia("El registro fue modificado por otro usuario; recargue e intente de nuevo")


async def _flush_versionado(db: AsyncSession) -> None:
    try:
        await db.flush()
    except StaleDataError:
        raise ErrorConsistencia("El registro fue modificado por otro usuario; recargue e intente de nuevo")


async def create_period(
    db: AsyncSession,
    ctx: ContextoSesion,
    mes: int,
    anio: int,
    notas: Optional[str] = None,
) -> PeriodoNomina:
    inicio, fin = rango_mes(anio, mes)
    existe = (await db.execute(
        select(PeriodoNomina.id).where(PeriodoNomina.anio == anio, PeriodoNomina.mes == mes)
    )).scalar_one_or_none()
    if existe:
        raise ErrorConsistencia(f"Ya existe el período {anio:04d}-{mes:02d}")

    periodo = PeriodoNomina(
        mes=mes,
        anio=anio,
        fecha_inicio=inicio,
        fecha_fin=fin,
        estado="abierto",
        notas=notas,
        created_by=ctx.user_id,
    )
    db.add(periodo)
    await db.flush()
    await db.refresh(periodo)
    logger.info("Período de nómina %04d-%02d creado id=%s", anio, mes, periodo.id)
    return periodo


async def close_period(
    db: AsyncSession, ctx: ContextoSesion, period_id: int, version: Optional[int] = None
) -> PeriodoNomina:
    periodo = await get_periodo(db, period_id)
    _check_version(periodo, version)
    if periodo.estado != "abierto":
        raise ErrorConsistencia("Sólo se pueden cerrar períodos abiertos")
    periodo.estado = "cerrado"
    periodo.closed_at = datetime.now(timezone.utc)
    periodo.closed_by = ctx.user_id
    await _flush_versionado(db)
    await db.refresh(periodo)
    logger.info("Período %s cerrado por user_id=%s", periodo.id, ctx.user_id)
    return periodo


async def mark_period_paid(
    db: AsyncSession, ctx: ContextoSesion, period_id: int, version: Optional[int] = None
) -> PeriodoNomina:
    periodo = await get_periodo(db, period_id)
    _check_version(periodo, version)
    if periodo.estado != "cerrado":
        raise ErrorConsistencia("Sólo se pueden marcar como pagados períodos cerrados")
    periodo.estado = "pagado"
    periodo.paid_at = datetime.now(timezone.utc)
    await _flush_versionado(db)
    await db.refresh(periodo)
    logger.info("Período %s marcado como pagado por user_id=%s", periodo.id, ctx.user_id)
    return periodo


async def listar_periodos(db: AsyncSession, anio: Optional[int] = None) -> List[PeriodoNomina]:
    stmt = select(PeriodoNomina).order_by(PeriodoNomina.anio.desc(), PeriodoNomina.mes.desc())
    if anio is not None:
        stmt = stmt.where(PeriodoNomina.anio == anio)
    return list((await db.execute(stmt)).scalars().all())


async def detalles_periodo(db: AsyncSession, period_id: int) -> List[DetalleNomina]:
    stmt = (
        select(DetalleNomina)
        .join(TherapistProfile, TherapistProfile.id == DetalleNomina.therapist_id)
        .where(DetalleNomina.period_id == period_id)
        .order_by(TherapistProfile.nombre_completo)
        .execution_options(populate_existing=True)
    )
    return list((await db.execute(stmt)).scalars().all())


# ---------------------------
# Cálculo
# ---------------------------
async def compute_payroll(db: AsyncSession, period_id: int) -> Tuple[List[DetalleNomina], List[str]]:
    """
    Recalcula el detalle del período (sólo si está abierto): borra las filas
    existentes y las vuelve a insertar. Es idempotente. Sin commit.
    Incrementa la versión del período, así un cierre hecho con la versión
    leída antes del cálculo se rechaza.

    Devuelve (detalles, advertencias).
    """
    periodo = await get_periodo(db, period_id)
    if periodo.estado != "abierto":
        raise ErrorConsistencia("El período está cerrado")

    # toma el período: un cierre concurrente con la versión previa queda en 409
    res = await db.execute(
        update(PeriodoNomina)
        .where(
            PeriodoNomina.id == periodo.id,
            PeriodoNomina.version == periodo.version,
            PeriodoNomina.estado == "abierto",
        )
        .values(version=PeriodoNomina.version + 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise ErrorConsistencia("El período fue modificado por otro usuario; recargue e intente de nuevo")
    await db.refresh(periodo)

    filas_ses = (await db.execute(
        select(OrdenMedica.therapist_id, Sesion.ubicacion, Sesion.hora_inicio, Sesion.hora_fin)
        .join(OrdenMedica, OrdenMedica.id == Sesion.medical_order_id)
        .where(
            Sesion.estado.in_(ESTADOS_PAGABLES),
            Sesion.fecha_programada >= periodo.fecha_inicio,
            Sesion.fecha_programada <= periodo.fecha_fin,
        )
    )).all()

    por_terapeuta: dict[int, List[SesionPagable]] = {}
    for therapist_id, ubicacion, h_ini, h_fin in filas_ses:
        por_terapeuta.setdefault(therapist_id, []).append(SesionPagable(ubicacion, h_ini, h_fin))

    terapeutas = (await db.execute(
        select(TherapistProfile)
        .where(TherapistProfile.activo.is_(True))
        .order_by(TherapistProfile.nombre_completo)
    )).scalars().all()

    tarifas = (await db.execute(
        select(TarifaTerapeuta).where(TarifaTerapeuta.activo.is_(True))
    )).scalars().all()
    tarifa_por_clave = {(t.therapist_id, t.especialidad): t for t in tarifas}

    activos = {t.id for t in terapeutas}
    for tid in por_terapeuta:
        if tid not in activos:
            logger.warning("Período %s: terapeuta %s inactivo con sesiones, se omite", periodo.id, tid)

    await db.execute(delete(DetalleNomina).where(DetalleNomina.period_id == periodo.id))

    detalles: List[DetalleNomina] = []
    advertencias: List[str] = []
    for ter in terapeutas:
        sesiones = por_terapeuta.get(ter.id, [])
        tarifa = tarifa_por_clave.get((ter.id, ter.especialidad))
        if not sesiones and tarifa is None:
            continue

        fila = calcular_fila(ter.id, ter.nombre_completo, sesiones, tarifa)
        advertencias.extend(fila.advertencias)

        det = DetalleNomina(
            period_id=periodo.id,
            therapist_id=ter.id,
            sesiones_intramural=fila.sesiones_intramural,
            sesiones_domiciliaria=fila.sesiones_domiciliaria,
            horas_intramural=fila.horas_intramural,
            horas_domiciliaria=fila.horas_domiciliaria,
            es_por_hora=fila.es_por_hora,
            tarifa_sesion_intramural=fila.tarifa_sesion_intramural,
            tarifa_sesion_domiciliaria=fila.tarifa_sesion_domiciliaria,
            tarifa_hora_intramural=fila.tarifa_hora_intramural,
            tarifa_hora_domiciliaria=fila.tarifa_hora_domiciliaria,
            subtotal_intramural=fila.subtotal_intramural,
            subtotal_domiciliaria=fila.subtotal_domiciliaria,
            total_bruto=fila.total_bruto,
            notas=fila.notas,
        )
        db.add(det)
        detalles.append(det)

    await db.flush()

    total = sum((d.total_bruto for d in detalles), Decimal("0"))
    if advertencias:
        logger.warning("Nómina del período %s calculada con advertencias: %s", periodo.id, "; ".join(advertencias))
    logger.info("Nómina del período %s calculada: %s filas, total %s", periodo.id, len(detalles), total)
    return detalles, advertencias


# ---------------------------
# Tarifas
# ---------------------------
def _validar_tarifa(datos: dict) -> None:
    for campo in ("valor_sesion", "valor_sesion_domiciliaria", "valor_hora", "valor_hora_domiciliaria"):
        v = datos.get(campo)
        if v is not None and to_dec(v) < 0:
            raise ErrorValidacion(f"{campo} no puede ser negativo")
    if datos.get("es_por_hora") and datos.get("valor_hora") is None:
        raise ErrorValidacion("Una tarifa por hora requiere valor_hora")
    if not datos.get("es_por_hora") and datos.get("valor_sesion") is None:
        raise ErrorValidacion("Una tarifa por sesión requiere valor_sesion")


async def get_tarifa(db: AsyncSession, tarifa_id: int) -> TarifaTerapeuta:
    tarifa = await db.get(TarifaTerapeuta, tarifa_id)
    if not tarifa:
        raise NoEncontrado("Tarifa no encontrada")
    return tarifa


async def listar_tarifas(db: AsyncSession, therapist_id: Optional[int] = None) -> List[TarifaTerapeuta]:
    stmt = select(TarifaTerapeuta).order_by(TarifaTerapeuta.therapist_id, TarifaTerapeuta.especialidad)
    if therapist_id is not None:
        stmt = stmt.where(TarifaTerapeuta.therapist_id == therapist_id)
    return list((await db.execute(stmt)).scalars().all())


async def crear_tarifa(db: AsyncSession, therapist_id: int, datos: dict) -> TarifaTerapeuta:
    ter = await db.get(TherapistProfile, therapist_id)
    if not ter:
        raise NoEncontrado("Terapeuta no encontrado")
    especialidad = datos.get("especialidad") or ter.especialidad
    _validar_tarifa(datos)

    existe = (await db.execute(
        select(TarifaTerapeuta.id).where(
            TarifaTerapeuta.therapist_id == therapist_id,
            TarifaTerapeuta.especialidad == especialidad,
        )
    )).scalar_one_or_none()
    if existe:
        raise ErrorConsistencia("El terapeuta ya tiene tarifa para esa especialidad")

    tarifa = TarifaTerapeuta(
        therapist_id=therapist_id,
        especialidad=especialidad,
        **{k: datos.get(k) for k in CAMPOS_TARIFA if k in datos},
    )
    db.add(tarifa)
    await db.flush()
    await db.refresh(tarifa)
    logger.info("Tarifa %s creada terapeuta=%s especialidad=%s", tarifa.id, therapist_id, especialidad)
    return tarifa


async def actualizar_tarifa(db: AsyncSession, tarifa_id: int, version: int, cambios: dict) -> TarifaTerapeuta:
    """Actualización con control optimista: `version` debe coincidir con la leída."""
    tarifa = await get_tarifa(db, tarifa_id)
    _check_version(tarifa, version)

    merged = {k: getattr(tarifa, k) for k in CAMPOS_TARIFA}
    merged.update({k: v for k, v in cambios.items() if k in CAMPOS_TARIFA})
    _validar_tarifa(merged)

    for k in CAMPOS_TARIFA:
        if k in cambios:
            setattr(tarifa, k, cambios[k])
    await _flush_versionado(db)
    await db.refresh(tarifa)
    logger.info("Tarifa %s actualizada (versión %s)", tarifa.id, tarifa.version)
    return tarifa
