"""
Tests de nómina: cálculo por terapeuta, períodos y tarifas.

Usa las fixtures definidas en conftest.py
"""
from datetime import date, time
from decimal import Decimal

import pytest
from sqlalchemy import update

from app.api.v1.nomina import _detalle_out
from app.core.errors import ErrorConsistencia, ErrorValidacion
from app.db.models import PeriodoNomina, TarifaTerapeuta
from app.services.cuentas import set_terapeuta_activo
from app.services.nomina import (
    SesionPagable, actualizar_tarifa, calcular_fila, calcular_horas, close_period, compute_payroll, create_period,
    crear_tarifa, detalles_periodo, mark_period_paid, rango_mes,
)


# ============================================
# CÁLCULO PURO
# ============================================

class TestCalcularHoras:

    def test_diferencia_de_horas(self):
        assert calcular_horas(time(8, 0), time(9, 30)) == Decimal("1.5")

    def test_sin_hora_fin_cuenta_una_hora(self):
        assert calcular_horas(time(8, 0), None) == Decimal("1")

    def test_hora_fin_invalida_cuenta_una_hora(self):
        assert calcular_horas(time(10, 0), time(9, 0)) == Decimal("1")


class TestCalcularFila:

    def test_por_sesion(self, dinero):
        """3 sesiones intramurales a 50.000 = 150.000."""
        tarifa = TarifaTerapeuta(es_por_hora=False, valor_sesion=Decimal("50000"))
        sesiones = [SesionPagable("intramural") for _ in range(3)]

        fila = calcular_fila(1, "Laura Gómez", sesiones, tarifa)

        assert fila.sesiones_intramural == 3
        assert fila.subtotal_intramural == dinero(150000)
        assert fila.total_bruto == dinero(150000)
        assert fila.advertencias == []

    def test_domiciliaria_usa_intramural_si_falta(self, dinero):
        tarifa = TarifaTerapeuta(es_por_hora=False, valor_sesion=Decimal("50000"))
        sesiones = [SesionPagable("intramural"), SesionPagable("domiciliaria"), SesionPagable("domiciliaria")]

        fila = calcular_fila(1, "Laura Gómez", sesiones, tarifa)

        assert fila.subtotal_domiciliaria == dinero(100000)
        assert fila.total_bruto == dinero(150000)
        # el snapshot guarda lo configurado, no el valor efectivo
        assert fila.tarifa_sesion_domiciliaria is None

    def test_domiciliaria_propia(self, dinero):
        tarifa = TarifaTerapeuta(
            es_por_hora=False, valor_sesion=Decimal("50000"), valor_sesion_domiciliaria=Decimal("70000"),
        )
        fila = calcular_fila(1, "Laura Gómez", [SesionPagable("domiciliaria")], tarifa)
        assert fila.total_bruto == dinero(70000)

    def test_por_hora(self, dinero):
        tarifa = TarifaTerapeuta(es_por_hora=True, valor_hora=Decimal("40000"))
        sesiones = [SesionPagable("intramural", time(8, 0), time(9, 30)) for _ in range(2)]

        fila = calcular_fila(1, "Laura Gómez", sesiones, tarifa)

        assert fila.horas_intramural == dinero(3)
        assert fila.total_bruto == dinero(120000)

    def test_por_hora_sin_hora_fin(self, dinero):
        tarifa = TarifaTerapeuta(es_por_hora=True, valor_hora=Decimal("40000"))
        fila = calcular_fila(1, "Laura Gómez", [SesionPagable("intramural", time(8, 0), None)], tarifa)
        assert fila.total_bruto == dinero(40000)

    def test_sin_tarifa(self, dinero):
        fila = calcular_fila(1, "Laura Gómez", [SesionPagable("intramural")], None)

        assert fila.total_bruto == dinero(0)
        assert fila.sesiones_intramural == 1
        assert fila.advertencias == ["Laura Gómez no tiene tarifas configuradas"]


# ============================================
# PERÍODOS
# ============================================

class TestPeriodos:

    def test_rango_mes(self):
        assert rango_mes(2026, 2) == (date(2026, 2, 1), date(2026, 2, 28))
        assert rango_mes(2028, 2) == (date(2028, 2, 1), date(2028, 2, 29))
        with pytest.raises(ErrorValidacion):
            rango_mes(2026, 13)

    async def test_crea_periodo_abierto(self, db, crear_admin):
        admin = await crear_admin()
        periodo = await create_period(db, admin, 3, 2026)

        assert periodo.estado == "abierto"
        assert periodo.fecha_inicio == date(2026, 3, 1)
        assert periodo.fecha_fin == date(2026, 3, 31)
        assert periodo.version == 1

    async def test_duplicado(self, db, crear_admin):
        admin = await crear_admin()
        await create_period(db, admin, 3, 2026)
        with pytest.raises(ErrorConsistencia):
            await create_period(db, admin, 3, 2026)

    async def test_ciclo_cerrar_y_pagar(self, db, crear_admin):
        admin = await crear_admin()
        periodo = await create_period(db, admin, 3, 2026)

        with pytest.raises(ErrorConsistencia):
            await mark_period_paid(db, admin, periodo.id, 1)

        cerrado = await close_period(db, admin, periodo.id, 1)
        assert cerrado.estado == "cerrado"
        assert cerrado.closed_by == admin.user_id
        assert cerrado.version == 2

        pagado = await mark_period_paid(db, admin, periodo.id, 2)
        assert pagado.estado == "pagado"
        assert pagado.paid_at is not None

    async def test_version_desactualizada(self, db, crear_admin):
        admin = await crear_admin()
        periodo = await create_period(db, admin, 3, 2026)
        with pytest.raises(ErrorConsistencia):
            await close_period(db, admin, periodo.id, 7)


# ============================================
# CÁLCULO DEL PERÍODO
# ============================================

@pytest.fixture
async def marzo(db, crear_admin, crear_terapeuta, crear_paciente, crear_orden, cargar_tarifa, marcar_sesiones):
    """Terapeuta con tarifa de 50.000 por sesión y 3 sesiones completadas en marzo."""
    admin = await crear_admin()
    terapeuta, _ = await crear_terapeuta(nombre="Laura Gómez")
    await cargar_tarifa(terapeuta.id, valor_sesion=Decimal("50000"))
    paciente = await crear_paciente()
    _, ids = await crear_orden(terapeuta, paciente, total_sesiones=10)
    await marcar_sesiones(ids[:3], "completada")
    await marcar_sesiones(ids[3:4], "cancelada")
    periodo = await create_period(db, admin, 3, 2026)
    return admin, terapeuta, periodo, ids


class TestComputePayroll:

    async def test_suma_sesiones_completadas(self, db, marzo, dinero):
        _, terapeuta, periodo, _ = marzo

        detalles, advertencias = await compute_payroll(db, periodo.id)

        assert advertencias == []
        assert len(detalles) == 1
        det = detalles[0]
        assert det.therapist_id == terapeuta.id
        assert det.sesiones_intramural == 3
        assert det.sesiones_domiciliaria == 0
        assert det.total_bruto == dinero(150000)
        assert det.tarifa_sesion_intramural == dinero(50000)

    async def test_es_idempotente(self, db, marzo, dinero):
        _, _, periodo, _ = marzo

        await compute_payroll(db, periodo.id)
        await db.commit()
        await compute_payroll(db, periodo.id)
        await db.commit()

        detalles = await detalles_periodo(db, periodo.id)
        assert len(detalles) == 1
        assert detalles[0].total_bruto == dinero(150000)

    async def test_plan_casero_es_pagable(self, db, marzo, marcar_sesiones, dinero):
        _, _, periodo, ids = marzo
        await marcar_sesiones([ids[4]], "plan_casero")

        detalles, _ = await compute_payroll(db, periodo.id)
        assert detalles[0].total_bruto == dinero(200000)

    async def test_terapeuta_sin_tarifa_advierte(self, db, marzo, crear_terapeuta, crear_paciente, crear_orden,
                                                 marcar_sesiones):
        _, _, periodo, _ = marzo
        sin_tarifa, _ = await crear_terapeuta(nombre="Carlos Ruiz")
        paciente = await crear_paciente(nombre="Otra Paciente")
        _, ids = await crear_orden(sin_tarifa, paciente, total_sesiones=2)
        await marcar_sesiones(ids, "completada")

        detalles, advertencias = await compute_payroll(db, periodo.id)

        assert advertencias == ["Carlos Ruiz no tiene tarifas configuradas"]
        fila = next(d for d in detalles if d.therapist_id == sin_tarifa.id)
        assert fila.total_bruto == Decimal("0")
        assert fila.sesiones_intramural == 2

    async def test_tarifa_sin_sesiones_genera_fila_en_cero(self, db, marzo, crear_terapeuta, cargar_tarifa):
        _, _, periodo, _ = marzo
        ocioso, _ = await crear_terapeuta(nombre="Beatriz Sin Agenda")
        await cargar_tarifa(ocioso.id, valor_sesion=Decimal("45000"))

        detalles, advertencias = await compute_payroll(db, periodo.id)

        assert advertencias == []
        fila = next(d for d in detalles if d.therapist_id == ocioso.id)
        assert fila.total_bruto == Decimal("0")
        assert fila.sesiones_intramural == 0

    async def test_omite_terapeutas_inactivos(self, db, marzo, crear_terapeuta, crear_paciente, crear_orden,
                                             cargar_tarifa, marcar_sesiones):
        _, _, periodo, _ = marzo
        inactivo, _ = await crear_terapeuta(nombre="Inactivo")
        await cargar_tarifa(inactivo.id, valor_sesion=Decimal("50000"))
        paciente = await crear_paciente(nombre="Otra Paciente")
        _, ids = await crear_orden(inactivo, paciente, total_sesiones=2)
        await marcar_sesiones(ids, "completada")
        await set_terapeuta_activo(db, inactivo.id, False)

        detalles, _ = await compute_payroll(db, periodo.id)

        assert inactivo.id not in {d.therapist_id for d in detalles}

    async def test_fuera_del_periodo_no_cuenta(self, db, marzo):
        admin, terapeuta, _, _ = marzo
        abril = await create_period(db, admin, 4, 2026)

        detalles, _ = await compute_payroll(db, abril.id)

        assert [d.therapist_id for d in detalles] == [terapeuta.id]
        assert detalles[0].total_bruto == Decimal("0")

    async def test_periodo_cerrado(self, db, marzo):
        admin, _, periodo, _ = marzo
        await close_period(db, admin, periodo.id)
        with pytest.raises(ErrorConsistencia):
            await compute_payroll(db, periodo.id)

    async def test_calculo_incrementa_la_version(self, db, marzo):
        admin, _, periodo, _ = marzo
        assert periodo.version == 1

        await compute_payroll(db, periodo.id)

        assert periodo.version == 2
        with pytest.raises(ErrorConsistencia):
            await close_period(db, admin, periodo.id, 1)

    async def test_cierre_concurrente_no_deja_detalles(self, db, marzo):
        _, _, periodo, _ = marzo
        await db.commit()
        # otro request cierra el período; esta sesión conserva la copia abierta
        await db.execute(
            update(PeriodoNomina)
            .where(PeriodoNomina.id == periodo.id)
            .values(estado="cerrado", version=PeriodoNomina.version + 1)
            .execution_options(synchronize_session=False)
        )
        assert periodo.estado == "abierto"

        with pytest.raises(ErrorConsistencia):
            await compute_payroll(db, periodo.id)
        assert await detalles_periodo(db, periodo.id) == []

    async def test_detalle_expone_nombre_y_especialidad(self, db, marzo):
        _, terapeuta, periodo, _ = marzo
        await compute_payroll(db, periodo.id)
        await db.commit()

        detalles = await detalles_periodo(db, periodo.id)
        out = _detalle_out(detalles[0])

        assert out.terapeuta_nombre == "Laura Gómez"
        assert out.terapeuta_especialidad == terapeuta.especialidad
        assert out.total_bruto == Decimal("150000")


# ============================================
# TARIFAS
# ============================================

class TestTarifas:

    async def test_crea_con_especialidad_del_terapeuta(self, db, crear_terapeuta):
        terapeuta, _ = await crear_terapeuta(especialidad="fonoaudiologia")
        tarifa = await crear_tarifa(db, terapeuta.id, {"valor_sesion": Decimal("60000")})

        assert tarifa.especialidad == "fonoaudiologia"
        assert tarifa.version == 1
        assert tarifa.es_por_hora is False

    async def test_duplicada(self, db, crear_terapeuta):
        terapeuta, _ = await crear_terapeuta()
        await crear_tarifa(db, terapeuta.id, {"valor_sesion": Decimal("60000")})
        with pytest.raises(ErrorConsistencia):
            await crear_tarifa(db, terapeuta.id, {"valor_sesion": Decimal("65000")})

    async def test_por_hora_requiere_valor_hora(self, db, crear_terapeuta):
        terapeuta, _ = await crear_terapeuta()
        with pytest.raises(ErrorValidacion):
            await crear_tarifa(db, terapeuta.id, {"es_por_hora": True, "valor_sesion": Decimal("60000")})

    async def test_actualiza_con_version(self, db, crear_terapeuta, dinero):
        terapeuta, _ = await crear_terapeuta()
        tarifa = await crear_tarifa(db, terapeuta.id, {"valor_sesion": Decimal("60000")})

        actualizada = await actualizar_tarifa(db, tarifa.id, 1, {"valor_sesion": Decimal("65000")})

        assert actualizada.valor_sesion == dinero(65000)
        assert actualizada.version == 2

    async def test_version_desactualizada(self, db, crear_terapeuta):
        terapeuta, _ = await crear_terapeuta()
        tarifa = await crear_tarifa(db, terapeuta.id, {"valor_sesion": Decimal("60000")})
        await actualizar_tarifa(db, tarifa.id, 1, {"valor_sesion": Decimal("65000")})

        with pytest.raises(ErrorConsistencia):
            await actualizar_tarifa(db, tarifa.id, 1, {"valor_sesion": Decimal("70000")})
