"""
Tests de evoluciones, ventana de edición y evaluación inicial.

Usa las fixtures definidas en conftest.py
"""
from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import ErrorAutorizacion, ErrorConsistencia, ErrorValidacion
from app.db.models import Evolucion
from app.services.evoluciones import (
    crear_evaluacion_inicial, crear_evolucion, editar_evolucion, estado_bloqueo, listar_evoluciones,
    lock_evolution, sync_expired_locks,
)
from app.services.sesiones import transition_session

CONTENIDO = "Buena respuesta al trabajo de fortalecimiento de tronco."
EVALUACION = {
    "diagnostico_cie10": "G80.0 Parálisis cerebral espástica cuadripléjica",
    "codigo_cie10": "G80.0",
    "objetivos_generales": "Lograr sedestación independiente",
    "plan_intervencion": "Dos sesiones semanales de control postural",
}


def creada_utc(evo: Evolucion) -> datetime:
    c = evo.created_at
    return c if c.tzinfo else c.replace(tzinfo=timezone.utc)


@pytest.fixture
async def escenario(crear_terapeuta, crear_paciente, crear_orden, crear_evaluacion):
    terapeuta, ctx = await crear_terapeuta(firma="uploads/firmas/t1.png")
    paciente = await crear_paciente()
    order_id, ids = await crear_orden(terapeuta, paciente, total_sesiones=4)
    await crear_evaluacion(order_id, terapeuta.id)
    return ctx, order_id, ids


# ============================================
# ALTA
# ============================================

class TestCrearEvolucion:

    async def test_crea_y_copia_firma(self, db, escenario):
        ctx, _, ids = escenario
        evo = await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO, "procedimientos": "  "})

        assert evo.id is not None
        assert evo.therapist_id == ctx.therapist_id
        assert evo.firma_url == "uploads/firmas/t1.png"
        assert evo.procedimientos is None
        assert evo.bloqueado is False

    async def test_contenido_corto(self, db, escenario):
        ctx, _, ids = escenario
        with pytest.raises(ErrorValidacion):
            await crear_evolucion(db, ctx, ids[0], {"contenido": "  corto   "})

    async def test_primera_sesion_sin_evaluacion(self, db, crear_terapeuta, crear_paciente, crear_orden):
        terapeuta, ctx = await crear_terapeuta()
        paciente = await crear_paciente()
        _, ids = await crear_orden(terapeuta, paciente, total_sesiones=4)

        with pytest.raises(ErrorConsistencia):
            await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO})

    async def test_solo_terapeuta_asignado(self, db, escenario, crear_terapeuta):
        _, _, ids = escenario
        _, otro = await crear_terapeuta()
        with pytest.raises(ErrorAutorizacion):
            await crear_evolucion(db, otro, ids[0], {"contenido": CONTENIDO})

    async def test_una_por_sesion(self, db, escenario):
        ctx, _, ids = escenario
        await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO})
        with pytest.raises(ErrorConsistencia):
            await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO})

    async def test_anteriores_sin_evolucion(self, db, escenario):
        ctx, _, ids = escenario
        with pytest.raises(ErrorConsistencia) as exc:
            await crear_evolucion(db, ctx, ids[2], {"contenido": CONTENIDO})
        assert "1, 2" in exc.value.detail

    async def test_cancelada_anterior_sin_reprogramar(self, db, escenario):
        ctx, _, ids = escenario
        await transition_session(db, ctx, ids[0], "cancelada", "No asistió")
        with pytest.raises(ErrorConsistencia) as exc:
            await crear_evolucion(db, ctx, ids[1], {"contenido": CONTENIDO})
        assert "canceladas" in exc.value.detail

    async def test_sesion_cancelada(self, db, escenario):
        ctx, _, ids = escenario
        await transition_session(db, ctx, ids[0], "cancelada", "No asistió")
        with pytest.raises(ErrorConsistencia):
            await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO})


# ============================================
# VENTANA DE EDICIÓN
# ============================================

class TestVentanaDeEdicion:

    async def test_editable_a_las_23_horas(self, db, escenario):
        ctx, _, ids = escenario
        evo = await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO})

        estado = estado_bloqueo(evo, creada_utc(evo) + timedelta(hours=23))
        assert estado.editable is True
        assert estado.horas_restantes == pytest.approx(1.0)

    async def test_bloqueada_a_las_24_horas(self, db, escenario):
        ctx, _, ids = escenario
        evo = await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO})

        estado = estado_bloqueo(evo, creada_utc(evo) + timedelta(hours=24))
        assert estado.editable is False
        assert estado.bloqueado is True
        assert estado.horas_restantes == 0.0

    async def test_autor_edita_dentro_de_la_ventana(self, db, escenario):
        ctx, _, ids = escenario
        evo = await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO})

        editada = await editar_evolucion(
            db, ctx, evo.id, {"recomendaciones": "Ejercicios en casa", "es_cierre": True},
            now=creada_utc(evo) + timedelta(hours=2),
        )
        assert editada.recomendaciones == "Ejercicios en casa"
        assert editada.es_cierre is True
        assert editada.contenido == CONTENIDO

    async def test_edicion_vencida(self, db, escenario):
        ctx, _, ids = escenario
        evo = await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO})
        with pytest.raises(ErrorConsistencia):
            await editar_evolucion(db, ctx, evo.id, {"contenido": CONTENIDO + " Editado."},
                                   now=creada_utc(evo) + timedelta(hours=24))

    async def test_solo_el_autor(self, db, escenario, crear_admin):
        ctx, _, ids = escenario
        admin = await crear_admin()
        evo = await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO})
        with pytest.raises(ErrorAutorizacion):
            await editar_evolucion(db, admin, evo.id, {"contenido": CONTENIDO})

    async def test_bloqueo_administrativo(self, db, escenario, crear_admin):
        ctx, _, ids = escenario
        admin = await crear_admin()
        evo = await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO})

        bloqueada = await lock_evolution(db, admin, evo.id)
        assert bloqueada.bloqueado is True
        assert bloqueada.bloqueado_at is not None
        with pytest.raises(ErrorConsistencia):
            await editar_evolucion(db, ctx, evo.id, {"contenido": CONTENIDO},
                                   now=creada_utc(evo) + timedelta(minutes=5))

    async def test_solo_admin_bloquea(self, db, escenario):
        ctx, _, ids = escenario
        evo = await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO})
        with pytest.raises(ErrorAutorizacion):
            await lock_evolution(db, ctx, evo.id)

    async def test_barrido_de_bloqueos(self, db, escenario):
        ctx, _, ids = escenario
        evo = await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO})
        base = creada_utc(evo)

        assert await sync_expired_locks(db, base + timedelta(hours=1)) == 0
        assert await sync_expired_locks(db, base + timedelta(hours=25)) == 1
        assert evo.bloqueado is True
        assert await sync_expired_locks(db, base + timedelta(hours=26)) == 0


class TestListarEvoluciones:

    async def test_filtra_por_terapeuta_y_orden(self, db, escenario):
        ctx, order_id, ids = escenario
        await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO})
        await crear_evolucion(db, ctx, ids[1], {"contenido": CONTENIDO})

        assert len(await listar_evoluciones(db, therapist_id=ctx.therapist_id)) == 2
        assert len(await listar_evoluciones(db, order_id=order_id, limit=1)) == 1
        assert await listar_evoluciones(db, therapist_id=ctx.therapist_id + 100) == []


# ============================================
# EVALUACIÓN INICIAL
# ============================================

class TestEvaluacionInicial:

    async def test_crea_una_por_orden(self, db, crear_terapeuta, crear_paciente, crear_orden):
        terapeuta, ctx = await crear_terapeuta()
        paciente = await crear_paciente()
        order_id, _ = await crear_orden(terapeuta, paciente, total_sesiones=4)

        ev = await crear_evaluacion_inicial(db, ctx, order_id, EVALUACION)
        assert ev.medical_order_id == order_id
        assert ev.funciones_corporales is None

        with pytest.raises(ErrorConsistencia):
            await crear_evaluacion_inicial(db, ctx, order_id, EVALUACION)

    async def test_campos_obligatorios(self, db, crear_terapeuta, crear_paciente, crear_orden):
        terapeuta, ctx = await crear_terapeuta()
        paciente = await crear_paciente()
        order_id, _ = await crear_orden(terapeuta, paciente, total_sesiones=4)

        with pytest.raises(ErrorValidacion):
            await crear_evaluacion_inicial(db, ctx, order_id, {**EVALUACION, "plan_intervencion": "corto"})

    async def test_solo_terapeuta_asignado(self, db, crear_terapeuta, crear_paciente, crear_orden):
        terapeuta, _ = await crear_terapeuta()
        _, otro = await crear_terapeuta()
        paciente = await crear_paciente()
        order_id, _ = await crear_orden(terapeuta, paciente, total_sesiones=4)

        with pytest.raises(ErrorAutorizacion):
            await crear_evaluacion_inicial(db, otro, order_id, EVALUACION)
