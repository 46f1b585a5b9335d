"""
Tests de la máquina de estados de sesiones y del completado en dos pasos.

Usa las fixtures definidas en conftest.py
"""
import pytest
from sqlalchemy import update

from app.core.errors import ErrorAutorizacion, ErrorConsistencia, ErrorValidacion, NoEncontrado
from app.db.models import OrdenMedica, Sesion
from app.services.evoluciones import crear_evolucion
from app.services.sesiones import (
    abandon_completion, get_pendiente, resume_completion, start_completion, transition_session,
)

CONTENIDO = "Paciente tolera bien los ejercicios de marcha asistida."


@pytest.fixture
def completar(db):
    """Evolución + transición, el camino normal del terapeuta."""
    async def _completar(ctx, session_id, estado="completada"):
        await crear_evolucion(db, ctx, session_id, {"contenido": CONTENIDO})
        return await transition_session(db, ctx, session_id, estado)
    return _completar


@pytest.fixture
async def escenario(crear_terapeuta, crear_paciente, crear_orden, crear_evaluacion):
    """Orden de 5 sesiones con evaluación inicial cargada."""
    terapeuta, ctx = await crear_terapeuta()
    paciente = await crear_paciente()
    order_id, ids = await crear_orden(terapeuta, paciente, total_sesiones=5)
    await crear_evaluacion(order_id, terapeuta.id)
    return ctx, order_id, ids


# ============================================
# TRANSICIONES
# ============================================

class TestCancelacion:

    async def test_requiere_motivo(self, db, escenario):
        ctx, _, ids = escenario
        with pytest.raises(ErrorValidacion):
            await transition_session(db, ctx, ids[0], "cancelada", "   ")

    async def test_cancela_con_motivo(self, db, escenario):
        ctx, _, ids = escenario
        sesion = await transition_session(db, ctx, ids[0], "cancelada", " Paciente enfermo ")
        await db.commit()

        assert sesion.estado == "cancelada"
        assert sesion.notas_cancelacion == "Paciente enfermo"

    async def test_no_cuenta_como_completada(self, db, escenario):
        ctx, order_id, ids = escenario
        await transition_session(db, ctx, ids[0], "cancelada", "Paciente enfermo")
        orden = await db.get(OrdenMedica, order_id)
        assert orden.sesiones_completadas == 0


class TestGuardas:

    async def test_estado_destino_invalido(self, db, escenario):
        ctx, _, ids = escenario
        with pytest.raises(ErrorValidacion):
            await transition_session(db, ctx, ids[0], "reprogramada")

    async def test_otro_terapeuta_no_puede(self, db, escenario, crear_terapeuta):
        _, _, ids = escenario
        _, intruso = await crear_terapeuta()
        with pytest.raises(ErrorAutorizacion):
            await transition_session(db, intruso, ids[0], "cancelada", "No asistió")

    async def test_admin_no_opera_sesiones(self, db, escenario, crear_admin):
        _, _, ids = escenario
        admin = await crear_admin()
        with pytest.raises(ErrorAutorizacion):
            await transition_session(db, admin, ids[0], "cancelada", "No asistió")

    async def test_completar_sin_evolucion(self, db, escenario):
        ctx, _, ids = escenario
        with pytest.raises(ErrorConsistencia):
            await transition_session(db, ctx, ids[0], "completada")

    async def test_solo_desde_programada(self, db, escenario):
        ctx, _, ids = escenario
        await transition_session(db, ctx, ids[0], "cancelada", "No asistió")
        with pytest.raises(ErrorConsistencia):
            await transition_session(db, ctx, ids[0], "cancelada", "Otra vez")

    async def test_orden_cerrada(self, db, escenario):
        ctx, order_id, ids = escenario
        await db.execute(update(OrdenMedica).where(OrdenMedica.id == order_id).values(estado="cerrada"))
        await db.commit()
        db.expunge_all()

        with pytest.raises(ErrorConsistencia):
            await transition_session(db, ctx, ids[1], "cancelada", "No asistió")

    async def test_sesion_inexistente(self, db, escenario):
        ctx, _, _ = escenario
        with pytest.raises(NoEncontrado):
            await transition_session(db, ctx, 9999, "cancelada", "No asistió")

    async def test_modificacion_concurrente(self, db, escenario):
        """Si otro request movió la sesión, el update condicional no la pisa."""
        ctx, _, ids = escenario
        await db.get(Sesion, ids[0])
        await db.execute(
            update(Sesion)
            .where(Sesion.id == ids[0])
            .values(estado="cancelada", notas_cancelacion="Otro usuario")
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(ErrorConsistencia):
            await transition_session(db, ctx, ids[0], "cancelada", "Paciente enfermo")


class TestPlanCasero:

    async def test_primera_sesion(self, db, escenario):
        ctx, _, ids = escenario
        with pytest.raises(ErrorConsistencia):
            await transition_session(db, ctx, ids[0], "plan_casero")

    async def test_ultima_sesion(self, db, escenario):
        ctx, _, ids = escenario
        with pytest.raises(ErrorConsistencia):
            await transition_session(db, ctx, ids[4], "plan_casero")

    async def test_anterior_sin_completar(self, db, escenario):
        ctx, _, ids = escenario
        with pytest.raises(ErrorConsistencia):
            await transition_session(db, ctx, ids[1], "plan_casero")

    async def test_anterior_completada(self, db, escenario, completar):
        ctx, order_id, ids = escenario
        await completar(ctx, ids[0])
        sesion = await completar(ctx, ids[1], "plan_casero")

        assert sesion.estado == "plan_casero"
        orden = await db.get(OrdenMedica, order_id)
        assert orden.sesiones_completadas == 2


class TestCierreDeOrden:

    async def test_cuenta_completadas(self, db, escenario, completar):
        ctx, order_id, ids = escenario
        await completar(ctx, ids[0])
        await db.commit()

        orden = await db.get(OrdenMedica, order_id)
        assert orden.sesiones_completadas == 1
        assert orden.estado == "activa"

    async def test_cierra_al_completar_todas(self, db, crear_terapeuta, crear_paciente, crear_orden,
                                             crear_evaluacion, completar):
        terapeuta, ctx = await crear_terapeuta()
        paciente = await crear_paciente()
        order_id, ids = await crear_orden(terapeuta, paciente, total_sesiones=2)
        await crear_evaluacion(order_id, terapeuta.id)

        await completar(ctx, ids[0])
        await completar(ctx, ids[1])
        await db.commit()

        orden = await db.get(OrdenMedica, order_id)
        assert orden.sesiones_completadas == 2
        assert orden.estado == "cerrada"
        assert orden.closed_at is not None


# ============================================
# COMPLETADO EN DOS PASOS
# ============================================

class TestCompletadoPendiente:

    async def test_la_evolucion_aplica_el_pendiente(self, db, escenario):
        ctx, order_id, ids = escenario
        pendiente = await start_completion(db, ctx, ids[0])
        assert pendiente.estado_objetivo == "completada"

        await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO})
        await db.commit()

        sesion = await db.get(Sesion, ids[0])
        assert sesion.estado == "completada"
        assert await get_pendiente(db, ids[0]) is None
        orden = await db.get(OrdenMedica, order_id)
        assert orden.sesiones_completadas == 1

    async def test_valida_guardas_al_iniciar(self, db, escenario):
        ctx, _, ids = escenario
        with pytest.raises(ErrorConsistencia):
            await start_completion(db, ctx, ids[0], "plan_casero")

    async def test_objetivo_invalido(self, db, escenario):
        ctx, _, ids = escenario
        with pytest.raises(ErrorValidacion):
            await start_completion(db, ctx, ids[0], "cancelada")

    async def test_reiniciar_actualiza_objetivo(self, db, escenario, completar):
        ctx, _, ids = escenario
        await completar(ctx, ids[0])
        await start_completion(db, ctx, ids[1])
        pendiente = await start_completion(db, ctx, ids[1], "plan_casero")
        assert pendiente.estado_objetivo == "plan_casero"

    async def test_con_evolucion_existente_se_reanuda(self, db, escenario):
        ctx, _, ids = escenario
        await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO})
        with pytest.raises(ErrorConsistencia):
            await start_completion(db, ctx, ids[0])

    async def test_abandonar(self, db, escenario):
        ctx, _, ids = escenario
        await start_completion(db, ctx, ids[0])
        await abandon_completion(db, ctx, ids[0])
        await db.commit()

        assert await get_pendiente(db, ids[0]) is None
        sesion = await db.get(Sesion, ids[0])
        assert sesion.estado == "programada"

    async def test_abandonar_sin_pendiente(self, db, escenario):
        ctx, _, ids = escenario
        with pytest.raises(NoEncontrado):
            await abandon_completion(db, ctx, ids[0])

    async def test_reanudar_flujo_cortado(self, db, escenario):
        """Evolución guardada pero la sesión quedó programada."""
        ctx, order_id, ids = escenario
        await crear_evolucion(db, ctx, ids[0], {"contenido": CONTENIDO})

        sesion = await resume_completion(db, ctx, ids[0])
        await db.commit()

        assert sesion.estado == "completada"
        orden = await db.get(OrdenMedica, order_id)
        assert orden.sesiones_completadas == 1

    async def test_reanudar_sin_evolucion(self, db, escenario):
        ctx, _, ids = escenario
        await start_completion(db, ctx, ids[0])
        with pytest.raises(ErrorConsistencia):
            await resume_completion(db, ctx, ids[0])
