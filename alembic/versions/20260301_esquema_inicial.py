"""esquema inicial ERP clínico

Revision ID: 5f2c1a9e7b01
Revises:
Create Date: 2026-03-01 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "5f2c1a9e7b01"
down_revision = None
branch_labels = None
depends_on = None

ESPECIALIDAD = sa.Enum("fisioterapia", "fonoaudiologia", "terapia_ocupacional", "psicologia", "terapia_acuatica", name="especialidad")
UBICACION = sa.Enum("intramural", "domiciliaria", name="ubicacion_sesion")


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def _updated_at():
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True)


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255)),
        sa.Column("activo", sa.Boolean(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.Enum("admin", "terapeuta", name="app_role"), nullable=False),
        _created_at(),
        sa.UniqueConstraint("user_id", "role", name="uq_user_role"),
    )
    op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"])

    op.create_table(
        "admin_profiles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("cedula", sa.String(20), nullable=False),
        sa.Column("nombre_completo", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("telefono", sa.String(30)),
        sa.Column("last_login", sa.DateTime(timezone=True)),
        _created_at(),
        _updated_at(),
    )

    op.create_table(
        "therapist_profiles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("cedula", sa.String(20), nullable=False, unique=True),
        sa.Column("nombre_completo", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("telefono", sa.String(30)),
        sa.Column("especialidad", ESPECIALIDAD, nullable=False),
        sa.Column("firma_digital_url", sa.String(500)),
        sa.Column("activo", sa.Boolean(), nullable=False),
        sa.Column("last_login", sa.DateTime(timezone=True)),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_therapist_profiles_nombre_completo", "therapist_profiles", ["nombre_completo"])
    op.create_index("ix_therapist_profiles_especialidad", "therapist_profiles", ["especialidad"])
    op.create_index("ix_therapist_profiles_activo", "therapist_profiles", ["activo"])

    op.create_table(
        "access_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("ip_address", sa.String(64)),
        sa.Column("user_agent", sa.String(500)),
        _created_at(),
    )
    op.create_index("ix_access_logs_user_id", "access_logs", ["user_id"])

    op.create_table(
        "patients",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("nombre_completo", sa.String(200), nullable=False),
        sa.Column("cedula", sa.String(20)),
        sa.Column("sexo", sa.Enum("masculino", "femenino", "otro", name="sexo"), nullable=False),
        sa.Column("fecha_nacimiento", sa.Date(), nullable=False),
        sa.Column("ciudad", sa.String(100)),
        sa.Column("direccion", sa.String(255)),
        sa.Column("eps", sa.String(100)),
        sa.Column("ocupacion", sa.String(100)),
        sa.Column("telefono", sa.String(30)),
        sa.Column("email", sa.String(255)),
        sa.Column("acudiente_nombre", sa.String(200), nullable=False),
        sa.Column("acudiente_telefono", sa.String(30), nullable=False),
        sa.Column("acudiente_parentesco", sa.String(50), nullable=False),
        sa.Column("activo", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id")),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_patients_nombre_completo", "patients", ["nombre_completo"])
    op.create_index("ix_patients_cedula", "patients", ["cedula"])
    op.create_index("ix_patients_activo", "patients", ["activo"])

    op.create_table(
        "patient_documents",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("patient_id", sa.Integer(), sa.ForeignKey("patients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("nombre", sa.String(200), nullable=False),
        sa.Column("tipo", sa.String(30), nullable=False),
        sa.Column("file_url", sa.String(500), nullable=False),
        sa.Column("file_type", sa.String(100)),
        sa.Column("size", sa.Integer()),
        sa.Column("uploaded_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        _created_at(),
    )
    op.create_index("ix_patient_documents_patient_id", "patient_documents", ["patient_id"])

    op.create_table(
        "medical_orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("patient_id", sa.Integer(), sa.ForeignKey("patients.id"), nullable=False),
        sa.Column("therapist_id", sa.Integer(), sa.ForeignKey("therapist_profiles.id"), nullable=False),
        sa.Column("especialidad", ESPECIALIDAD, nullable=False),
        sa.Column("codigo_orden", sa.String(50)),
        sa.Column("diagnostico", sa.Text()),
        sa.Column("observaciones", sa.Text()),
        sa.Column("total_sesiones", sa.Integer(), nullable=False),
        sa.Column("sesiones_completadas", sa.Integer(), nullable=False),
        sa.Column("ubicacion", UBICACION, nullable=False),
        sa.Column("estado", sa.Enum("activa", "cerrada", name="estado_orden"), nullable=False, server_default="activa"),
        sa.Column("closed_at", sa.DateTime(timezone=True)),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id")),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_medical_orders_patient_id", "medical_orders", ["patient_id"])
    op.create_index("ix_medical_orders_therapist_id", "medical_orders", ["therapist_id"])
    op.create_index("ix_medical_orders_estado", "medical_orders", ["estado"])

    op.create_table(
        "sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("medical_order_id", sa.Integer(), sa.ForeignKey("medical_orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("numero_sesion", sa.Integer(), nullable=False),
        sa.Column("fecha_programada", sa.Date(), nullable=False),
        sa.Column("hora_inicio", sa.Time(), nullable=False),
        sa.Column("hora_fin", sa.Time()),
        sa.Column("ubicacion", UBICACION, nullable=False),
        sa.Column(
            "estado",
            sa.Enum("programada", "completada", "cancelada", "reprogramada", "plan_casero", name="estado_sesion"),
            nullable=False,
            server_default="programada",
        ),
        sa.Column("notas_cancelacion", sa.Text()),
        sa.Column("reprogramada_de", sa.Integer(), sa.ForeignKey("sessions.id")),
        sa.Column("reprogramada_a", sa.Integer(), sa.ForeignKey("sessions.id")),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_sessions_medical_order_id", "sessions", ["medical_order_id"])
    op.create_index("ix_sessions_fecha_programada", "sessions", ["fecha_programada"])
    op.create_index("ix_sessions_estado", "sessions", ["estado"])
    op.create_index("ix_sessions_reprogramada_de", "sessions", ["reprogramada_de"])
    op.create_index("ix_sessions_reprogramada_a", "sessions", ["reprogramada_a"])
    op.create_index("idx_ses_orden_num", "sessions", ["medical_order_id", "numero_sesion"])

    op.create_table(
        "order_transfers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("medical_order_id", sa.Integer(), sa.ForeignKey("medical_orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("from_therapist_id", sa.Integer(), sa.ForeignKey("therapist_profiles.id"), nullable=False),
        sa.Column("to_therapist_id", sa.Integer(), sa.ForeignKey("therapist_profiles.id"), nullable=False),
        sa.Column("motivo", sa.Text(), nullable=False),
        sa.Column("transferred_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        _created_at(),
    )
    op.create_index("ix_order_transfers_medical_order_id", "order_transfers", ["medical_order_id"])

    op.create_table(
        "evolutions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("sessions.id"), nullable=False, unique=True),
        sa.Column("therapist_id", sa.Integer(), sa.ForeignKey("therapist_profiles.id"), nullable=False),
        sa.Column("contenido", sa.Text(), nullable=False),
        sa.Column("procedimientos", sa.Text()),
        sa.Column("plan_tratamiento", sa.Text()),
        sa.Column("recomendaciones", sa.Text()),
        sa.Column("concepto_profesional", sa.Text()),
        sa.Column("evaluacion_final", sa.Text()),
        sa.Column("es_cierre", sa.Boolean(), nullable=False),
        sa.Column("firma_url", sa.String(500)),
        sa.Column("bloqueado", sa.Boolean(), nullable=False),
        sa.Column("bloqueado_at", sa.DateTime(timezone=True)),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_evolutions_therapist_id", "evolutions", ["therapist_id"])
    op.create_index("ix_evolutions_bloqueado", "evolutions", ["bloqueado"])

    op.create_table(
        "initial_evaluations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("medical_order_id", sa.Integer(), sa.ForeignKey("medical_orders.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("therapist_id", sa.Integer(), sa.ForeignKey("therapist_profiles.id"), nullable=False),
        sa.Column("diagnostico_cie10", sa.Text(), nullable=False),
        sa.Column("codigo_cie10", sa.String(20)),
        sa.Column("funciones_corporales", sa.Text()),
        sa.Column("estructuras_corporales", sa.Text()),
        sa.Column("actividades_participacion", sa.Text()),
        sa.Column("factores_ambientales", sa.Text()),
        sa.Column("factores_personales", sa.Text()),
        sa.Column("objetivos_generales", sa.Text(), nullable=False),
        sa.Column("objetivos_especificos", sa.Text()),
        sa.Column("plan_intervencion", sa.Text(), nullable=False),
        sa.Column("frecuencia_sesiones", sa.String(100)),
        sa.Column("duracion_estimada", sa.String(100)),
        _created_at(),
    )

    op.create_table(
        "pending_completions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("estado_objetivo", sa.Enum("completada", "plan_casero", name="estado_objetivo"), nullable=False),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        _created_at(),
    )

    op.create_table(
        "therapist_rates",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("therapist_id", sa.Integer(), sa.ForeignKey("therapist_profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("especialidad", ESPECIALIDAD, nullable=False),
        sa.Column("es_por_hora", sa.Boolean(), nullable=False),
        sa.Column("valor_sesion", sa.DECIMAL(14, 2)),
        sa.Column("valor_sesion_domiciliaria", sa.DECIMAL(14, 2)),
        sa.Column("valor_hora", sa.DECIMAL(14, 2)),
        sa.Column("valor_hora_domiciliaria", sa.DECIMAL(14, 2)),
        sa.Column("activo", sa.Boolean(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("therapist_id", "especialidad", name="uq_tarifa_ter_esp"),
    )
    op.create_index("ix_therapist_rates_therapist_id", "therapist_rates", ["therapist_id"])

    op.create_table(
        "payroll_periods",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("mes", sa.Integer(), nullable=False),
        sa.Column("anio", sa.Integer(), nullable=False),
        sa.Column("fecha_inicio", sa.Date(), nullable=False),
        sa.Column("fecha_fin", sa.Date(), nullable=False),
        sa.Column("estado", sa.Enum("abierto", "cerrado", "pagado", name="estado_periodo"), nullable=False, server_default="abierto"),
        sa.Column("notas", sa.Text()),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id")),
        sa.Column("closed_at", sa.DateTime(timezone=True)),
        sa.Column("closed_by", sa.Integer(), sa.ForeignKey("users.id")),
        sa.Column("paid_at", sa.DateTime(timezone=True)),
        sa.Column("version", sa.Integer(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("anio", "mes", name="uq_periodo_anio_mes"),
    )
    op.create_index("ix_payroll_periods_estado", "payroll_periods", ["estado"])

    op.create_table(
        "payroll_details",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("period_id", sa.Integer(), sa.ForeignKey("payroll_periods.id", ondelete="CASCADE"), nullable=False),
        sa.Column("therapist_id", sa.Integer(), sa.ForeignKey("therapist_profiles.id"), nullable=False),
        sa.Column("sesiones_intramural", sa.Integer(), nullable=False),
        sa.Column("sesiones_domiciliaria", sa.Integer(), nullable=False),
        sa.Column("horas_intramural", sa.DECIMAL(8, 2), nullable=False),
        sa.Column("horas_domiciliaria", sa.DECIMAL(8, 2), nullable=False),
        sa.Column("es_por_hora", sa.Boolean(), nullable=False),
        sa.Column("tarifa_sesion_intramural", sa.DECIMAL(14, 2)),
        sa.Column("tarifa_sesion_domiciliaria", sa.DECIMAL(14, 2)),
        sa.Column("tarifa_hora_intramural", sa.DECIMAL(14, 2)),
        sa.Column("tarifa_hora_domiciliaria", sa.DECIMAL(14, 2)),
        sa.Column("subtotal_intramural", sa.DECIMAL(14, 2), nullable=False),
        sa.Column("subtotal_domiciliaria", sa.DECIMAL(14, 2), nullable=False),
        sa.Column("total_bruto", sa.DECIMAL(14, 2), nullable=False),
        sa.Column("notas", sa.Text()),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("period_id", "therapist_id", name="uq_det_periodo_ter"),
    )
    op.create_index("ix_payroll_details_period_id", "payroll_details", ["period_id"])
    op.create_index("ix_payroll_details_therapist_id", "payroll_details", ["therapist_id"])


def downgrade():
    for tabla in (
        "payroll_details",
        "payroll_periods",
        "therapist_rates",
        "pending_completions",
        "initial_evaluations",
        "evolutions",
        "order_transfers",
        "sessions",
        "medical_orders",
        "patient_documents",
        "patients",
        "access_logs",
        "therapist_profiles",
        "admin_profiles",
        "user_roles",
        "users",
    ):
        op.drop_table(tabla)
