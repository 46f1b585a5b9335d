from typing import Literal, Optional
import datetime

from sqlalchemy import DECIMAL, Boolean, Date, DateTime, Enum, ForeignKey, Index, Integer, String, Text, Time, UniqueConstraint
from decimal import Decimal
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


ESPECIALIDADES = ("fisioterapia", "fonoaudiologia", "terapia_ocupacional", "psicologia", "terapia_acuatica")
UBICACIONES = ("intramural", "domiciliaria")
ESTADOS_SESION = ("programada", "completada", "cancelada", "reprogramada", "plan_casero")
ESTADOS_ORDEN = ("activa", "cerrada")
ESTADOS_PERIODO = ("abierto", "cerrado", "pagado")
ROLES = ("admin", "terapeuta")

Especialidad = Literal["fisioterapia", "fonoaudiologia", "terapia_ocupacional", "psicologia", "terapia_acuatica"]
Ubicacion = Literal["intramural", "domiciliaria"]
EstadoSesion = Literal["programada", "completada", "cancelada", "reprogramada", "plan_casero"]


class Base(DeclarativeBase):
    pass


class AuditMixin:
    # UTC y con zona para portabilidad
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),    # Postgres: NOW(); MySQL: CURRENT_TIMESTAMP()
        nullable=False
    )


class TimestampMixin(AuditMixin):
    updated_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )


# ==============================
# Usuarios / roles / perfiles
# ==============================

class Usuario(AuditMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    hashed_password: Mapped[Optional[str]] = mapped_column(String(255))
    activo: Mapped[bool] = mapped_column(Boolean, default=True)

    roles: Mapped[list["UserRole"]] = relationship(back_populates="usuario", cascade="all, delete-orphan", lazy="selectin")


class UserRole(AuditMixin, Base):
    __tablename__ = "user_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    role: Mapped[Literal["admin", "terapeuta"]] = mapped_column(Enum(*ROLES, name="app_role"))

    usuario: Mapped["Usuario"] = relationship(back_populates="roles")

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_role"),
    )


class AdminProfile(TimestampMixin, Base):
    __tablename__ = "admin_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True)
    cedula: Mapped[str] = mapped_column(String(20))
    nombre_completo: Mapped[str] = mapped_column(String(200))
    email: Mapped[str] = mapped_column(String(255))
    telefono: Mapped[Optional[str]] = mapped_column(String(30))
    last_login: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(timezone=True))


class TherapistProfile(TimestampMixin, Base):
    __tablename__ = "therapist_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True)
    cedula: Mapped[str] = mapped_column(String(20), unique=True)
    nombre_completo: Mapped[str] = mapped_column(String(200), index=True)
    email: Mapped[str] = mapped_column(String(255))
    telefono: Mapped[Optional[str]] = mapped_column(String(30))
    especialidad: Mapped[Especialidad] = mapped_column(Enum(*ESPECIALIDADES, name="especialidad"), index=True)
    firma_digital_url: Mapped[Optional[str]] = mapped_column(String(500))
    activo: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    last_login: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(timezone=True))


class AccessLog(AuditMixin, Base):
    __tablename__ = "access_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    action: Mapped[str] = mapped_column(String(30))   # login / logout
    ip_address: Mapped[Optional[str]] = mapped_column(String(64))
    user_agent: Mapped[Optional[str]] = mapped_column(String(500))


# ==============================
# Pacientes y documentos
# ==============================

class Paciente(TimestampMixin, Base):
    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nombre_completo: Mapped[str] = mapped_column(String(200), index=True)
    cedula: Mapped[Optional[str]] = mapped_column(String(20), index=True)
    sexo: Mapped[Literal["masculino", "femenino", "otro"]] = mapped_column(Enum("masculino", "femenino", "otro", name="sexo"))
    fecha_nacimiento: Mapped[datetime.date] = mapped_column(Date)
    ciudad: Mapped[Optional[str]] = mapped_column(String(100))
    direccion: Mapped[Optional[str]] = mapped_column(String(255))
    eps: Mapped[Optional[str]] = mapped_column(String(100))
    ocupacion: Mapped[Optional[str]] = mapped_column(String(100))
    telefono: Mapped[Optional[str]] = mapped_column(String(30))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    acudiente_nombre: Mapped[str] = mapped_column(String(200))
    acudiente_telefono: Mapped[str] = mapped_column(String(30))
    acudiente_parentesco: Mapped[str] = mapped_column(String(50))
    activo: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)


class DocumentoPaciente(AuditMixin, Base):
    __tablename__ = "patient_documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id", ondelete="CASCADE"), index=True)
    nombre: Mapped[str] = mapped_column(String(200))
    tipo: Mapped[str] = mapped_column(String(30))
    file_url: Mapped[str] = mapped_column(String(500))   # ruta relativa bajo MEDIA_ROOT
    file_type: Mapped[Optional[str]] = mapped_column(String(100))
    size: Mapped[Optional[int]] = mapped_column(Integer)
    uploaded_by: Mapped[int] = mapped_column(ForeignKey("users.id"))


# ==============================
# Órdenes médicas y sesiones
# ==============================

class OrdenMedica(TimestampMixin, Base):
    __tablename__ = "medical_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"), index=True)
    therapist_id: Mapped[int] = mapped_column(ForeignKey("therapist_profiles.id"), index=True)
    especialidad: Mapped[Especialidad] = mapped_column(Enum(*ESPECIALIDADES, name="especialidad"))
    codigo_orden: Mapped[Optional[str]] = mapped_column(String(50))
    diagnostico: Mapped[Optional[str]] = mapped_column(Text)
    observaciones: Mapped[Optional[str]] = mapped_column(Text)
    total_sesiones: Mapped[int] = mapped_column(Integer)
    sesiones_completadas: Mapped[int] = mapped_column(Integer, default=0)
    ubicacion: Mapped[Ubicacion] = mapped_column(Enum(*UBICACIONES, name="ubicacion_sesion"), default="intramural")
    estado: Mapped[Literal["activa", "cerrada"]] = mapped_column(
        Enum(*ESTADOS_ORDEN, name="estado_orden"), default="activa", server_default="activa", index=True
    )
    closed_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)

    paciente: Mapped["Paciente"] = relationship(lazy="selectin")
    terapeuta: Mapped["TherapistProfile"] = relationship(lazy="selectin")


class Sesion(TimestampMixin, Base):
    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    medical_order_id: Mapped[int] = mapped_column(ForeignKey("medical_orders.id", ondelete="CASCADE"), index=True)
    # Una reprogramación repite el número, por eso no hay unique (orden, numero)
    numero_sesion: Mapped[int] = mapped_column(Integer)
    fecha_programada: Mapped[datetime.date] = mapped_column(Date, index=True)
    hora_inicio: Mapped[datetime.time] = mapped_column(Time)
    hora_fin: Mapped[Optional[datetime.time]] = mapped_column(Time)
    ubicacion: Mapped[Ubicacion] = mapped_column(Enum(*UBICACIONES, name="ubicacion_sesion"), default="intramural")
    estado: Mapped[EstadoSesion] = mapped_column(
        Enum(*ESTADOS_SESION, name="estado_sesion"), default="programada", server_default="programada", index=True
    )
    notas_cancelacion: Mapped[Optional[str]] = mapped_column(Text)

    # encadenamiento de reprogramación (referencia mutua, no pertenencia)
    reprogramada_de: Mapped[Optional[int]] = mapped_column(ForeignKey("sessions.id"), nullable=True, index=True)
    reprogramada_a: Mapped[Optional[int]] = mapped_column(ForeignKey("sessions.id"), nullable=True, index=True)

    orden: Mapped["OrdenMedica"] = relationship(lazy="selectin")

    __table_args__ = (
        Index("idx_ses_orden_num", "medical_order_id", "numero_sesion"),
    )


class OrderTransfer(AuditMixin, Base):
    __tablename__ = "order_transfers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    medical_order_id: Mapped[int] = mapped_column(ForeignKey("medical_orders.id", ondelete="CASCADE"), index=True)
    from_therapist_id: Mapped[int] = mapped_column(ForeignKey("therapist_profiles.id"))
    to_therapist_id: Mapped[int] = mapped_column(ForeignKey("therapist_profiles.id"))
    motivo: Mapped[str] = mapped_column(Text)
    transferred_by: Mapped[int] = mapped_column(ForeignKey("users.id"))


# ==============================
# Registros clínicos
# ==============================

class Evolucion(TimestampMixin, Base):
    __tablename__ = "evolutions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(ForeignKey("sessions.id"), unique=True)
    therapist_id: Mapped[int] = mapped_column(ForeignKey("therapist_profiles.id"), index=True)
    contenido: Mapped[str] = mapped_column(Text)
    procedimientos: Mapped[Optional[str]] = mapped_column(Text)
    plan_tratamiento: Mapped[Optional[str]] = mapped_column(Text)
    recomendaciones: Mapped[Optional[str]] = mapped_column(Text)
    concepto_profesional: Mapped[Optional[str]] = mapped_column(Text)
    evaluacion_final: Mapped[Optional[str]] = mapped_column(Text)
    es_cierre: Mapped[bool] = mapped_column(Boolean, default=False)
    firma_url: Mapped[Optional[str]] = mapped_column(String(500))

    # override administrativo; el vencimiento por tiempo se calcula en vivo
    bloqueado: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    bloqueado_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(timezone=True))



class EvaluacionInicial(AuditMixin, Base):
    __tablename__ = "initial_evaluations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    medical_order_id: Mapped[int] = mapped_column(ForeignKey("medical_orders.id", ondelete="CASCADE"), unique=True)
    therapist_id: Mapped[int] = mapped_column(ForeignKey("therapist_profiles.id"))
    # CIE-10
    diagnostico_cie10: Mapped[str] = mapped_column(Text)
    codigo_cie10: Mapped[Optional[str]] = mapped_column(String(20))
    # CIF
    funciones_corporales: Mapped[Optional[str]] = mapped_column(Text)
    estructuras_corporales: Mapped[Optional[str]] = mapped_column(Text)
    actividades_participacion: Mapped[Optional[str]] = mapped_column(Text)
    factores_ambientales: Mapped[Optional[str]] = mapped_column(Text)
    factores_personales: Mapped[Optional[str]] = mapped_column(Text)
    # plan
    objetivos_generales: Mapped[str] = mapped_column(Text)
    objetivos_especificos: Mapped[Optional[str]] = mapped_column(Text)
    plan_intervencion: Mapped[str] = mapped_column(Text)
    frecuencia_sesiones: Mapped[Optional[str]] = mapped_column(String(100))
    duracion_estimada: Mapped[Optional[str]] = mapped_column(String(100))


class CompletadoPendiente(AuditMixin, Base):
    """Intención registrada de completar una sesión; se aplica al guardar la evolución."""
    __tablename__ = "pending_completions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(ForeignKey("sessions.id", ondelete="CASCADE"), unique=True)
    estado_objetivo: Mapped[Literal["completada", "plan_casero"]] = mapped_column(
        Enum("completada", "plan_casero", name="estado_objetivo")
    )
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id"))


# ==============================
# Nómina
# ==============================

class TarifaTerapeuta(TimestampMixin, Base):
    __tablename__ = "therapist_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    therapist_id: Mapped[int] = mapped_column(ForeignKey("therapist_profiles.id", ondelete="CASCADE"), index=True)
    especialidad: Mapped[Especialidad] = mapped_column(Enum(*ESPECIALIDADES, name="especialidad"))
    es_por_hora: Mapped[bool] = mapped_column(Boolean, default=False)
    valor_sesion: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(14, 2))
    valor_sesion_domiciliaria: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(14, 2))
    valor_hora: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(14, 2))
    valor_hora_domiciliaria: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(14, 2))
    activo: Mapped[bool] = mapped_column(Boolean, default=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        UniqueConstraint("therapist_id", "especialidad", name="uq_tarifa_ter_esp"),
    )


class PeriodoNomina(AuditMixin, Base):
    __tablename__ = "payroll_periods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mes: Mapped[int] = mapped_column(Integer)                 # 1..12
    anio: Mapped[int] = mapped_column(Integer)                # 1900..3000
    fecha_inicio: Mapped[datetime.date] = mapped_column(Date)
    fecha_fin: Mapped[datetime.date] = mapped_column(Date)
    estado: Mapped[Literal["abierto", "cerrado", "pagado"]] = mapped_column(
        Enum(*ESTADOS_PERIODO, name="estado_periodo"), default="abierto", server_default="abierto", index=True
    )
    notas: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    closed_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(timezone=True))
    closed_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    paid_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        UniqueConstraint("anio", "mes", name="uq_periodo_anio_mes"),
    )


class DetalleNomina(TimestampMixin, Base):
    __tablename__ = "payroll_details"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    period_id: Mapped[int] = mapped_column(ForeignKey("payroll_periods.id", ondelete="CASCADE"), index=True)
    therapist_id: Mapped[int] = mapped_column(ForeignKey("therapist_profiles.id"), index=True)

    sesiones_intramural: Mapped[int] = mapped_column(Integer, default=0)
    sesiones_domiciliaria: Mapped[int] = mapped_column(Integer, default=0)
    horas_intramural: Mapped[Decimal] = mapped_column(DECIMAL(8, 2), default=Decimal("0"))
    horas_domiciliaria: Mapped[Decimal] = mapped_column(DECIMAL(8, 2), default=Decimal("0"))

    # snapshot de la tarifa aplicada
    es_por_hora: Mapped[bool] = mapped_column(Boolean, default=False)
    tarifa_sesion_intramural: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(14, 2))
    tarifa_sesion_domiciliaria: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(14, 2))
    tarifa_hora_intramural: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(14, 2))
    tarifa_hora_domiciliaria: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(14, 2))

    subtotal_intramural: Mapped[Decimal] = mapped_column(DECIMAL(14, 2), default=Decimal("0"))
    subtotal_domiciliaria: Mapped[Decimal] = mapped_column(DECIMAL(14, 2), default=Decimal("0"))
    total_bruto: Mapped[Decimal] = mapped_column(DECIMAL(14, 2), default=Decimal("0"))
    notas: Mapped[Optional[str]] = mapped_column(Text)

    terapeuta: Mapped["TherapistProfile"] = relationship(lazy="selectin")

    __table_args__ = (
        UniqueConstraint("period_id", "therapist_id", name="uq_det_periodo_ter"),
    )
