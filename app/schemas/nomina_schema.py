from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class EstadoPeriodo(str, Enum):
    abierto = "abierto"
    cerrado = "cerrado"
    pagado = "pagado"


class PeriodoCreate(BaseModel):
    mes: int = Field(..., ge=1, le=12)
    anio: int = Field(..., ge=1900, le=3000)
    notas: Optional[str] = None


class PeriodoRead(BaseModel):
    id: int
    mes: int
    anio: int
    fecha_inicio: date
    fecha_fin: date
    estado: EstadoPeriodo
    notas: Optional[str]
    created_by: Optional[int]
    closed_at: Optional[datetime]
    closed_by: Optional[int]
    paid_at: Optional[datetime]
    version: int

    class Config:
        from_attributes = True


class VersionIn(BaseModel):
    version: int = Field(..., ge=1)


class DetalleRead(BaseModel):
    id: int
    period_id: int
    therapist_id: int
    terapeuta_nombre: Optional[str] = None
    terapeuta_especialidad: Optional[str] = None
    sesiones_intramural: int
    sesiones_domiciliaria: int
    horas_intramural: Decimal
    horas_domiciliaria: Decimal
    es_por_hora: bool
    tarifa_sesion_intramural: Optional[Decimal]
    tarifa_sesion_domiciliaria: Optional[Decimal]
    tarifa_hora_intramural: Optional[Decimal]
    tarifa_hora_domiciliaria: Optional[Decimal]
    subtotal_intramural: Decimal
    subtotal_domiciliaria: Decimal
    total_bruto: Decimal
    notas: Optional[str]

    class Config:
        from_attributes = True


class CalculoOut(BaseModel):
    period_id: int
    detalles: List[DetalleRead]
    advertencias: List[str]
    total_bruto: Decimal
