from __future__ import annotations
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class Especialidad(str, Enum):
    fisioterapia = "fisioterapia"
    fonoaudiologia = "fonoaudiologia"
    terapia_ocupacional = "terapia_ocupacional"
    psicologia = "psicologia"
    terapia_acuatica = "terapia_acuatica"


class TerapeutaCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    cedula: str = Field(..., min_length=5, max_length=20)
    nombre_completo: str = Field(..., min_length=3, max_length=200)
    telefono: Optional[str] = Field(None, max_length=30)
    especialidad: Especialidad
    firma_digital_url: Optional[str] = Field(None, max_length=500)


class TerapeutaUpdate(BaseModel):
    nombre_completo: Optional[str] = Field(None, min_length=3, max_length=200)
    telefono: Optional[str] = Field(None, max_length=30)
    firma_digital_url: Optional[str] = Field(None, max_length=500)


class TerapeutaRead(BaseModel):
    id: int
    user_id: int
    cedula: str
    nombre_completo: str
    email: str
    telefono: Optional[str]
    especialidad: Especialidad
    firma_digital_url: Optional[str]
    activo: bool

    class Config:
        from_attributes = True


class ActivoIn(BaseModel):
    activo: bool


# --------- Tarifas ---------
class TarifaCreate(BaseModel):
    especialidad: Optional[Especialidad] = None      # default: la del terapeuta
    es_por_hora: bool = False
    valor_sesion: Optional[Decimal] = Field(None, ge=0)
    valor_sesion_domiciliaria: Optional[Decimal] = Field(None, ge=0)
    valor_hora: Optional[Decimal] = Field(None, ge=0)
    valor_hora_domiciliaria: Optional[Decimal] = Field(None, ge=0)
    activo: bool = True


class TarifaUpdate(BaseModel):
    version: int = Field(..., ge=1, description="Versión leída; si cambió se responde 409")
    es_por_hora: Optional[bool] = None
    valor_sesion: Optional[Decimal] = Field(None, ge=0)
    valor_sesion_domiciliaria: Optional[Decimal] = Field(None, ge=0)
    valor_hora: Optional[Decimal] = Field(None, ge=0)
    valor_hora_domiciliaria: Optional[Decimal] = Field(None, ge=0)
    activo: Optional[bool] = None


class TarifaRead(BaseModel):
    id: int
    therapist_id: int
    especialidad: Especialidad
    es_por_hora: bool
    valor_sesion: Optional[Decimal]
    valor_sesion_domiciliaria: Optional[Decimal]
    valor_hora: Optional[Decimal]
    valor_hora_domiciliaria: Optional[Decimal]
    activo: bool
    version: int

    class Config:
        from_attributes = True
