from __future__ import annotations
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class Sexo(str, Enum):
    masculino = "masculino"
    femenino = "femenino"
    otro = "otro"


class TipoDocumento(str, Enum):
    orden_medica = "orden_medica"
    diagnostico = "diagnostico"
    examen = "examen"
    imagen = "imagen"
    consentimiento = "consentimiento"
    otro = "otro"


class PacienteBase(BaseModel):
    nombre_completo: str = Field(..., min_length=3, max_length=200)
    cedula: Optional[str] = Field(None, max_length=20)
    sexo: Sexo
    fecha_nacimiento: date
    ciudad: Optional[str] = Field(None, max_length=100)
    direccion: Optional[str] = Field(None, max_length=255)
    eps: Optional[str] = Field(None, max_length=100)
    ocupacion: Optional[str] = Field(None, max_length=100)
    telefono: Optional[str] = Field(None, max_length=30)
    email: Optional[EmailStr] = None
    # acudiente obligatorio
    acudiente_nombre: str = Field(..., min_length=3, max_length=200)
    acudiente_telefono: str = Field(..., min_length=5, max_length=30)
    acudiente_parentesco: str = Field(..., min_length=2, max_length=50)


class PacienteCreate(PacienteBase):
    pass


class PacienteUpdate(BaseModel):
    nombre_completo: Optional[str] = Field(None, min_length=3, max_length=200)
    cedula: Optional[str] = Field(None, max_length=20)
    sexo: Optional[Sexo] = None
    fecha_nacimiento: Optional[date] = None
    ciudad: Optional[str] = None
    direccion: Optional[str] = None
    eps: Optional[str] = None
    ocupacion: Optional[str] = None
    telefono: Optional[str] = None
    email: Optional[EmailStr] = None
    acudiente_nombre: Optional[str] = Field(None, min_length=3, max_length=200)
    acudiente_telefono: Optional[str] = Field(None, min_length=5, max_length=30)
    acudiente_parentesco: Optional[str] = Field(None, min_length=2, max_length=50)


class PacienteRead(PacienteBase):
    id: int
    email: Optional[str] = None
    activo: bool

    class Config:
        from_attributes = True


class DocumentoRead(BaseModel):
    id: int
    patient_id: int
    nombre: str
    tipo: str
    file_url: str
    file_type: Optional[str]
    size: Optional[int]
    uploaded_by: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
