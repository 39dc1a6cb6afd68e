from datetime import datetime
from typing import Optional, List
from enum import Enum
from pydantic import BaseModel, Field


class EstadoCuentaCobro(str, Enum):
    PENDIENTE = "pendiente"
    CALCULADA = "calculada"
    PAGADA = "pagada"
    CANCELADA = "cancelada"


class EstadoSeccion(str, Enum):
    PENDIENTE = "pendiente"
    CALCULADA = "calculada"
    PARCIALMENTE_PAGADA = "parcialmente_pagada"
    PAGADA = "pagada"


class CuentaCobro(BaseModel):
    vehiculo_id: str
    placa: str
    propietario: Optional[dict] = None
    conductor_id: Optional[str] = None
    conductor_nombre: Optional[str] = None
    flota: Optional[str] = None
    valor_base: float = 0
    gastos_operacionales: float = 0
    gastos_preoperacionales: float = 0
    valor_final: float = 0
    estado: EstadoCuentaCobro = EstadoCuentaCobro.PENDIENTE
    doc_soporte: Optional[str] = None
    fecha_pago: Optional[datetime] = None
    n_egreso: Optional[str] = None

    class Config:
        use_enum_values = True


class TotalesSeccion(BaseModel):
    valor_base: float = 0
    gastos_operacionales: float = 0
    gastos_preoperacionales: float = 0
    valor_final: float = 0


class SeccionPagos(BaseModel):
    solicitud_id: str
    company_id: str
    cuentas_cobro: List[CuentaCobro] = Field(default_factory=list)
    totales: TotalesSeccion = Field(default_factory=TotalesSeccion)
    estado: EstadoSeccion = EstadoSeccion.PENDIENTE
    created: datetime = Field(default_factory=datetime.now)
    created_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        use_enum_values = True
