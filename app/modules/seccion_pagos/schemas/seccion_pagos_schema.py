from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel
from app.modules.seccion_pagos.models.seccion_pagos import (
    CuentaCobro, EstadoCuentaCobro, TotalesSeccion
)


class CuentaCobroUpdate(BaseModel):
    gastos_preoperacionales: Optional[float] = None
    estado: Optional[EstadoCuentaCobro] = None
    doc_soporte: Optional[str] = None
    fecha_pago: Optional[datetime] = None
    n_egreso: Optional[str] = None

    class Config:
        use_enum_values = True


class SeccionPagosResponse(BaseModel):
    id: str
    solicitud_id: str
    company_id: str
    cuentas_cobro: List[CuentaCobro]
    totales: TotalesSeccion
    estado: str
    created: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
