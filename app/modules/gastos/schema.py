from typing import Optional, List
from pydantic import BaseModel
from datetime import datetime
from app.modules.gastos.model import DetalleGasto


class GastoCreate(BaseModel):
    vehiculo_id: str
    solicitud_id: Optional[str] = None
    fecha_gasto: Optional[datetime] = None
    detalles_gastos: List[DetalleGasto]


class GastoResponse(BaseModel):
    id: str
    company_id: str
    vehiculo_id: str
    placa: Optional[str] = None
    solicitud_id: Optional[str] = None
    fecha_gasto: datetime
    detalles_gastos: List[DetalleGasto]
    total: float
    estado: str = "no_liquidado"
    preliquidacion_id: Optional[str] = None
    fecha_registro: datetime
    usuario_registro: Optional[str] = None

    class Config:
        from_attributes = True
