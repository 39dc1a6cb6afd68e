from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


class GenerarPreliquidacionRequest(BaseModel):
    solicitudes_ids: List[str] = Field(..., min_length=1)
    gastos_operacionales_ids: List[str] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "solicitudes_ids": ["6650c0ffee0000000000dddd", "6650c0ffee0000000000eeee"],
                "gastos_operacionales_ids": ["6650c0ffee0000000000abcd"]
            }
        }


class GastosPendientesRequest(BaseModel):
    solicitudes_ids: List[str] = Field(default_factory=list)


class NotasPreliquidacionRequest(BaseModel):
    notas: Optional[str] = None


class EnvioPreliquidacionResponse(BaseModel):
    fecha: datetime
    estado: str
    enviado_por: Optional[str] = None
    notas: Optional[str] = None


class PreliquidacionResponse(BaseModel):
    id: str
    company_id: str
    numero: str
    fecha: datetime
    cliente_id: Optional[str] = None
    cliente_nombre: Optional[str] = None
    propietario: Optional[dict] = None
    solicitudes_ids: List[str]
    gastos_operacionales_ids: List[str] = []
    total_solicitudes: float
    total_gastos_operacionales: float
    total_preliquidacion: float
    estado: str
    aprobada_por: Optional[str] = None
    aprobada_fecha: Optional[datetime] = None
    rechazada_por: Optional[str] = None
    rechazada_fecha: Optional[datetime] = None
    notas: Optional[str] = None
    enviada_al_cliente: bool = False
    fecha_envio_cliente: Optional[datetime] = None
    enviada_por: Optional[str] = None
    historial_envios: List[EnvioPreliquidacionResponse] = []
    created_by: Optional[str] = None

    class Config:
        from_attributes = True
