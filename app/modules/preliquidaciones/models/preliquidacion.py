from datetime import datetime
from typing import Optional, List
from enum import Enum
from pydantic import BaseModel, Field


class EstadoPreliquidacion(str, Enum):
    PENDIENTE = "pendiente"
    APROBADA = "aprobada"
    RECHAZADA = "rechazada"


class EnvioPreliquidacion(BaseModel):
    fecha: datetime = Field(default_factory=datetime.now)
    estado: EstadoPreliquidacion
    enviado_por: Optional[str] = None
    notas: Optional[str] = None

    class Config:
        use_enum_values = True


class Preliquidacion(BaseModel):
    """
    Liquidación con el propietario de los vehículos afiliados o externos que
    prestaron servicios ya facturados a un mismo cliente.

    total_preliquidacion = total_solicitudes - total_gastos_operacionales
    """
    company_id: str
    numero: str
    fecha: datetime = Field(default_factory=datetime.now)
    cliente_id: Optional[str] = None
    cliente_nombre: Optional[str] = None
    propietario: Optional[dict] = Field(None, description="Propietario común de los vehículos")

    solicitudes_ids: List[str] = Field(..., min_length=1)
    gastos_operacionales_ids: List[str] = Field(default_factory=list)

    total_solicitudes: float = 0
    total_gastos_operacionales: float = 0
    total_preliquidacion: float = 0

    estado: EstadoPreliquidacion = EstadoPreliquidacion.PENDIENTE
    aprobada_por: Optional[str] = None
    aprobada_fecha: Optional[datetime] = None
    rechazada_por: Optional[str] = None
    rechazada_fecha: Optional[datetime] = None
    notas: Optional[str] = None

    enviada_al_cliente: bool = False
    fecha_envio_cliente: Optional[datetime] = None
    enviada_por: Optional[str] = None
    historial_envios: List[EnvioPreliquidacion] = Field(default_factory=list)

    created: datetime = Field(default_factory=datetime.now)
    created_by: Optional[str] = None
    last_modified_by: Optional[str] = None

    class Config:
        use_enum_values = True
