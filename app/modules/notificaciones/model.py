from datetime import datetime
from typing import Optional, List, Dict, Any
from enum import Enum
from pydantic import BaseModel, Field


class EventoNotificacion(str, Enum):
    SOLICITUD_CREADA_CLIENTE = "solicitud_creada_cliente"
    SOLICITUD_APROBADA = "solicitud_aprobada"
    PREFACTURA_ENVIADA = "prefactura_enviada"
    PRELIQUIDACION_ENVIADA = "preliquidacion_enviada"


class Notificacion(BaseModel):
    evento: EventoNotificacion
    destinatarios: List[str] = Field(default_factory=list, description="Correos de los destinatarios")
    payload: Dict[str, Any] = Field(default_factory=dict)
    estado: str = Field(default="pendiente", description="pendiente, enviada")
    fecha_creacion: datetime = Field(default_factory=datetime.now)
    error: Optional[str] = None

    class Config:
        use_enum_values = True
