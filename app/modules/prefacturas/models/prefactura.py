from datetime import datetime
from typing import Optional, List
from enum import Enum
from pydantic import BaseModel, Field


class EstadoPrefactura(str, Enum):
    PENDIENTE = "pendiente"
    ACEPTADA = "aceptada"
    RECHAZADA = "rechazada"


class EventoPrefactura(str, Enum):
    GENERADA = "generada"
    APROBADA = "aprobada"
    REENVIO_APROBACION = "reenvio_aprobacion"
    RECHAZADA = "rechazada"
    ENVIADA = "enviada"
    APROBADA_CLIENTE = "aprobada_cliente"
    RECHAZADA_CLIENTE = "rechazada_cliente"


class Prefactura(BaseModel):
    numero: str
    fecha_generacion: datetime = Field(default_factory=datetime.now)
    generada_por: Optional[str] = None
    solicitudes: List[str] = Field(default_factory=list, description="Solicitudes cubiertas por la prefactura")
    aprobada: bool = False
    rechazada: bool = False
    estado: EstadoPrefactura = EstadoPrefactura.PENDIENTE
    enviada_al_cliente: bool = False
    fecha_envio: Optional[datetime] = None
    aprobada_por: Optional[str] = None
    fecha_aprobacion: Optional[datetime] = None
    rechazada_por: Optional[str] = None
    fecha_rechazo: Optional[datetime] = None

    class Config:
        use_enum_values = True


class HistorialPrefactura(BaseModel):
    """Evento del flujo de prefactura; la colección solo admite inserciones."""
    solicitud_id: str
    numero: str
    tipo: EventoPrefactura
    fecha: datetime = Field(default_factory=datetime.now)
    usuario: Optional[str] = None
    estado_resultante: Optional[str] = None
    notas: Optional[str] = None

    class Config:
        use_enum_values = True
