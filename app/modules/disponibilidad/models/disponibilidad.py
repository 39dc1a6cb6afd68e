from typing import Optional, List
from pydantic import BaseModel, Field


class Conflicto(BaseModel):
    solicitud_id: str
    he: Optional[str] = None
    inicio: str = Field(..., description="HH:MM")
    fin: str = Field(..., description="HH:MM; 24:00 cuando no hay hora final")


class DisponibilidadVehiculo(BaseModel):
    vehiculo_id: str
    placa: str
    seats: int
    tipo: Optional[str] = None
    flota: Optional[str] = None
    prioridad_flota: int = 0
    disponible: bool
    conflicto: Optional[Conflicto] = None
    motivo: Optional[str] = None
    conductor_seleccionado: Optional[str] = None
    conductores_disponibles: List[str] = Field(default_factory=list)


class Ocupacion(BaseModel):
    """Intervalo ocupado por una solicitud aceptada dentro de un día."""
    solicitud_id: str
    he: Optional[str] = None
    inicio: int
    fin: int
    vehiculos: List[str] = Field(default_factory=list)
    conductores: List[str] = Field(default_factory=list)
