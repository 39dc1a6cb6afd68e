from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class Lugar(BaseModel):
    codigo_lugar: Optional[str] = Field(..., min_length=3, max_length=20)
    nombre: str = Field(..., min_length=1, max_length=200)
    company_id: str
    direccion: Optional[str] = None
    coordenadas: Optional[dict] = None
    estado: str = Field(default="activo", description="activo, inactivo")
    fecha_registro: datetime = Field(default_factory=datetime.now)
