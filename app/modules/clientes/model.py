from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


class Cliente(BaseModel):
    nombre: str = Field(..., min_length=2, max_length=200)
    documento: Optional[str] = Field(None, description="NIT o documento del cliente")
    contacto_nombre: Optional[str] = None
    email: Optional[str] = None
    telefono: Optional[str] = None
    company_id: str
    contratos: List[str] = Field(default_factory=list, description="IDs de contratos asociados")
    activo: bool = True
    fecha_registro: datetime = Field(default_factory=datetime.now)
