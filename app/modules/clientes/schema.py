from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel


class ClienteCreate(BaseModel):
    nombre: str
    documento: Optional[str] = None
    contacto_nombre: Optional[str] = None
    email: Optional[str] = None
    telefono: Optional[str] = None


class ClienteResponse(ClienteCreate):
    id: str
    company_id: str
    contratos: List[str] = []
    activo: bool
    fecha_registro: datetime

    class Config:
        from_attributes = True
