from typing import Optional, List
from enum import Enum
from pydantic import BaseModel, Field


class Rol(str, Enum):
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    COORDINADOR = "coordinador"
    COMERCIAL = "comercial"
    CONTABILIDAD = "contabilidad"
    OPERADOR = "operador"
    CONDUCTOR = "conductor"
    CLIENTE = "cliente"


ROLES_ADMIN = [Rol.SUPERADMIN, Rol.ADMIN]
ROLES_COORDINACION = [Rol.COORDINADOR, *ROLES_ADMIN]
ROLES_COMERCIAL = [Rol.COMERCIAL, *ROLES_ADMIN]
ROLES_CONTABILIDAD = [Rol.CONTABILIDAD, *ROLES_ADMIN]
ROLES_INTERNOS = [Rol.COORDINADOR, Rol.COMERCIAL, Rol.CONTABILIDAD, Rol.OPERADOR, *ROLES_ADMIN]


class Actor(BaseModel):
    """Usuario autenticado que ejecuta una operación."""
    id: str
    role: Rol
    company_id: Optional[str] = None
    cliente_id: Optional[str] = Field(None, description="Solo para usuarios con rol cliente")
    full_name: Optional[str] = None
    email: Optional[str] = None

    def tiene_rol(self, roles: List[Rol]) -> bool:
        return self.role in roles

    class Config:
        use_enum_values = False
