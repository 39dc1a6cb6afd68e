from fastapi import APIRouter, Depends, HTTPException
from app.core.database import get_database
from app.modules.auth.schemas.actor import Actor, ROLES_INTERNOS
from app.modules.auth.utils.dependencies import require_role
from app.modules.clientes.service import ClienteService
from app.modules.clientes.schema import ClienteCreate, ClienteResponse
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clientes", tags=["Clientes"])


@router.post("/", response_model=ClienteResponse)
def crear_cliente(
    cliente: ClienteCreate,
    current_user: Actor = Depends(require_role(ROLES_INTERNOS))
):
    try:
        db = get_database()
        cliente_service = ClienteService(db)
        return cliente_service.create_cliente(current_user.company_id, cliente.model_dump())

    except Exception as e:
        logger.error(f"Error al crear cliente: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.get("/{cliente_id}", response_model=ClienteResponse)
def obtener_cliente(
    cliente_id: str,
    current_user: Actor = Depends(require_role(ROLES_INTERNOS))
):
    try:
        db = get_database()
        cliente_service = ClienteService(db)

        cliente = cliente_service.get_cliente_by_id(cliente_id)
        if not cliente or cliente["company_id"] != current_user.company_id:
            raise HTTPException(status_code=404, detail="Cliente no encontrado")

        return cliente

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error al obtener cliente: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")
