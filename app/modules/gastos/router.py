from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
from app.core.database import get_database
from app.core.exceptions import ServiceError
from app.modules.auth.schemas.actor import Actor, ROLES_INTERNOS
from app.modules.auth.utils.dependencies import require_role
from app.modules.gastos.service import GastoService
from app.modules.gastos.schema import GastoCreate, GastoResponse
from app.modules.solicitudes.services.solicitud_service import SolicitudService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gastos", tags=["Gastos"])


@router.post("/", response_model=GastoResponse)
def crear_gasto(
    gasto: GastoCreate,
    current_user: Actor = Depends(require_role(ROLES_INTERNOS))
):
    try:
        db = get_database()
        gasto_service = GastoService(db)

        created_gasto = gasto_service.create_gasto(
            current_user.company_id,
            gasto.model_dump(),
            usuario=current_user.id
        )

        # El gasto vinculado cambia la liquidación de la solicitud
        if created_gasto.get("solicitud_id"):
            SolicitudService(db, gasto_service=gasto_service).recalcular_liquidacion(
                created_gasto["solicitud_id"]
            )

        return created_gasto

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al crear gasto: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.get("/", response_model=List[GastoResponse])
def listar_gastos(
    solicitud_id: Optional[str] = Query(None, description="Filtrar por solicitud"),
    vehiculo_id: Optional[str] = Query(None, description="Filtrar por vehículo"),
    current_user: Actor = Depends(require_role(ROLES_INTERNOS))
):
    try:
        db = get_database()
        gasto_service = GastoService(db)
        gastos = gasto_service.list_gastos(solicitud_id, vehiculo_id)
        return [g for g in gastos if g["company_id"] == current_user.company_id]

    except Exception as e:
        logger.error(f"Error al listar gastos: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")
