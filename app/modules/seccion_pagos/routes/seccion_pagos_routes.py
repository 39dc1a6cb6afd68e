from fastapi import APIRouter, Depends, HTTPException
from app.core.database import get_database
from app.core.exceptions import ServiceError
from app.modules.auth.schemas.actor import Actor, Rol, ROLES_INTERNOS
from app.modules.auth.utils.dependencies import require_role
from app.modules.seccion_pagos.schemas.seccion_pagos_schema import CuentaCobroUpdate, SeccionPagosResponse
from app.modules.seccion_pagos.services.seccion_pagos_service import SeccionPagosService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/secciones-pago", tags=["Sección de pagos"])

ROLES_PAGOS = [Rol.CONTABILIDAD, Rol.COORDINADOR, Rol.ADMIN, Rol.SUPERADMIN]


@router.get("/solicitud/{solicitud_id}", response_model=SeccionPagosResponse)
def obtener_seccion_por_solicitud(
    solicitud_id: str,
    current_user: Actor = Depends(require_role(ROLES_INTERNOS))
):
    try:
        db = get_database()
        seccion_service = SeccionPagosService(db)

        seccion = seccion_service.get_by_solicitud(solicitud_id)
        if seccion["company_id"] != current_user.company_id:
            raise HTTPException(status_code=404, detail="Sección de pagos no encontrada")
        return seccion

    except HTTPException:
        raise
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al obtener sección de pagos: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")


@router.patch("/{seccion_id}/cuentas/{vehiculo_id}", response_model=SeccionPagosResponse)
def actualizar_cuenta_cobro(
    seccion_id: str,
    vehiculo_id: str,
    cambios: CuentaCobroUpdate,
    current_user: Actor = Depends(require_role(ROLES_PAGOS))
):
    try:
        db = get_database()
        seccion_service = SeccionPagosService(db)
        return seccion_service.update_cuenta_cobro(
            seccion_id, vehiculo_id, cambios.model_dump(exclude_unset=True), current_user.company_id
        )

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error al actualizar cuenta de cobro: {str(e)}")
        raise HTTPException(status_code=500, detail="Error interno del servidor")
