from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
import logging
import uvicorn
from contextlib import asynccontextmanager
from app.core.config import settings
from app.core.database import get_database, connect_to_mongo, close_mongo_connection, ensure_indexes
from app.modules.auth.utils.dependencies import get_current_user
from app.modules.auth.routers import auth
from app.modules.flota.router import router as flota_router
from app.modules.clientes.router import router as clientes_router
from app.modules.gastos.router import router as gastos_router
from app.modules.disponibilidad.routes.disponibilidad_routes import router as disponibilidad_router
from app.modules.contratos.routes.contrato_routes import router as contratos_router
from app.modules.seccion_pagos.routes.seccion_pagos_routes import router as seccion_pagos_router
from app.modules.solicitudes.routes.solicitud_routes import router as solicitudes_router
from app.modules.prefacturas.routes.prefactura_routes import router as prefacturas_router
from app.modules.preliquidaciones.routes.preliquidacion_routes import router as preliquidaciones_router

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(settings.APP_NAME)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager para manejar eventos de inicio y cierre
    """
    logger.info("Iniciando aplicación...")

    try:
        ensure_indexes(get_database())
        logger.info("Índices verificados")
    except Exception as e:
        logger.error(f"Error inicializando base de datos: {str(e)}")

    yield

    logger.info("Cerrando aplicación...")
    close_mongo_connection()


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)

    app.include_router(auth.router)

    app.include_router(flota_router, dependencies=[Depends(get_current_user)])
    app.include_router(clientes_router, dependencies=[Depends(get_current_user)])
    app.include_router(gastos_router, dependencies=[Depends(get_current_user)])
    app.include_router(disponibilidad_router, dependencies=[Depends(get_current_user)])
    app.include_router(contratos_router, dependencies=[Depends(get_current_user)])
    app.include_router(seccion_pagos_router, dependencies=[Depends(get_current_user)])
    app.include_router(solicitudes_router, dependencies=[Depends(get_current_user)])
    app.include_router(prefacturas_router, dependencies=[Depends(get_current_user)])
    app.include_router(preliquidaciones_router, dependencies=[Depends(get_current_user)])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", tags=["root"])
    async def read_root():
        return {"message": f"{settings.APP_NAME} API"}

    @app.get("/health", tags=["health"])
    async def health():
        res = connect_to_mongo()
        return {"status": res}

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
