from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)


class Database:
    client: MongoClient = None
    _connected: bool = False


db = Database()


def get_database():
    # Conectar automáticamente si no está conectado
    if not db._connected:
        connect_to_mongo()

    if db.client is None:
        raise RuntimeError(
            "La base de datos no está conectada. "
            "Asegúrate de que MongoDB esté corriendo."
        )

    return db.client[settings.DATABASE_NAME]


def connect_to_mongo():
    # Evitar reconexiones múltiples
    if db._connected:
        logger.debug("Ya existe una conexión activa a MongoDB")
        return "connected"

    try:
        logger.info(f"Intentando conectar a MongoDB: {settings.MONGODB_URL}")

        db.client = MongoClient(
            settings.MONGODB_URL,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=5000,
        )

        db.client.admin.command('ping')
        db._connected = True

        logger.info(f"Conectado a MongoDB, base de datos: {settings.DATABASE_NAME}")
        return "connected"

    except ConnectionFailure as e:
        logger.error(f"Error al conectar a MongoDB: {e}")
        db.client = None
        raise RuntimeError("No se pudo conectar a MongoDB") from e


def use_client(client) -> None:
    """Inyecta un cliente ya construido (pruebas o scripts)."""
    db.client = client
    db._connected = client is not None


def close_mongo_connection():
    if db.client:
        db.client.close()
        db._connected = False
        logger.info("Conexión a MongoDB cerrada")
    else:
        logger.warning("No hay conexión activa para cerrar")


def ensure_indexes(database) -> None:
    database["solicitudes"].create_index([("company_id", ASCENDING), ("fecha", DESCENDING)])
    database["solicitudes"].create_index([("cliente_id", ASCENDING)])
    database["solicitudes"].create_index([("vehiculo_id", ASCENDING)])
    database["solicitudes"].create_index([("vehicle_assignments.vehiculo_id", ASCENDING)])
    database["solicitudes"].create_index([("status", ASCENDING)])
    database["solicitudes"].create_index([("he", ASCENDING)])
    database["contratos"].create_index([("company_id", ASCENDING), ("client_id", ASCENDING)])
    database["contrato_historial"].create_index([("contrato_id", ASCENDING), ("fecha", ASCENDING)])
    database["prefactura_historial"].create_index([("solicitud_id", ASCENDING), ("fecha", ASCENDING)])
    database["secciones_pago"].create_index([("solicitud_id", ASCENDING)], unique=True)
    database["gastos_operacionales"].create_index([("solicitud_id", ASCENDING), ("vehiculo_id", ASCENDING)])
    database["gastos_operacionales"].create_index([("vehiculo_id", ASCENDING), ("estado", ASCENDING)])
    database["preliquidaciones"].create_index([("company_id", ASCENDING), ("fecha", DESCENDING)])
    database["preliquidaciones"].create_index([("solicitudes_ids", ASCENDING)])
    database["preliquidaciones"].create_index([("estado", ASCENDING)])
