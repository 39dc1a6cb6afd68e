"""
Fixtures compartidas: base de datos en memoria (mongomock) con una empresa,
usuarios de cada rol, un cliente y una flota pequeña.
"""
from datetime import date
import mongomock
import pytest
from bson import ObjectId

from app.core.database import use_client
from app.core.config import settings
from app.modules.auth.schemas.actor import Actor, Rol
from app.modules.flota.service import FlotaService
from app.modules.clientes.service import ClienteService
from app.modules.gastos.service import GastoService
from app.modules.solicitudes.schemas.solicitud_schema import AceptarSolicitudRequest, SolicitudClienteCreate
from app.modules.solicitudes.services.solicitud_service import SolicitudService

COMPANY_ID = "6650c0ffee0000000000aaaa"
OTRA_COMPANY_ID = "6650c0ffee0000000000ffff"
FECHA = date(2024, 1, 1)


@pytest.fixture
def mongo_client():
    client = mongomock.MongoClient()
    use_client(client)
    yield client
    use_client(None)


@pytest.fixture
def db(mongo_client):
    return mongo_client[settings.DATABASE_NAME]


def _crear_usuario(db, username, role, **extra):
    user = {
        "username": username,
        "role": role.value,
        "company_id": COMPANY_ID,
        "full_name": username.capitalize(),
        "email": f"{username}@transportes.test",
        "telefono": "3000000000",
        "is_active": True,
        **extra
    }
    user["_id"] = db["users"].insert_one(user).inserted_id
    return user


def _actor(user) -> Actor:
    return Actor(
        id=str(user["_id"]),
        role=user["role"],
        company_id=user.get("company_id"),
        cliente_id=user.get("cliente_id"),
        full_name=user.get("full_name"),
        email=user.get("email")
    )


@pytest.fixture
def cliente(db):
    return ClienteService(db).create_cliente(COMPANY_ID, {
        "nombre": "Transportes Andinos S.A.S.",
        "documento": "900123456",
        "contacto_nombre": "Laura Gómez",
        "email": "compras@andinos.test",
        "telefono": "6041234567"
    })


@pytest.fixture
def usuarios(db, cliente):
    return {
        "superadmin": _crear_usuario(db, "root", Rol.SUPERADMIN),
        "admin": _crear_usuario(db, "admin", Rol.ADMIN),
        "coordinador": _crear_usuario(db, "coordinador", Rol.COORDINADOR),
        "comercial": _crear_usuario(db, "comercial", Rol.COMERCIAL),
        "contabilidad": _crear_usuario(db, "contabilidad", Rol.CONTABILIDAD),
        "operador": _crear_usuario(db, "operador", Rol.OPERADOR),
        "cliente": _crear_usuario(db, "cliente", Rol.CLIENTE, cliente_id=cliente["id"]),
        "conductor1": _crear_usuario(db, "conductor1", Rol.CONDUCTOR),
        "conductor2": _crear_usuario(db, "conductor2", Rol.CONDUCTOR),
        "conductor3": _crear_usuario(db, "conductor3", Rol.CONDUCTOR),
    }


@pytest.fixture
def actores(usuarios):
    return {nombre: _actor(user) for nombre, user in usuarios.items()}


@pytest.fixture
def flota(db, usuarios):
    """Tres vehículos: dos buses de 40 (propio y afiliado) y una buseta de 30."""
    service = FlotaService(db)
    return {
        "bus1": service.create_vehiculo(COMPANY_ID, {
            "placa": "ABC-123", "seats": 40, "tipo": "bus", "flota": "propio",
            "driver_id": str(usuarios["conductor1"]["_id"])
        }),
        "bus2": service.create_vehiculo(COMPANY_ID, {
            "placa": "DEF 456", "seats": 40, "tipo": "bus", "flota": "afiliado",
            "driver_id": str(usuarios["conductor2"]["_id"])
        }),
        "buseta": service.create_vehiculo(COMPANY_ID, {
            "placa": "GHI789", "seats": 30, "tipo": "buseta", "flota": "propio",
            "driver_id": str(usuarios["conductor3"]["_id"]),
            "conductores_secundarios": [str(usuarios["conductor1"]["_id"])]
        }),
    }


@pytest.fixture
def vehiculo_ajeno(db):
    return FlotaService(db).create_vehiculo(OTRA_COMPANY_ID, {
        "placa": "ZZZ999", "seats": 20, "tipo": "van", "driver_id": str(ObjectId())
    })


@pytest.fixture
def solicitud_service(db):
    return SolicitudService(db)


@pytest.fixture
def crear_pendiente(solicitud_service, actores):
    def _crear(n_pasajeros=30, hora_inicio="08:00", **extra):
        payload = SolicitudClienteCreate(
            fecha=FECHA,
            hora_inicio=hora_inicio,
            origen="Medellín",
            destino="Aeropuerto JMC",
            n_pasajeros=n_pasajeros,
            **extra
        ).model_dump()
        return solicitud_service.create_by_client(actores["cliente"], payload)
    return _crear


@pytest.fixture
def crear_aceptada(solicitud_service, actores, flota, crear_pendiente):
    """Solicitud de cliente aceptada por coordinación con la buseta GHI789."""
    def _crear(placa="GHI789", n_pasajeros=30, hora_inicio="08:00", **aceptar):
        pendiente = crear_pendiente(n_pasajeros=n_pasajeros, hora_inicio=hora_inicio)
        payload = AceptarSolicitudRequest(placa=placa, **aceptar).model_dump()
        return solicitud_service.accept(pendiente["id"], actores["coordinador"], payload)
    return _crear


def registrar_gasto(db, solicitud, vehiculo_id, valor, usuario=None):
    """Registra un gasto vinculado y recalcula la liquidación como lo hace la ruta."""
    GastoService(db).create_gasto(COMPANY_ID, {
        "vehiculo_id": vehiculo_id,
        "solicitud_id": solicitud["id"],
        "detalles_gastos": [{"tipo_gasto": "Peaje", "valor": valor}]
    }, usuario=usuario)
    return SolicitudService(db).recalcular_liquidacion(solicitud["id"])
