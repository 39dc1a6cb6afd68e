import pytest

from app.core.exceptions import ForbiddenError, ValidationError
from app.modules.prefacturas.services.prefactura_service import (
    PrefacturaService, build_numero, clean_client_name
)
from tests.conftest import registrar_gasto

NUMERO = "PREF_HE-000001_TRANSPORTES_ANDINOS_SAS"


@pytest.fixture
def prefactura_service(db):
    return PrefacturaService(db)


@pytest.fixture
def liquidar(db, solicitud_service, actores):
    def _liquidar(solicitud, vehiculo_id=None, facturar=1000, cancelado=600, gasto=100):
        solicitud_service.set_financial_values(solicitud["id"], actores["comercial"], facturar)
        solicitud_service.set_costs(solicitud["id"], actores["coordinador"], cancelado)
        if vehiculo_id:
            registrar_gasto(db, solicitud, vehiculo_id, gasto)
        return solicitud_service.collection.find_one({"he": solicitud["he"]})
    return _liquidar


@pytest.fixture
def lista(crear_aceptada, liquidar, flota):
    """Solicitud aceptada, con valores definidos y gastos de su único vehículo."""
    solicitud = crear_aceptada()
    liquidar(solicitud, flota["buseta"]["id"])
    return solicitud


@pytest.fixture
def generada(prefactura_service, actores, lista):
    return prefactura_service.generate(lista["id"], actores["contabilidad"])


@pytest.fixture
def enviada(prefactura_service, actores, generada):
    return prefactura_service.send_to_client(generada["id"], actores["comercial"], "Envío inicial")


class TestNumeracion:
    def test_limpieza_del_nombre(self):
        assert clean_client_name("  Transportes Andinos S.A.S. ") == "TRANSPORTES_ANDINOS_SAS"
        assert clean_client_name("-- Café   & Cía --") == "CAF_CA"
        assert clean_client_name(None) == ""

    def test_numero_individual(self):
        assert build_numero(["HE-000001"], "Transportes Andinos S.A.S.") == NUMERO

    def test_numero_multiple_con_rango(self):
        assert build_numero(["HE-000007", "HE-000003", "HE-000005"], "Andinos") == "PREF_MULTI_HE-000003-HE-000007_ANDINOS"

    def test_rango_sin_ceros_a_la_izquierda(self):
        assert build_numero(["HE-10", "HE-9", "HE-100"], "Andinos") == "PREF_MULTI_HE-9-HE-100_ANDINOS"


class TestGenerar:
    def test_generar(self, db, generada):
        assert generada["prefactura"]["numero"] == NUMERO
        assert generada["prefactura"]["estado"] == "pendiente"
        assert generada["prefactura"]["aprobada"] is False
        assert generada["accounting_status"] == "prefactura_pendiente"
        assert db["prefactura_historial"].count_documents({"tipo": "generada"}) == 1

    def test_no_sobrescribe(self, prefactura_service, actores, generada):
        with pytest.raises(ValidationError, match="ya tiene"):
            prefactura_service.generate(generada["id"], actores["contabilidad"])

    def test_faltan_gastos(self, prefactura_service, actores, crear_aceptada, liquidar, flota):
        solicitud = crear_aceptada(placa=None, n_pasajeros=50, vehicle_assignments=[
            {"placa": "ABC123", "assigned_passengers": 40},
            {"placa": "GHI789", "assigned_passengers": 10}
        ])
        liquidar(solicitud, flota["buseta"]["id"])

        with pytest.raises(ValidationError) as error:
            prefactura_service.generate(solicitud["id"], actores["contabilidad"])

        assert "ABC123" in error.value.message
        assert "GHI789" not in error.value.message

    def test_requiere_valores(self, prefactura_service, actores, crear_aceptada, solicitud_service, flota):
        solicitud = crear_aceptada()
        solicitud_service.set_financial_values(solicitud["id"], actores["comercial"], 1000)

        with pytest.raises(ValidationError, match="valor cancelado"):
            prefactura_service.generate(solicitud["id"], actores["contabilidad"])

    def test_valores_en_cero_son_validos(self, prefactura_service, actores, crear_aceptada, liquidar, flota):
        solicitud = crear_aceptada()
        liquidar(solicitud, flota["buseta"]["id"], facturar=0, cancelado=0)

        generada = prefactura_service.generate(solicitud["id"], actores["contabilidad"])

        assert generada["prefactura"]["numero"] == NUMERO

    def test_rol_sin_permiso(self, prefactura_service, actores, lista):
        with pytest.raises(ForbiddenError):
            prefactura_service.generate(lista["id"], actores["coordinador"])

    def test_solicitud_pendiente(self, prefactura_service, actores, crear_pendiente):
        pendiente = crear_pendiente()

        with pytest.raises(ValidationError, match="aceptada"):
            prefactura_service.generate(pendiente["id"], actores["contabilidad"])


class TestGenerarMultiple:
    def test_multiple(self, db, prefactura_service, actores, crear_aceptada, liquidar, flota):
        primera = crear_aceptada()
        segunda = crear_aceptada(placa="ABC123", hora_inicio="09:00")
        liquidar(primera, flota["buseta"]["id"])
        liquidar(segunda, flota["bus1"]["id"])

        generadas = prefactura_service.generate_multiple([segunda["id"], primera["id"]], actores["contabilidad"])

        numero = "PREF_MULTI_HE-000001-HE-000002_TRANSPORTES_ANDINOS_SAS"
        assert [g["prefactura"]["numero"] for g in generadas] == [numero, numero]
        assert sorted(generadas[0]["prefactura"]["solicitudes"]) == sorted([primera["id"], segunda["id"]])
        assert db["solicitudes"].count_documents({"accounting_status": "prefactura_pendiente"}) == 2

    def test_clientes_distintos(self, db, prefactura_service, actores, crear_aceptada, liquidar, flota):
        primera = crear_aceptada()
        segunda = crear_aceptada(placa="ABC123", hora_inicio="09:00")
        liquidar(primera, flota["buseta"]["id"])
        liquidar(segunda, flota["bus1"]["id"])
        db["solicitudes"].update_one({"he": segunda["he"]}, {"$set": {"cliente_id": "6650c0ffee0000000000eeee"}})

        with pytest.raises(ValidationError, match="mismo cliente"):
            prefactura_service.generate_multiple([primera["id"], segunda["id"]], actores["contabilidad"])

    def test_una_sin_gastos_no_genera_ninguna(self, db, prefactura_service, actores, crear_aceptada, liquidar, flota):
        primera = crear_aceptada()
        segunda = crear_aceptada(placa="ABC123", hora_inicio="09:00")
        liquidar(primera, flota["buseta"]["id"])
        liquidar(segunda)

        with pytest.raises(ValidationError, match="ABC123"):
            prefactura_service.generate_multiple([primera["id"], segunda["id"]], actores["contabilidad"])

        assert db["solicitudes"].count_documents({"prefactura": None}) == 2

    def test_requiere_dos_solicitudes(self, prefactura_service, actores, lista):
        with pytest.raises(ValidationError):
            prefactura_service.generate_multiple([lista["id"], lista["id"]], actores["contabilidad"])


class TestAprobacion:
    def test_aprobar(self, prefactura_service, actores, generada):
        aprobada = prefactura_service.approve(generada["id"], actores["contabilidad"])

        assert aprobada["prefactura"]["aprobada"] is True
        assert aprobada["prefactura"]["estado"] == "aceptada"
        assert aprobada["prefactura"]["aprobada_por"] == actores["contabilidad"].id
        assert aprobada["accounting_status"] == "listo_para_facturacion"

    def test_reaprobar_requiere_reenvio(self, prefactura_service, actores, generada):
        primera = prefactura_service.approve(generada["id"], actores["contabilidad"])

        with pytest.raises(ValidationError, match="ya fue aprobada"):
            prefactura_service.approve(generada["id"], actores["admin"])

        reenvio = prefactura_service.approve(generada["id"], actores["admin"], reenviar=True, notas="Reenvío")
        assert reenvio["prefactura"]["aprobada_por"] == actores["contabilidad"].id
        assert reenvio["prefactura"]["fecha_aprobacion"] == primera["prefactura"]["fecha_aprobacion"]

        tipos = [h["tipo"] for h in prefactura_service.get_historial(generada["id"])]
        assert tipos == ["generada", "aprobada", "reenvio_aprobacion"]

    def test_sin_prefactura(self, prefactura_service, actores, lista):
        with pytest.raises(ValidationError, match="no tiene prefactura"):
            prefactura_service.approve(lista["id"], actores["contabilidad"])


class TestRechazo:
    def test_rechazar_y_regenerar(self, prefactura_service, actores, generada):
        prefactura_service.approve(generada["id"], actores["contabilidad"])

        rechazada = prefactura_service.reject(generada["id"], actores["contabilidad"], "Valores errados")
        assert rechazada["prefactura"]["aprobada"] is False
        assert rechazada["prefactura"]["estado"] == "rechazada"
        assert rechazada["prefactura"]["rechazada_por"] == actores["contabilidad"].id
        assert rechazada["accounting_status"] == "operacional_completo"

        with pytest.raises(ValidationError):
            prefactura_service.approve(generada["id"], actores["contabilidad"])

        regenerada = prefactura_service.generate(generada["id"], actores["contabilidad"])
        assert regenerada["prefactura"]["numero"] == NUMERO
        assert regenerada["prefactura"]["rechazada"] is False
        assert regenerada["accounting_status"] == "prefactura_pendiente"

        tipos = [h["tipo"] for h in prefactura_service.get_historial(generada["id"])]
        assert tipos == ["generada", "aprobada", "rechazada", "generada"]

    def test_no_rechaza_dos_veces(self, prefactura_service, actores, generada):
        prefactura_service.reject(generada["id"], actores["contabilidad"])

        with pytest.raises(ValidationError):
            prefactura_service.reject(generada["id"], actores["contabilidad"])


class TestEnvioAlCliente:
    def test_enviar(self, db, prefactura_service, actores, enviada):
        assert enviada["prefactura"]["enviada_al_cliente"] is True
        assert enviada["prefactura"]["fecha_envio"] is not None

        notificacion = db["notificaciones"].find_one({"evento": "prefactura_enviada"})
        assert notificacion["payload"]["numero"] == NUMERO

    def test_reenvios_quedan_en_el_historial(self, prefactura_service, actores, enviada):
        prefactura_service.send_to_client(enviada["id"], actores["comercial"], "Segundo envío")

        envios = prefactura_service.get_historial_envios(enviada["id"])
        assert [e["notas"] for e in envios] == ["Envío inicial", "Segundo envío"]
        assert all(e["tipo"] == "enviada" for e in envios)

    def test_enviar_sin_prefactura(self, prefactura_service, actores, lista):
        with pytest.raises(ValidationError):
            prefactura_service.send_to_client(lista["id"], actores["comercial"])


class TestRespuestaDelCliente:
    def test_cliente_aprueba(self, prefactura_service, actores, enviada):
        aprobada = prefactura_service.client_approve(enviada["id"], actores["cliente"], "Conforme")

        assert aprobada["prefactura"]["estado"] == "aceptada"
        assert aprobada["accounting_status"] == "listo_para_facturacion"
        assert prefactura_service.get_historial(enviada["id"])[-1]["tipo"] == "aprobada_cliente"

    def test_cliente_rechaza(self, prefactura_service, actores, enviada):
        rechazada = prefactura_service.client_reject(enviada["id"], actores["cliente"], "No corresponde")

        assert rechazada["prefactura"]["estado"] == "rechazada"
        assert rechazada["accounting_status"] == "operacional_completo"

    def test_requiere_envio_previo(self, prefactura_service, actores, generada):
        with pytest.raises(ValidationError, match="no ha sido enviada"):
            prefactura_service.client_approve(generada["id"], actores["cliente"])

    def test_solo_el_cliente_dueno(self, db, prefactura_service, actores, enviada):
        with pytest.raises(ForbiddenError):
            prefactura_service.client_approve(enviada["id"], actores["contabilidad"])

        db["solicitudes"].update_one({}, {"$set": {"cliente_id": "6650c0ffee0000000000eeee"}})
        with pytest.raises(ForbiddenError):
            prefactura_service.client_reject(enviada["id"], actores["cliente"])
