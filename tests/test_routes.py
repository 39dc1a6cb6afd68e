import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.modules.auth.utils.security import create_access_token
from tests.conftest import FECHA

client = TestClient(app)


def _headers(username):
    return {"Authorization": f"Bearer {create_access_token({'sub': username})}"}


@pytest.fixture
def solicitud_cliente(usuarios, flota):
    response = client.post("/solicitudes/cliente", headers=_headers("cliente"), json={
        "fecha": FECHA.isoformat(),
        "hora_inicio": "08:00",
        "origen": "Medellín",
        "destino": "Aeropuerto JMC",
        "n_pasajeros": 30
    })
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def solicitud_aceptada(solicitud_cliente):
    response = client.post(
        f"/solicitudes/{solicitud_cliente['id']}/aceptar",
        headers=_headers("coordinador"),
        json={"placa": "GHI789"}
    )
    assert response.status_code == 200
    return response.json()


class TestAutenticacion:
    def test_me(self, usuarios):
        response = client.get("/auth/me", headers=_headers("coordinador"))

        assert response.status_code == 200
        assert response.json()["role"] == "coordinador"
        assert response.json()["email"] == "coordinador@transportes.test"

    def test_sin_token(self, usuarios):
        response = client.get("/solicitudes/")

        assert response.status_code in (401, 403)

    def test_token_invalido(self, usuarios):
        response = client.get("/auth/me", headers={"Authorization": "Bearer no-es-un-token"})

        assert response.status_code == 401

    def test_usuario_inactivo(self, db, usuarios):
        db["users"].update_one({"username": "operador"}, {"$set": {"is_active": False}})

        response = client.get("/auth/me", headers=_headers("operador"))

        assert response.status_code == 401

    def test_usuario_inexistente(self, usuarios):
        response = client.get("/auth/me", headers=_headers("nadie"))

        assert response.status_code == 401


class TestSolicitudes:
    def test_crear_como_cliente(self, solicitud_cliente):
        assert solicitud_cliente["status"] == "pending"
        assert solicitud_cliente["service_status"] == "sin_asignacion"
        assert solicitud_cliente["cliente_nombre"] == "Transportes Andinos S.A.S."

    def test_crear_con_hora_invalida(self, usuarios):
        response = client.post("/solicitudes/cliente", headers=_headers("cliente"), json={
            "fecha": FECHA.isoformat(),
            "hora_inicio": "25:00",
            "origen": "Medellín",
            "destino": "Rionegro",
            "n_pasajeros": 10
        })

        assert response.status_code == 400

    def test_aceptar(self, solicitud_aceptada):
        assert solicitud_aceptada["status"] == "accepted"
        assert solicitud_aceptada["he"] == "HE-000001"
        assert solicitud_aceptada["placa"] == "GHI789"

    def test_comercial_no_acepta(self, solicitud_cliente, flota):
        response = client.post(
            f"/solicitudes/{solicitud_cliente['id']}/aceptar",
            headers=_headers("comercial"),
            json={"placa": "GHI789"}
        )

        assert response.status_code == 403

    def test_aceptar_sin_vehiculo(self, solicitud_cliente):
        response = client.post(
            f"/solicitudes/{solicitud_cliente['id']}/aceptar",
            headers=_headers("coordinador"),
            json={}
        )

        assert response.status_code == 422

    def test_cliente_no_ve_costos(self, solicitud_aceptada):
        client.put(
            f"/solicitudes/{solicitud_aceptada['id']}/costos",
            headers=_headers("coordinador"),
            json={"valor_cancelado": 600}
        )

        response = client.get(f"/solicitudes/{solicitud_aceptada['id']}", headers=_headers("cliente"))

        assert response.status_code == 200
        assert "valor_cancelado" not in response.json()
        assert "utilidad" not in response.json()

    def test_solicitud_inexistente(self, usuarios):
        response = client.get("/solicitudes/6650c0ffee0000000000eeee", headers=_headers("coordinador"))

        assert response.status_code == 404

    def test_listado_paginado(self, solicitud_aceptada):
        response = client.get("/solicitudes/?page=1&page_size=5", headers=_headers("admin"))

        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["items"][0]["he"] == "HE-000001"


class TestDisponibilidad:
    def test_buscar(self, usuarios, flota):
        response = client.post("/disponibilidad/buscar", headers=_headers("coordinador"), json={
            "fecha": FECHA.isoformat(),
            "hora_inicio": "08:00",
            "pasajeros": 50
        })

        assert response.status_code == 200
        plan = response.json()
        assert plan["can_fulfill"] is True
        assert plan["total_asignado"] == 50
        assert plan["plan"][0]["placa"] == "ABC123"

    def test_cliente_no_consulta_disponibilidad(self, usuarios, flota):
        response = client.post("/disponibilidad/buscar", headers=_headers("cliente"), json={
            "fecha": FECHA.isoformat(),
            "hora_inicio": "08:00",
            "pasajeros": 10
        })

        assert response.status_code == 403


class TestFlujoDePrefactura:
    def test_de_la_liquidacion_a_la_aprobacion_del_cliente(self, solicitud_aceptada, flota):
        solicitud_id = solicitud_aceptada["id"]

        assert client.put(
            f"/solicitudes/{solicitud_id}/valor-facturar",
            headers=_headers("comercial"),
            json={"valor_a_facturar": 1000}
        ).status_code == 200
        assert client.put(
            f"/solicitudes/{solicitud_id}/costos",
            headers=_headers("coordinador"),
            json={"valor_cancelado": 600}
        ).status_code == 200

        sin_gastos = client.post(f"/prefacturas/solicitud/{solicitud_id}/generar", headers=_headers("contabilidad"))
        assert sin_gastos.status_code == 400
        assert "GHI789" in sin_gastos.json()["detail"]

        gasto = client.post("/gastos/", headers=_headers("coordinador"), json={
            "vehiculo_id": flota["buseta"]["id"],
            "solicitud_id": solicitud_id,
            "detalles_gastos": [{"tipo_gasto": "Combustible", "valor": 150}]
        })
        assert gasto.status_code == 200
        assert gasto.json()["total"] == 150

        solicitud = client.get(f"/solicitudes/{solicitud_id}", headers=_headers("contabilidad")).json()
        assert solicitud["utilidad"] == 250
        assert solicitud["accounting_status"] == "operacional_completo"

        seccion = client.get(f"/secciones-pago/solicitud/{solicitud_id}", headers=_headers("contabilidad"))
        assert seccion.status_code == 200
        assert seccion.json()["cuentas_cobro"][0]["valor_final"] == 450

        generada = client.post(f"/prefacturas/solicitud/{solicitud_id}/generar", headers=_headers("contabilidad"))
        assert generada.status_code == 200
        assert generada.json()["prefactura"]["numero"] == "PREF_HE-000001_TRANSPORTES_ANDINOS_SAS"

        enviada = client.post(
            f"/prefacturas/solicitud/{solicitud_id}/enviar",
            headers=_headers("comercial"),
            json={"notas": "Adjunta"}
        )
        assert enviada.status_code == 200

        aprobada = client.post(
            f"/prefacturas/solicitud/{solicitud_id}/cliente/aprobar",
            headers=_headers("cliente"),
            json={}
        )
        assert aprobada.status_code == 200
        assert aprobada.json()["accounting_status"] == "listo_para_facturacion"
        assert "valor_cancelado" not in aprobada.json()

        historial = client.get(f"/prefacturas/solicitud/{solicitud_id}/historial", headers=_headers("contabilidad"))
        assert [h["tipo"] for h in historial.json()] == ["generada", "enviada", "aprobada_cliente"]

        envios = client.get(f"/prefacturas/solicitud/{solicitud_id}/envios", headers=_headers("comercial"))
        assert [e["notas"] for e in envios.json()] == ["Adjunta"]

    def test_coordinador_no_genera(self, solicitud_aceptada):
        response = client.post(
            f"/prefacturas/solicitud/{solicitud_aceptada['id']}/generar",
            headers=_headers("coordinador")
        )

        assert response.status_code == 403

    def test_multiple_requiere_dos(self, solicitud_aceptada):
        response = client.post("/prefacturas/generar-multiple", headers=_headers("contabilidad"), json={
            "solicitud_ids": [solicitud_aceptada["id"]]
        })

        assert response.status_code == 422
