import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.modules.contratos.services.contrato_service import ContratoService
from app.modules.contratos.services.tarifas import estimar_desde_contrato, estimar_precio
from tests.conftest import COMPANY_ID


@pytest.fixture
def contrato_service(db):
    return ContratoService(db)


@pytest.fixture
def contrato(contrato_service, cliente):
    return contrato_service.create_contrato(COMPANY_ID, {
        "client_id": cliente["id"],
        "tipo_contrato": "fijo",
        "periodo_presupuesto": "anio",
        "valor_presupuesto": 1000,
        "cobro": {"modo_default": "por_hora", "por_hora": 100}
    }, usuario="comercial")


class TestCrearContrato:
    def test_crear_registra_historial_y_cliente(self, db, contrato_service, contrato, cliente):
        historial = contrato_service.get_historial(contrato["id"])

        assert contrato["valor_consumido"] == 0
        assert [h["tipo"] for h in historial] == ["budget_set"]
        assert historial[0]["notas"] == "Creación de contrato"
        assert contrato["id"] in db["clientes"].find_one({"nombre": cliente["nombre"]})["contratos"]

    def test_fijo_requiere_presupuesto(self, contrato_service, cliente):
        with pytest.raises(ValidationError, match="valor_presupuesto"):
            contrato_service.create_contrato(COMPANY_ID, {"client_id": cliente["id"], "tipo_contrato": "fijo"})

    def test_ocasional_sin_presupuesto(self, contrato_service, cliente):
        with pytest.raises(ValidationError):
            contrato_service.create_contrato(COMPANY_ID, {
                "client_id": cliente["id"], "tipo_contrato": "ocasional", "valor_presupuesto": 10
            })

        ocasional = contrato_service.create_contrato(COMPANY_ID, {
            "client_id": cliente["id"], "tipo_contrato": "ocasional"
        })
        assert ocasional["valor_presupuesto"] is None

    def test_cliente_inexistente(self, contrato_service):
        with pytest.raises(NotFoundError):
            contrato_service.create_contrato(COMPANY_ID, {"client_id": "6650c0ffee0000000000eeee"})


class TestCargos:
    def test_tope_del_presupuesto(self, contrato_service, contrato):
        contrato_service.cargar_contrato(contrato["id"], 800)

        with pytest.raises(ValidationError, match="excede"):
            contrato_service.cargar_contrato(contrato["id"], 300)
        assert contrato_service.get_contrato(contrato["id"])["valor_consumido"] == 800

        actualizado = contrato_service.cargar_contrato(contrato["id"], 200, solicitud_id="sol-1")
        assert actualizado["valor_consumido"] == 1000

        cargos = [h for h in contrato_service.get_historial(contrato["id"]) if h["tipo"] == "service_charge"]
        assert [(c["prev_valor_consumido"], c["new_valor_consumido"]) for c in cargos] == [(0, 800), (800, 1000)]
        assert cargos[-1]["solicitud_id"] == "sol-1"

    def test_contrato_inactivo(self, contrato_service, contrato):
        contrato_service.update_contrato(contrato["id"], {"is_active": False})

        with pytest.raises(ValidationError, match="inactivo"):
            contrato_service.cargar_contrato(contrato["id"], 100)
        assert contrato_service.get_contrato(contrato["id"])["valor_consumido"] == 0

    def test_monto_invalido(self, contrato_service, contrato):
        with pytest.raises(ValidationError):
            contrato_service.cargar_contrato(contrato["id"], 0)

    def test_sin_tope(self, contrato_service, cliente):
        ocasional = contrato_service.create_contrato(COMPANY_ID, {
            "client_id": cliente["id"], "tipo_contrato": "ocasional"
        })

        actualizado = contrato_service.cargar_contrato(ocasional["id"], 5000000)

        assert actualizado["valor_consumido"] == 5000000

    def test_revertir_cargo(self, contrato_service, contrato):
        contrato_service.cargar_contrato(contrato["id"], 300)

        revertido = contrato_service.revertir_cargo(contrato["id"], 300, solicitud_id="sol-1")

        assert revertido["valor_consumido"] == 0
        assert contrato_service.get_historial(contrato["id"])[-1]["tipo"] == "manual_adjust"

    def test_cada_cargo_incrementa_la_version(self, contrato_service, contrato):
        contrato_service.cargar_contrato(contrato["id"], 100)
        contrato_service.cargar_contrato(contrato["id"], 100)

        assert contrato_service.get_contrato(contrato["id"])["version"] == 2

    @staticmethod
    def _con_cargo_concurrente(monkeypatch, db, contrato_service, monto):
        """Otro cargo de ``monto`` entra justo después de la primera lectura."""
        leer = contrato_service._find
        lecturas = []

        def leer_y_competir(*args, **kwargs):
            contrato = leer(*args, **kwargs)
            lecturas.append(contrato["valor_consumido"])
            if len(lecturas) == 1:
                db["contratos"].update_one(
                    {"_id": contrato["_id"]},
                    {"$inc": {"valor_consumido": monto, "version": 1}}
                )
            return contrato

        monkeypatch.setattr(contrato_service, "_find", leer_y_competir)
        return lecturas

    def test_carrera_perdida_revalida_el_tope(self, monkeypatch, db, contrato_service, contrato):
        contrato_service.cargar_contrato(contrato["id"], 800)
        lecturas = self._con_cargo_concurrente(monkeypatch, db, contrato_service, 150)

        with pytest.raises(ValidationError, match="excede"):
            contrato_service.cargar_contrato(contrato["id"], 100)

        assert lecturas == [800, 950]
        assert db["contratos"].find_one()["valor_consumido"] == 950
        cargos = [h for h in contrato_service.get_historial(contrato["id"]) if h["tipo"] == "service_charge"]
        assert len(cargos) == 1

    def test_carrera_perdida_reintenta_con_el_valor_nuevo(self, monkeypatch, db, contrato_service, contrato):
        contrato_service.cargar_contrato(contrato["id"], 800)
        lecturas = self._con_cargo_concurrente(monkeypatch, db, contrato_service, 50)

        actualizado = contrato_service.cargar_contrato(contrato["id"], 100)

        assert lecturas[:2] == [800, 850]
        assert actualizado["valor_consumido"] == 950
        assert actualizado["version"] == 3
        ultimo = contrato_service.get_historial(contrato["id"])[-1]
        assert (ultimo["prev_valor_consumido"], ultimo["new_valor_consumido"]) == (850, 950)


class TestActualizarContrato:
    def test_presupuesto_menor_al_consumido(self, contrato_service, contrato):
        contrato_service.cargar_contrato(contrato["id"], 600)

        with pytest.raises(ValidationError, match="consumido"):
            contrato_service.update_contrato(contrato["id"], {"valor_presupuesto": 500})

    def test_cambio_de_presupuesto_queda_en_historial(self, contrato_service, contrato):
        contrato_service.update_contrato(contrato["id"], {"valor_presupuesto": 2000, "notas": "Adición"})

        ultimo = contrato_service.get_historial(contrato["id"])[-1]
        assert ultimo["tipo"] == "budget_set"
        assert (ultimo["prev_valor_presupuesto"], ultimo["new_valor_presupuesto"]) == (1000, 2000)
        assert ultimo["notas"] == "Adición"

    def test_pasar_a_ocasional_elimina_el_tope(self, contrato_service, contrato):
        actualizado = contrato_service.update_contrato(contrato["id"], {"tipo_contrato": "ocasional"})

        assert actualizado["valor_presupuesto"] is None
        assert actualizado["periodo_presupuesto"] is None


class TestTarifas:
    def test_por_hora(self):
        assert estimar_precio("por_hora", 100, horas=3.5) == 350
        assert estimar_precio("por_hora", 100) is None

    def test_por_kilometro(self):
        assert estimar_precio("por_kilometro", 2500, km=12) == 30000
        assert estimar_precio("por_distancia", 2500, km=None) is None

    def test_tarifa_plana(self):
        assert estimar_precio("por_viaje", 80000) == 80000
        assert estimar_precio("fijo", 80000, horas=10, km=300) == 80000

    def test_tarifa_no_definida(self):
        assert estimar_precio("por_hora", None, horas=2) is None
        assert estimar_precio("por_hora", 0, horas=2) is None

    def test_desde_contrato_usa_el_modo_por_defecto(self, contrato):
        estimacion = estimar_desde_contrato(contrato, horas=4)

        assert estimacion == {"pricing_mode": "por_hora", "pricing_rate": 100, "estimated_price": 400}

    def test_desde_contrato_sin_tarifa_para_el_modo(self, contrato):
        estimacion = estimar_desde_contrato(contrato, "por_viaje")

        assert estimacion["estimated_price"] is None
        assert estimacion["pricing_rate"] is None
