import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.modules.seccion_pagos.services.seccion_pagos_service import (
    SeccionPagosService, calcular_cuenta, estado_seccion, totalizar
)
from tests.conftest import OTRA_COMPANY_ID, registrar_gasto


def _cuenta(valor_base=0, gastos_op=0, gastos_preop=0, estado="pendiente"):
    return {
        "valor_base": valor_base,
        "gastos_operacionales": gastos_op,
        "gastos_preoperacionales": gastos_preop,
        "valor_final": 0,
        "estado": estado
    }


class TestCalculos:
    def test_valor_final(self):
        cuenta = calcular_cuenta(_cuenta(300, 100, 50))

        assert cuenta["valor_final"] == 150
        assert cuenta["estado"] == "calculada"

    def test_valor_final_nunca_negativo(self):
        assert calcular_cuenta(_cuenta(100, 80, 70))["valor_final"] == 0

    def test_sin_base_queda_pendiente(self):
        assert calcular_cuenta(_cuenta())["estado"] == "pendiente"

    def test_no_reabre_cuentas_pagadas(self):
        assert calcular_cuenta(_cuenta(300, estado="pagada"))["estado"] == "pagada"

    def test_totales(self):
        totales = totalizar([_cuenta(300, 100, 0), _cuenta(300.25, 0, 50)])

        assert totales["valor_base"] == 600.25
        assert totales["gastos_operacionales"] == 100
        assert totales["gastos_preoperacionales"] == 50

    @pytest.mark.parametrize("estados, esperado", [
        ([], "pendiente"),
        (["calculada", "calculada"], "calculada"),
        (["calculada", "pendiente"], "pendiente"),
        (["pagada", "calculada"], "parcialmente_pagada"),
        (["pagada", "pagada"], "pagada"),
    ])
    def test_estado_de_la_seccion(self, estados, esperado):
        assert estado_seccion([{"estado": e} for e in estados]) == esperado


@pytest.fixture
def seccion_service(db):
    return SeccionPagosService(db)


@pytest.fixture
def solicitud_doble(db, crear_aceptada, solicitud_service, actores, flota):
    """Solicitud de 50 pasajeros en ABC123 y GHI789 con 600 de costo y 100 de gastos en el bus."""
    solicitud = crear_aceptada(placa=None, n_pasajeros=50, vehicle_assignments=[
        {"placa": "ABC123", "assigned_passengers": 40},
        {"placa": "GHI789", "assigned_passengers": 10}
    ])
    solicitud_service.set_costs(solicitud["id"], actores["coordinador"], 600)
    registrar_gasto(db, solicitud, flota["bus1"]["id"], 100)
    return solicitud


class TestSeccionDeLaSolicitud:
    def test_una_cuenta_por_vehiculo(self, seccion_service, solicitud_doble, flota):
        seccion = seccion_service.get_by_solicitud(solicitud_doble["id"])
        cuentas = {c["placa"]: c for c in seccion["cuentas_cobro"]}

        assert set(cuentas) == {"ABC123", "GHI789"}
        assert cuentas["ABC123"]["valor_base"] == 300
        assert cuentas["ABC123"]["gastos_operacionales"] == 100
        assert cuentas["ABC123"]["valor_final"] == 200
        assert cuentas["GHI789"]["valor_final"] == 300
        assert seccion["totales"]["valor_final"] == 500
        assert seccion["estado"] == "calculada"

    def test_gastos_preoperacionales(self, seccion_service, solicitud_doble, flota):
        seccion = seccion_service.get_by_solicitud(solicitud_doble["id"])

        actualizada = seccion_service.update_cuenta_cobro(
            seccion["id"], flota["buseta"]["id"], {"gastos_preoperacionales": 50, "doc_soporte": "CC-9"}
        )

        cuenta = next(c for c in actualizada["cuentas_cobro"] if c["placa"] == "GHI789")
        assert cuenta["valor_final"] == 250
        assert cuenta["doc_soporte"] == "CC-9"
        assert actualizada["totales"]["gastos_preoperacionales"] == 50

    def test_pago_parcial(self, seccion_service, solicitud_doble, flota):
        seccion = seccion_service.get_by_solicitud(solicitud_doble["id"])

        actualizada = seccion_service.update_cuenta_cobro(
            seccion["id"], flota["bus1"]["id"], {"estado": "pagada", "n_egreso": "E-77"}
        )

        assert actualizada["estado"] == "parcialmente_pagada"

    def test_preoperacionales_negativos(self, seccion_service, solicitud_doble, flota):
        seccion = seccion_service.get_by_solicitud(solicitud_doble["id"])

        with pytest.raises(ValidationError):
            seccion_service.update_cuenta_cobro(seccion["id"], flota["bus1"]["id"], {"gastos_preoperacionales": -1})

    def test_vehiculo_sin_cuenta(self, seccion_service, solicitud_doble, flota):
        seccion = seccion_service.get_by_solicitud(solicitud_doble["id"])

        with pytest.raises(NotFoundError):
            seccion_service.update_cuenta_cobro(seccion["id"], flota["bus2"]["id"], {"doc_soporte": "X"})

    def test_otra_empresa(self, seccion_service, solicitud_doble, flota):
        seccion = seccion_service.get_by_solicitud(solicitud_doble["id"])

        with pytest.raises(NotFoundError):
            seccion_service.update_cuenta_cobro(
                seccion["id"], flota["bus1"]["id"], {"doc_soporte": "X"}, OTRA_COMPANY_ID
            )

    def test_reasignar_conserva_lo_diligenciado(self, seccion_service, solicitud_service, actores,
                                                solicitud_doble, flota):
        seccion = seccion_service.get_by_solicitud(solicitud_doble["id"])
        seccion_service.update_cuenta_cobro(
            seccion["id"], flota["buseta"]["id"], {"gastos_preoperacionales": 50, "n_egreso": "E-1"}
        )

        solicitud_service.assign_multiple_vehicles(solicitud_doble["id"], actores["coordinador"], [
            {"placa": "GHI789", "assigned_passengers": 30},
            {"placa": "DEF456", "assigned_passengers": 20}
        ])

        seccion = seccion_service.get_by_solicitud(solicitud_doble["id"])
        cuentas = {c["placa"]: c for c in seccion["cuentas_cobro"]}
        assert set(cuentas) == {"GHI789", "DEF456"}
        assert cuentas["GHI789"]["gastos_preoperacionales"] == 50
        assert cuentas["GHI789"]["n_egreso"] == "E-1"
        assert cuentas["GHI789"]["valor_final"] == 250
        assert cuentas["DEF456"]["gastos_preoperacionales"] == 0

    def test_seccion_inexistente(self, seccion_service):
        with pytest.raises(NotFoundError):
            seccion_service.get_by_solicitud("6650c0ffee0000000000eeee")
