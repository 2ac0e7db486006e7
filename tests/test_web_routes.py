"""
Tests for the generative layout HTTP routes.
"""

import pytest
from fastapi.testclient import TestClient

from pharma_design_ai.core.base_engine import CanvasConfig
from pharma_design_ai.core.layout_generator import InMemoryLayoutRepository, LayoutGenerator
from pharma_design_ai.web.backend.main import app
from pharma_design_ai.web.backend.routes import generative_routes

STERILE = "sterile-injectable-facility"


@pytest.fixture
def client():
    repository = InMemoryLayoutRepository()
    generator = LayoutGenerator(repository=repository)
    app.dependency_overrides[generative_routes.get_repository] = lambda: repository
    app.dependency_overrides[generative_routes.get_generator] = lambda: generator
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def sterile_payload(sterile_layout):
    return sterile_layout.to_dict()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Pharma Design AI API is running"}


# =============================================================================
# GENERATION
# =============================================================================

class TestGenerateRoute:
    """POST /generative/generate and stored layouts."""

    def test_generate_from_template(self, client):
        response = client.post(
            "/generative/generate",
            json={
                "description": "Vial filling plant",
                "constraints": {"template_id": STERILE, "jurisdiction": "EMA"},
                "preferences": {"style": "grid"},
            },
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        result = body["result"]
        assert len(result["layout"]["rooms"]) == 13
        assert result["compliance"]["overall_score"] == 100
        assert result["stages"][-1] == "done"

    def test_invalid_request_maps_to_400(self, client):
        response = client.post(
            "/generative/generate",
            json={"constraints": {"room_types": ["unicorn-stable"]}},
        )
        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "invalid_input"
        assert detail["stage"] == "rooms_assembled"

    def test_missing_constraints_without_interpreter(self, client):
        response = client.post("/generative/generate", json={"description": "A sterile plant"})
        assert response.status_code == 400

    def test_schema_violation_is_rejected(self, client):
        response = client.post(
            "/generative/generate",
            json={"constraints": {"room_types": ["qc-lab"], "throughput": -5}},
        )
        assert response.status_code == 422

    def test_unsatisfiable_maps_to_422(self):
        generator = LayoutGenerator(
            canvas=CanvasConfig(width=300, height=300, padding=0),
            settings=_settings_without_expansion(),
        )
        app.dependency_overrides[generative_routes.get_generator] = lambda: generator
        try:
            with TestClient(app) as client:
                response = client.post(
                    "/generative/generate",
                    json={"constraints": {"room_types": ["warehouse", "warehouse"]}},
                )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["error"] == "unsatisfiable_layout"
        assert detail["room_ids"] == ["warehouse-2"]

    def test_stored_layout_and_relayout(self, client):
        generated = client.post(
            "/generative/generate",
            json={"constraints": {"room_types": ["warehouse", "dispensing-room", "qc-lab"]}},
        ).json()["result"]
        layout_id = generated["layout"]["id"]

        stored = client.get(f"/generative/layouts/{layout_id}")
        assert stored.status_code == 200
        assert stored.json()["layout"]["id"] == layout_id

        relaid = client.post(
            f"/generative/layouts/{layout_id}/relayout",
            json={"preferences": {"style": "circular"}, "jurisdiction": "WHO"},
        )
        assert relaid.status_code == 200
        result = relaid.json()["result"]
        assert result["simulation"]["style"] == "circular"
        assert result["compliance"]["jurisdiction"] == "WHO"

    def test_relayout_without_body(self, client):
        layout_id = client.post(
            "/generative/generate", json={"constraints": {"room_types": ["qc-lab"]}}
        ).json()["result"]["layout"]["id"]
        assert client.post(f"/generative/layouts/{layout_id}/relayout").status_code == 200

    def test_unknown_layout(self, client):
        assert client.get("/generative/layouts/missing").status_code == 404
        assert client.post("/generative/layouts/missing/relayout").status_code == 400


def _settings_without_expansion():
    from pharma_design_ai.config.config_loader import get_settings

    settings = get_settings()
    settings["generation"]["max_canvas_expansions"] = 0
    return settings


# =============================================================================
# TEMPLATES AND RULES
# =============================================================================

class TestTemplateRoutes:
    """Template listing, lookup and instantiation."""

    def test_list_templates(self, client):
        body = client.get("/generative/templates").json()
        assert STERILE in [t["id"] for t in body["templates"]]

    def test_get_template(self, client):
        response = client.get(f"/generative/templates/{STERILE}")
        assert response.status_code == 200
        assert response.json()["template"]["id"] == STERILE

    def test_unknown_template(self, client):
        response = client.get("/generative/templates/moon-base")
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "invalid_input"

    def test_instantiate_with_parameters(self, client):
        response = client.post(
            f"/generative/templates/{STERILE}/instantiate",
            json={"include_freeze_dryer": False},
        )
        assert response.status_code == 200
        instance = response.json()["instance"]
        assert len(instance["rooms"]) == 12
        assert len(instance["relationships"]) == 16

    def test_instantiate_with_defaults(self, client):
        response = client.post(f"/generative/templates/{STERILE}/instantiate")
        assert response.status_code == 200
        assert response.json()["instance"]["parameters"]["batch_size"] == "500L"


class TestComplianceRoutes:
    """Compliance checks and the rule listing."""

    def test_check_compliant_layout(self, client, sterile_payload):
        response = client.post(
            "/generative/compliance/check",
            json={"layout": sterile_payload, "jurisdiction": "EMA"},
        )
        assert response.status_code == 200
        report = response.json()["report"]
        assert report["overall_score"] == 100
        assert report["failed"] == 0

    def test_unknown_jurisdiction(self, client, sterile_payload):
        response = client.post(
            "/generative/compliance/check",
            json={"layout": sterile_payload, "jurisdiction": "MARS"},
        )
        assert response.status_code == 400

    def test_malformed_layout(self, client):
        response = client.post(
            "/generative/compliance/check",
            json={"layout": {"rooms": [{"name": "No id or size"}]}},
        )
        assert response.status_code == 400

    def test_list_rules_for_jurisdiction(self, client):
        body = client.get("/generative/rules", params={"jurisdiction": "EMA"}).json()
        assert body["rules"]
        assert all(rule["source"] == "EMA Annex 1" for rule in body["rules"])
        assert "PIC/S" in body["jurisdictions"]

    def test_list_all_rules(self, client):
        all_rules = client.get("/generative/rules").json()["rules"]
        ema_rules = client.get("/generative/rules", params={"jurisdiction": "EMA"}).json()["rules"]
        assert len(all_rules) > len(ema_rules)

    def test_list_rules_unknown_jurisdiction(self, client):
        assert client.get("/generative/rules", params={"jurisdiction": "MARS"}).status_code == 400


# =============================================================================
# PLACEMENT AND SIMULATION
# =============================================================================

class TestPlacementRoutes:
    """Single-room placement and whole-layout simulation."""

    def test_optimal_position(self, client):
        layout = {
            "rooms": [
                {
                    "id": "filling",
                    "name": "Filling Room",
                    "category": "Production",
                    "cleanroom_class": "A",
                    "width": 100,
                    "height": 100,
                    "x": 1500,
                    "y": 1000,
                }
            ],
            "relationships": [
                {"type": "ADJACENT_TO", "from_id": "airlock", "to_id": "filling"}
            ],
        }
        room = {
            "id": "airlock",
            "name": "Material Airlock",
            "category": "Personnel",
            "cleanroom_class": "C",
            "width": 100,
            "height": 100,
        }
        response = client.post("/generative/placement/optimal", json={"layout": layout, "room": room})

        assert response.status_code == 200
        placement = response.json()["placement"]
        assert placement["room_id"] == "airlock"
        assert placement["position"]["x"] % 50 == 0
        assert placement["position"]["y"] % 50 == 0

    def test_optimal_position_room_missing_fields(self, client):
        response = client.post(
            "/generative/placement/optimal",
            json={"layout": {"rooms": []}, "room": {"id": "r"}},
        )
        assert response.status_code == 400

    def test_simulate(self, client, sterile_payload):
        response = client.post(
            "/generative/layout/simulate",
            json={"layout": sterile_payload, "style": "linear"},
        )
        assert response.status_code == 200
        simulation = response.json()["simulation"]
        assert set(simulation["positions"]) == {"warehouse", "airlock", "filling", "gowning"}
        assert simulation["unresolved"] == []

    def test_simulate_unknown_style(self, client, sterile_payload):
        response = client.post(
            "/generative/layout/simulate",
            json={"layout": sterile_payload, "style": "spiral"},
        )
        assert response.status_code == 400
