"""
HTTP tests for the audit lifecycle API.
"""
import pytest

AUDITOR = {"X-User-Id": "aud-1", "X-User-Role": "auditor"}

AUDIT_PAYLOAD = {
    "title": "Auditoría anual",
    "provider_id": "prov-1",
    "primary_auditor_id": "aud-1",
    "scheduled_date": "2026-03-02T09:00:00Z",
}


@pytest.fixture
def audit_id(client):
    response = client.post("/api/v1/audits/", json=AUDIT_PAYLOAD, headers=AUDITOR)
    assert response.status_code == 201
    return response.json()["id"]


def _to_stage_three(client, audit_id):
    client.post(f"/api/v1/audits/{audit_id}/notify", headers=AUDITOR)
    client.post(f"/api/v1/audits/{audit_id}/advance", json={"expected_stage": 1}, headers=AUDITOR)
    for section_id in ("cuarto_tecnologia", "energia", "seguridad_informatica"):
        response = client.post(
            f"/api/v1/audits/{audit_id}/documents",
            json={"section_id": section_id, "file_id": f"f-{section_id}", "filename": f"{section_id}.pdf"},
            headers=AUDITOR,
        )
        assert response.status_code == 201
    response = client.put(
        f"/api/v1/audits/{audit_id}/inventory",
        json={"processed": True, "conformant_count": 40, "non_conformant_count": 2, "score": 88},
    )
    assert response.status_code == 200
    response = client.post(f"/api/v1/audits/{audit_id}/advance", headers=AUDITOR)
    assert response.status_code == 200
    return response.json()


def test_health(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["db"] is True
    assert data["openai_configured"] is False


def test_liveness(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_trace_id_header_is_echoed(client):
    response = client.get("/health", headers={"X-Trace-ID": "trace-123"})
    assert response.headers["X-Trace-ID"] == "trace-123"


def test_sections_catalog(client):
    response = client.get("/api/v1/sections/")
    assert response.status_code == 200
    sections = response.json()
    assert len(sections) == 12
    assert sections[-1]["id"] == "parque_informatico"
    assert sections[-1]["allowed_formats"] == ["XLSX", "XLS"]

    assert client.get("/api/v1/sections/energia").json()["obligatory"] is True
    assert client.get("/api/v1/sections/cocina").status_code == 404


def test_create_and_get_audit(client, audit_id):
    data = client.get(f"/api/v1/audits/{audit_id}").json()
    assert data["stage"] == 1
    assert data["status"] == "en_curso"
    assert data["deadline"].startswith("2026-05-01")
    assert data["progress_percentage"] == 0.0


def test_list_audits(client, audit_id):
    data = client.get("/api/v1/audits/", params={"status": "en_curso"}).json()
    assert [a["id"] for a in data["items"]] == [audit_id]
    assert client.get("/api/v1/audits/", params={"provider_id": "otro"}).json()["items"] == []


def test_create_audit_validation_error(client):
    response = client.post("/api/v1/audits/", json={"title": ""})
    assert response.status_code == 422


def test_unknown_audit_error_body(client):
    response = client.get("/api/v1/audits/999")
    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "NotFoundError"
    assert body["detail"] == {"resource": "Audit", "id": 999}
    assert body["trace_id"]


def test_gate_failure_is_422_with_missing_items(client, audit_id):
    response = client.post(f"/api/v1/audits/{audit_id}/advance", headers=AUDITOR)
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "PreconditionNotMetError"
    assert body["detail"]["missing"] == ["notification_sent"]


def test_missing_evidence_lists_sections(client, audit_id):
    client.post(f"/api/v1/audits/{audit_id}/notify", headers=AUDITOR)
    client.post(f"/api/v1/audits/{audit_id}/advance", headers=AUDITOR)

    gate = client.get(f"/api/v1/audits/{audit_id}/gate").json()
    assert gate["ready"] is False
    assert gate["gate"] == "evidence_complete"

    response = client.post(f"/api/v1/audits/{audit_id}/advance", headers=AUDITOR)
    assert response.status_code == 422
    assert response.json()["error"] == "IncompleteEvidenceError"
    assert response.json()["detail"]["missing"] == [
        "cuarto_tecnologia", "energia", "seguridad_informatica", "parque_informatico",
    ]


def test_skip_and_stale_stage_are_conflicts(client, audit_id):
    client.post(f"/api/v1/audits/{audit_id}/notify", headers=AUDITOR)

    response = client.post(f"/api/v1/audits/{audit_id}/advance", json={"target_stage": 4}, headers=AUDITOR)
    assert response.status_code == 409
    assert response.json()["error"] == "InvalidTransitionError"

    response = client.post(f"/api/v1/audits/{audit_id}/advance", json={"expected_stage": 3}, headers=AUDITOR)
    assert response.status_code == 409
    assert response.json()["error"] == "ConcurrencyError"


def test_evidence_to_evaluation_flow(client, audit_id):
    audit = _to_stage_three(client, audit_id)
    assert audit["stage"] == 3

    completion = client.get(f"/api/v1/audits/{audit_id}/completion").json()
    assert completion["missing_obligatory"] == []

    evaluations = client.get(f"/api/v1/audits/{audit_id}/evaluations").json()
    assert len(evaluations) == 12
    parque = client.get(f"/api/v1/audits/{audit_id}/evaluations/parque_informatico").json()
    assert parque["automatic_score"] == 88

    validations = client.get(f"/api/v1/audits/{audit_id}/validations").json()
    assert len(validations) == 4
    summary = client.get(f"/api/v1/audits/{audit_id}/validations/summary").json()
    assert summary["total"] == 4

    client.post(f"/api/v1/audits/{audit_id}/advance", headers=AUDITOR)
    response = client.post(
        f"/api/v1/audits/{audit_id}/evaluations/energia/assign", json={"auditor_id": "aud-1"}, headers=AUDITOR
    )
    assert response.json()["state"] == "en_revision"

    response = client.post(
        f"/api/v1/audits/{audit_id}/evaluations/energia/resolve",
        json={"result": "cumple_con_observaciones", "score": 78},
        headers=AUDITOR,
    )
    assert response.status_code == 200
    assert response.json()["score"] == 78

    response = client.post(
        f"/api/v1/audits/{audit_id}/evaluations/energia/resolve",
        json={"result": "cumple", "score": 90},
        headers=AUDITOR,
    )
    assert response.status_code == 409
    assert response.json()["error"] == "InvalidStateTransitionError"

    preview = client.get(f"/api/v1/audits/{audit_id}/score-preview").json()
    assert preview["total_score"] == 78

    progress = client.get(f"/api/v1/audits/{audit_id}/evaluations/progress").json()
    assert progress["by_state"]["completada"] == 1


def test_out_of_range_score_rejected_by_schema(client, audit_id):
    response = client.post(
        f"/api/v1/audits/{audit_id}/evaluations/energia/resolve",
        json={"result": "cumple", "score": 130},
    )
    assert response.status_code == 422


def test_manual_validation_record(client, audit_id):
    _to_stage_three(client, audit_id)
    response = client.post(
        f"/api/v1/audits/{audit_id}/validations",
        json={
            "section_id": "energia",
            "validation_type": "validacion_manual",
            "result": "exitoso",
            "executor": "usuario",
        },
        headers=AUDITOR,
    )
    assert response.status_code == 201
    record = response.json()
    assert record["executed_by"] == "aud-1"

    fetched = client.get(f"/api/v1/audits/{audit_id}/validations/{record['id']}")
    assert fetched.json()["id"] == record["id"]


def test_suspend_and_cancel(client, audit_id):
    response = client.post(f"/api/v1/audits/{audit_id}/suspend", json={"reason": "Sin acceso"}, headers=AUDITOR)
    assert response.json()["status"] == "suspendida"

    response = client.post(f"/api/v1/audits/{audit_id}/advance", headers=AUDITOR)
    assert response.status_code == 409

    response = client.post(f"/api/v1/audits/{audit_id}/cancel", json={"reason": "Rescindido"}, headers=AUDITOR)
    assert response.json()["status"] == "cancelada"
    assert client.post(f"/api/v1/audits/{audit_id}/archive", headers=AUDITOR).json()["archived_at"]


def test_report_not_found_before_consolidation(client, audit_id):
    response = client.get(f"/api/v1/audits/{audit_id}/report")
    assert response.status_code == 404
    assert response.json()["detail"]["resource"] == "Report"


def test_workflow_status(client, audit_id):
    data = client.get(f"/api/v1/audits/{audit_id}/status").json()
    assert data["stage"] == 1
    assert data["stage_label"]
    assert data["next_gate"]["missing"] == ["notification_sent"]


def test_activity_trail(client, audit_id):
    client.post(f"/api/v1/audits/{audit_id}/notify", headers=AUDITOR)

    data = client.get("/api/v1/activity/", params={"audit_id": audit_id}).json()
    actions = [item["action"] for item in data["items"]]
    assert actions == ["notification_sent", "audit_create"]
    assert data["items"][0]["actor_id"] == "aud-1"

    assert client.get("/api/v1/activity/999999").status_code == 404


def test_legacy_role_header_is_normalized(client, audit_id):
    client.post(f"/api/v1/audits/{audit_id}/notify", headers={"X-User-Id": "co-1", "X-User-Role": "Coordinator"})

    data = client.get("/api/v1/activity/", params={"audit_id": audit_id}).json()
    assert data["items"][0]["actor_role"] == "coordinador"


def test_ai_scoring_unavailable_without_key(client, audit_id):
    response = client.post(f"/api/v1/audits/{audit_id}/sections/energia/ai-score")
    assert response.status_code == 503
