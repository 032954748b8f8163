from __future__ import annotations

from tests.utils.factories import make_hospital


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_meta_global(client):
    resp = client.get("/api/public/meta")
    assert resp.json() == {"mode": "global", "subdomain": None, "hospital": None}


def test_meta_not_found(client):
    resp = client.get("/api/public/meta", headers={"X-Tenant-Subdomain": "nosuchplace"})
    assert resp.json()["mode"] == "not_found"
    assert resp.json()["subdomain"] == "nosuchplace"


def test_meta_hospital(client):
    hospital = make_hospital(
        name="Fortis",
        settings={"assistant_name": "Nova", "assistant_intro_template": "Welcome to {{hospitalName}}!"},
    )
    resp = client.get("/api/public/meta", headers={"Host": f"{hospital.subdomain}.localhost"})
    data = resp.json()
    assert data["mode"] == "hospital"
    assert data["hospital"]["assistantName"] == "Nova"
    assert data["hospital"]["assistantIntro"] == "Welcome to Fortis!"


def test_meta_inactive(client):
    hospital = make_hospital(status="banned")
    resp = client.get("/api/public/meta", headers={"X-Tenant-Subdomain": hospital.subdomain})
    assert resp.status_code == 200
    assert resp.json()["mode"] == "inactive"


def test_metrics_exposed(client):
    client.get("/api/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "ai_checks_total" in resp.text
