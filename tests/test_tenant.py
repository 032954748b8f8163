from __future__ import annotations

import pytest

from predoctor.middleware.tenant import extract_subdomain, is_public_path
from tests.utils.auth import auth_headers
from tests.utils.factories import make_hospital, make_user


@pytest.mark.parametrize(
    "host,expected",
    [
        ("cityhospital.localhost:5173", "cityhospital"),
        ("CityHospital.LOCALHOST", "cityhospital"),
        ("localhost:3000", None),
        ("localhost", None),
        ("apollo.predoctor.ai", "apollo"),
        ("apollo.predoctor.ai:443", "apollo"),
        ("predoctor.ai", None),
        ("www.predoctor.ai", None),
        ("api.predoctor.ai", None),
        ("127.0.0.1:8000", None),
        ("[::1]:8000", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_subdomain_from_host(host, expected):
    assert extract_subdomain(host) == expected


def test_hint_wins_over_host():
    assert extract_subdomain("apollo.predoctor.ai", " Fortis ") == "fortis"
    assert extract_subdomain("localhost", "cityhospital") == "cityhospital"


def test_blank_hint_falls_back_to_host():
    assert extract_subdomain("apollo.predoctor.ai", "   ") == "apollo"


def test_reserved_hint_never_resolves():
    assert extract_subdomain("apollo.predoctor.ai", "www") is None
    assert extract_subdomain(None, "API") is None


def test_public_path_prefix_match():
    paths = ["/api/public", "/api/health"]
    assert is_public_path("/api/public/meta", paths)
    assert is_public_path("/api/health", paths)
    assert not is_public_path("/api/publication", paths)
    assert not is_public_path("/api/ai/health-check", paths)


@pytest.mark.parametrize("status", ["suspended", "banned"])
def test_inactive_hospital_blocked(client, status):
    hospital = make_hospital(status=status)
    user = make_user(hospital.id)
    resp = client.get(
        "/api/patient/checkups/1", headers=auth_headers(user.id, hospital.subdomain)
    )
    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "TENANT_INACTIVE"


def test_inactive_hospital_public_paths_allowed(client):
    hospital = make_hospital(status="suspended")
    headers = {"X-Tenant-Subdomain": hospital.subdomain}
    assert client.get("/api/health", headers=headers).status_code == 200
    resp = client.get("/api/public/meta", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["mode"] == "inactive"
    assert client.get("/metrics", headers=headers).status_code == 200


def test_subdomain_is_case_insensitive(client):
    hospital = make_hospital()
    resp = client.get(
        "/api/public/meta", headers={"X-Tenant-Subdomain": hospital.subdomain.upper()}
    )
    assert resp.json()["mode"] == "hospital"
    assert resp.json()["hospital"]["id"] == hospital.id
