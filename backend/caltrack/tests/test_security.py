from caltrack.main import app
from caltrack.auth import get_current_user

PUBLIC_PATHS = {
    "/api/auth/login",
    "/api/auth/register",
    "/metrics",
}


def test_all_routes_protected():
    for route in app.routes:
        path = getattr(route, 'path', '')
        if not path.startswith('/api'):
            continue
        if path in PUBLIC_PATHS:
            continue
        if not hasattr(route, 'dependant'):
            continue
        deps = [d.call for d in route.dependant.dependencies]
        assert get_current_user in deps, f"{path} missing authentication"


def test_tracking_requires_a_token(client):
    resp = client.get("/api/tracking/incoming/mine")
    assert resp.status_code == 401
    resp = client.post("/api/tracking/outgoing", json={})
    assert resp.status_code == 401
