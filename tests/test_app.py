from fastapi.testclient import TestClient


def test_health(client):
    res = client.get("/health")

    assert res.status_code == 200
    assert res.json()["success"] is True


def test_ping(client):
    assert client.get("/ping").json() == {"ping": "pong"}


def test_unknown_route_uses_error_shape(client):
    res = client.get("/api/v1/nowhere")

    assert res.status_code == 404
    assert res.json()["success"] is False


def test_unhandled_error_is_500(app):
    @app.get("/boom")
    def boom():
        raise RuntimeError("kaboom")

    with TestClient(app, raise_server_exceptions=False) as c:
        res = c.get("/boom")

    assert res.status_code == 500
    assert res.json() == {"success": False, "message": "Internal server error"}


def test_cors_allows_configured_origin(client):
    res = client.options(
        "/api/v1/categories",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "GET",
        },
    )

    assert res.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert res.headers["access-control-allow-credentials"] == "true"
