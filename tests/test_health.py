def test_health_endpoint_returns_ok(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body == {
        "status": "ok",
        "service": "Identity Reconciliation API",
        "version": "0.1.0",
        "environment": body["environment"],
    }


def test_root_banner_is_plain_text(client):
    response = client.get("/")

    assert response.status_code == 200
    assert "text/plain" in response.headers["content-type"]
    assert "Use the dashboard to interact." in response.text
