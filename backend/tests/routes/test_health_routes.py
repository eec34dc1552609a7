from tutorhub import __version__


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["version"] == __version__


def test_prometheus_scrape(client):
    r = client.get("/metrics/prometheus")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")


def test_unknown_route_uses_problem_details(client):
    r = client.get("/api/v1/nowhere")
    assert r.status_code == 404
    body = r.json()
    assert body["title"] == "Not Found"
    assert body["instance"] == "/api/v1/nowhere"
