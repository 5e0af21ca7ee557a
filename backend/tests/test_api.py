import requests

from bgtimeline.game.models import Player


def test_health(client):
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.get_json() == {"status": "ok"}


def test_get_room_not_found(client):
    res = client.get("/api/rooms/ZZZZ")
    assert res.status_code == 404
    assert res.get_json() == {"error": "room_not_found"}


def test_get_room_is_sanitized(client, app_registry):
    room = app_registry.create_room(Player(id="a", name="Alice"))
    app_registry.join_room(room.code, Player(id="b", name="Bob"))
    app_registry.start_game(room.code)

    res = client.get(f"/api/rooms/{room.code.lower()}")
    assert res.status_code == 200
    data = res.get_json()
    assert data["code"] == room.code
    assert data["currentGame"]["year"] is None
    assert data["deckSize"] == len(room.deck)
    assert "deck" not in data
    assert [p["isCurrentPlayer"] for p in data["players"]] == [True, False]


def test_image_proxy_rejects_foreign_hosts(client):
    assert client.get("/api/image-proxy").status_code == 400
    assert client.get("/api/image-proxy?url=https://evil.example.com/x.jpg").status_code == 400
    assert client.get("/api/image-proxy?url=https://geekdo-images.com.evil.io/x.jpg").status_code == 400
    assert client.get("/api/image-proxy?url=ftp://cf.geekdo-images.com/x.jpg").status_code == 400


class _Upstream:
    def __init__(self, status=200, body=b"", content_type="image/png"):
        self.status_code = status
        self.headers = {"Content-Type": content_type}
        self._body = body
        self.closed = False

    def iter_content(self, chunk_size=1):
        yield self._body

    def close(self):
        self.closed = True


def test_image_proxy_streams_image(client, monkeypatch):
    seen = {}

    def fake_get(self, url, **kwargs):
        seen["url"] = url
        seen["stream"] = kwargs.get("stream")
        return _Upstream(body=b"PNGDATA")

    monkeypatch.setattr(requests.Session, "get", fake_get)

    url = "https://cf.geekdo-images.com/abc/pic.png"
    res = client.get("/api/image-proxy", query_string={"url": url})

    assert res.status_code == 200
    assert res.data == b"PNGDATA"
    assert res.headers["Content-Type"] == "image/png"
    assert res.headers["Cache-Control"] == "public, max-age=86400"
    assert seen == {"url": url, "stream": True}


def test_image_proxy_passes_upstream_errors(client, monkeypatch):
    monkeypatch.setattr(requests.Session, "get", lambda self, url, **kw: _Upstream(status=404))
    res = client.get("/api/image-proxy", query_string={"url": "https://cf.geekdo-images.com/missing.png"})
    assert res.status_code == 404


def test_image_proxy_network_failure(client, monkeypatch):
    def boom(self, url, **kwargs):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(requests.Session, "get", boom)
    res = client.get("/api/image-proxy", query_string={"url": "https://cf.geekdo-images.com/x.png"})
    assert res.status_code == 500
