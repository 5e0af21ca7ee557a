from __future__ import annotations

import logging
from urllib.parse import urlparse

import requests
from flask import Blueprint, Response, current_app, request, stream_with_context

from ..game.catalog import USER_AGENT

logger = logging.getLogger(__name__)

bp = Blueprint("images", __name__)

MAX_REDIRECTS = 5


def _allowed(url: str) -> bool:
    allowed_host = current_app.config.get("IMAGE_PROXY_HOST", "geekdo-images.com")
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if parsed.scheme not in ("http", "https"):
        return False
    return host == allowed_host or host.endswith("." + allowed_host)


@bp.get("/image-proxy")
def image_proxy():
    """Stream a BoardGameGeek image so browsers do not trip over CORS."""
    image_url = request.args.get("url", "")
    if not image_url or not _allowed(image_url):
        return Response("Invalid URL", status=400)

    session = requests.Session()
    session.max_redirects = MAX_REDIRECTS
    try:
        upstream = session.get(
            image_url,
            headers={"User-Agent": f"Mozilla/5.0 (compatible; {USER_AGENT})"},
            stream=True,
            timeout=current_app.config.get("CATALOG_TIMEOUT_SEC", 15),
        )
    except requests.TooManyRedirects:
        return Response("Too many redirects", status=500)
    except requests.RequestException as exc:
        logger.error("Proxy error for %s: %s", image_url, exc)
        return Response("Proxy error", status=500)

    if upstream.status_code != 200:
        upstream.close()
        return Response("Image fetch failed", status=upstream.status_code)

    def generate():
        try:
            yield from upstream.iter_content(chunk_size=8192)
        finally:
            upstream.close()

    resp = Response(
        stream_with_context(generate()),
        content_type=upstream.headers.get("Content-Type", "image/jpeg"),
    )
    resp.headers["Cache-Control"] = "public, max-age=86400"
    return resp
