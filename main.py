import os
import json
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode, urlsplit

from flask import Flask, Response, current_app, request, jsonify
from flask_cors import CORS
import requests

# ----------------------
# Configuration
# ----------------------
DEFAULT_GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_GENERATION_CONFIG = {
    "temperature": 1,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 8192,
}
DEFAULT_API_TYPE = "gemini"
SERVICE_NAME = "genai-key-proxy"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Logging
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(SERVICE_NAME)


@dataclass(frozen=True)
class Settings:
    """Process-wide, read-only configuration."""

    gemini_api_key: Optional[str] = None
    seedream_api_key: Optional[str] = None
    freepik_api_key: Optional[str] = None
    gemini_api_base: str = DEFAULT_GEMINI_API_BASE
    upstream_timeout: Optional[float] = None

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        timeout = env.get("UPSTREAM_TIMEOUT")
        return cls(
            gemini_api_key=env.get("GEMINI_API_KEY") or None,
            seedream_api_key=env.get("SEEDREAM_API_KEY") or None,
            freepik_api_key=env.get("FREEPIK_API_KEY") or None,
            gemini_api_base=env.get("GEMINI_API_BASE") or DEFAULT_GEMINI_API_BASE,
            upstream_timeout=float(timeout) if timeout else None,
        )


# ----------------------
# Helpers
# ----------------------
def resolve_api_key(settings: Settings, api_type: Optional[str]) -> Optional[str]:
    """Return the secret configured for an API type, or None."""
    api_type = api_type or DEFAULT_API_TYPE
    if api_type == "gemini":
        return settings.gemini_api_key or None
    if api_type in ("seedream", "freepik"):
        return settings.seedream_api_key or settings.freepik_api_key or None
    return None


def append_key(url: str, api_key: str) -> str:
    """Add the key as a query parameter, keeping any existing query string."""
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode({'key': api_key})}"


def parse_json_body() -> dict:
    """Parse the raw request body as a JSON object."""
    data = json.loads(request.get_data(as_text=True))
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def preflight_response(methods: str):
    resp = Response("", status=200)
    resp.headers["Access-Control-Allow-Origin"] = "*"
    resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
    resp.headers["Access-Control-Allow-Methods"] = methods
    return resp


def relay(upstream: requests.Response) -> Response:
    """Pass the upstream status and body through untouched."""
    return Response(upstream.content, status=upstream.status_code, mimetype="application/json")


def forward(url: str, body: Optional[str], headers: dict, settings: Settings, log_url: str) -> Response:
    logger.info("Forwarding request to %s", log_url)
    upstream = requests.post(
        url,
        data=body,
        headers=headers,
        timeout=settings.upstream_timeout,
    )
    logger.info("Upstream %s answered %s", log_url, upstream.status_code)
    return relay(upstream)


def _without_query(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


def redact(message: str, api_key: Optional[str]) -> str:
    """Strip the secret from error text (requests embeds the full URL)."""
    if not api_key:
        return message
    encoded = urlencode({"key": api_key})[len("key="):]
    return message.replace(encoded, "***").replace(api_key, "***")


# ----------------------
# Endpoints
# ----------------------
def health_check():
    return jsonify({"status": "ok", "service": SERVICE_NAME}), 200


def gemini_proxy():
    if request.method == "OPTIONS":
        return preflight_response("POST, OPTIONS")

    settings = current_app.config["SETTINGS"]
    api_key = None
    try:
        data = parse_json_body()
        api_key = resolve_api_key(settings, "gemini")
        if not api_key:
            logger.error("GEMINI_API_KEY is not configured")
            return jsonify({"error": "GEMINI_API_KEY not configured in environment variables"}), 500

        model = data.get("model")
        if not model:
            return jsonify({"error": "model is required"}), 400

        base = settings.gemini_api_base.rstrip("/")
        endpoint = f"{base}/models/{model}:generateContent"
        payload = {}
        if "contents" in data:
            payload["contents"] = data["contents"]
        payload["generationConfig"] = data.get("generationConfig") or DEFAULT_GENERATION_CONFIG
        return forward(
            append_key(endpoint, api_key),
            json.dumps(payload),
            {"Content-Type": "application/json"},
            settings,
            log_url=endpoint,
        )
    except Exception as e:
        message = redact(str(e), api_key)
        logger.error("Gemini proxy request failed: %s: %s", type(e).__name__, message)
        return jsonify({"error": message}), 500


def proxy_api_request():
    if request.method == "OPTIONS":
        return preflight_response("POST, OPTIONS")

    settings = current_app.config["SETTINGS"]
    api_type = None
    api_key = None
    try:
        data = parse_json_body()
        api_type = data.get("apiType") or DEFAULT_API_TYPE
        api_key = resolve_api_key(settings, api_type)
        if not api_key:
            logger.error("No API key configured for api type %r", api_type)
            return jsonify({"error": "API key not configured in environment variables"}), 500

        url = data.get("url")
        if not url or not isinstance(url, str):
            return jsonify({"error": "url is required"}), 400

        extra_headers = data.get("headers") or {}
        if not isinstance(extra_headers, dict):
            return jsonify({"error": "headers must be a JSON object"}), 400

        headers = {"Content-Type": "application/json", **extra_headers}
        # an omitted body is sent as no body at all, not "null"
        body = json.dumps(data["body"]) if "body" in data else None
        return forward(
            append_key(url, api_key),
            body,
            headers,
            settings,
            log_url=_without_query(url),
        )
    except Exception as e:
        message = redact(str(e), api_key)
        logger.error("Proxy request for api type %r failed: %s: %s", api_type, type(e).__name__, message)
        return jsonify({"error": message}), 500


def get_api_key():
    # HEAD is routed here alongside GET
    if request.method != "GET":
        return jsonify({"error": "Method not allowed"}), 405

    api_type = request.args.get("type") or DEFAULT_API_TYPE
    api_key = resolve_api_key(current_app.config["SETTINGS"], api_type)
    return jsonify({"hasKey": bool(api_key), "apiType": api_type}), 200


# ----------------------
# App Setup
# ----------------------
def method_not_allowed(_error):
    return jsonify({"error": "Method not allowed"}), 405


def not_found(_error):
    return jsonify({"error": "Not found"}), 404


def internal_error(_error):
    return jsonify({"error": "Internal server error"}), 500


def create_app(settings: Optional[Settings] = None) -> Flask:
    app = Flask(__name__)
    app.config["SETTINGS"] = settings if settings is not None else Settings.from_env()

    app.add_url_rule("/", "health_check", health_check, methods=["GET"])
    app.add_url_rule(
        "/.netlify/functions/gemini-proxy",
        "gemini_proxy",
        gemini_proxy,
        methods=["POST", "OPTIONS"],
        provide_automatic_options=False,
    )
    app.add_url_rule(
        "/.netlify/functions/proxy-api-request",
        "proxy_api_request",
        proxy_api_request,
        methods=["POST", "OPTIONS"],
        provide_automatic_options=False,
    )
    app.add_url_rule(
        "/.netlify/functions/get-api-key",
        "get_api_key",
        get_api_key,
        methods=["GET"],
        provide_automatic_options=False,
    )

    CORS(app, send_wildcard=True, allow_headers=["Content-Type"])
    app.register_error_handler(405, method_not_allowed)
    app.register_error_handler(404, not_found)
    app.register_error_handler(500, internal_error)
    return app


app = create_app()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "8080")))
