"""Post a sample image-generation request to a deployed gemini-proxy and
report whether image data came back.

    python smoke_check.py --url https://example.netlify.app/.netlify/functions/gemini-proxy
"""
import argparse
import logging
import sys

import requests

DEFAULT_MODEL = "gemini-2.5-flash-image"
DEFAULT_PROMPT = "A simple test image of a red apple on a white background"

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger("genai-key-proxy.smoke")


def build_payload(model: str, prompt: str) -> dict:
    return {
        "model": model,
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        "generationConfig": {
            "temperature": 1,
            "topK": 40,
            "topP": 0.95,
            "maxOutputTokens": 8192,
        },
    }


def find_inline_image(payload):
    """Return the first inlineData part of the first candidate, or None."""
    candidates = payload.get("candidates") if isinstance(payload, dict) else None
    if not candidates:
        return None
    parts = (candidates[0].get("content") or {}).get("parts") or []
    for part in parts:
        inline = part.get("inlineData")
        if inline:
            return inline
    return None


def run(url: str, model: str, prompt: str, timeout: float) -> bool:
    logger.info("Testing gemini proxy at %s", url)
    resp = requests.post(url, json=build_payload(model, prompt), timeout=timeout)
    logger.info("Response status: %s %s", resp.status_code, resp.reason)
    logger.info("Response body length: %d", len(resp.text))

    try:
        data = resp.json()
    except ValueError:
        logger.error("Response is not JSON: %s", resp.text[:500])
        return False

    if not resp.ok:
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            error = error.get("message", error)
        logger.error("Request failed: %s", error or resp.text[:500])
        return False

    image = find_inline_image(data)
    if image is None:
        logger.error("No image data in response")
        return False

    logger.info("Image data found: %s, %d chars", image.get("mimeType"), len(image.get("data", "")))
    return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--url", required=True, help="gemini-proxy endpoint")
    parser.add_argument("--model", default=DEFAULT_MODEL)
    parser.add_argument("--prompt", default=DEFAULT_PROMPT)
    parser.add_argument("--timeout", type=float, default=120.0)
    args = parser.parse_args(argv)

    try:
        ok = run(args.url, args.model, args.prompt, args.timeout)
    except requests.RequestException as e:
        logger.error("Request failed: %s", e)
        ok = False
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
