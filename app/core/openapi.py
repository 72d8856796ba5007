"""OpenAPI metadata and customization utilities.

Enriches the generated OpenAPI schema with:
- Tags metadata
- API Key security scheme (``X-API-Key``) on the operational endpoints that
  require it
- The ``429`` response every rate-limited operation can return

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable

from fastapi import FastAPI

API_KEY_PATHS = ("/metrics",)

_RATE_LIMITED_RESPONSE = {
    "description": "Rate limit exceeded. See Retry-After and X-RateLimit-* headers.",
}


def apply_openapi_customizations(
    app: FastAPI,
    *,
    rate_limit_exempt_paths: Iterable[str] = (),
) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security."""

    original_openapi = app.openapi
    exempt = set(rate_limit_exempt_paths)

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Operator API key for monitoring endpoints.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Monitoring",
                "description": "Health checks and request/error/alert metrics.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                if path in API_KEY_PATHS:
                    method_obj["security"] = [{"ApiKeyAuth": []}]
                if path not in exempt:
                    method_obj.setdefault("responses", {}).setdefault("429", _RATE_LIMITED_RESPONSE)

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
