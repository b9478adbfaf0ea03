"""
Write the OpenAPI document to interfaces/openapi.json.

Usage:
  python -m tracker.api.generate_openapi
"""
import json
import os

from tracker.api.main import WEBSOCKET_ENDPOINTS, app


def main(output_dir: str = "interfaces") -> str:
    # all REST routes are under /api/v1
    openapi_schema = app.openapi()
    # Inject non-standard extension with WebSocket endpoint docs
    openapi_schema["x-websocket-endpoints"] = WEBSOCKET_ENDPOINTS

    os.makedirs(output_dir, exist_ok=True)
    output_path = os.path.join(output_dir, "openapi.json")
    with open(output_path, "w") as f:
        json.dump(openapi_schema, f, indent=2)
    return output_path


if __name__ == "__main__":
    main()
