"""
Script para ejecutar la API REST del backend de exámenes OSCE

Uso:
    python devops/scripts/run_api.py                  # desarrollo, auto-reload
    python devops/scripts/run_api.py --production     # producción
    PORT=9000 python devops/scripts/run_api.py        # puerto por variable de entorno
"""
import argparse
import os
import sys

# Agregar directorio raíz al path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..")))

APP_PATH = "osce_backend.api.main:app"


def run_server(host: str, port: int, production: bool) -> None:
    """
    Inicia uvicorn.

    En producción corre un único worker: el cache de listados vive en la
    memoria del proceso y varios workers servirían listados distintos.
    """
    import uvicorn

    mode = "Production" if production else "Development"
    print("=" * 80)
    print(f"OSCE Exam Backend - {mode} Server")
    print(f"Server: http://{host}:{port}")
    if not production:
        print(f"Swagger UI: http://{host}:{port}/docs")
    print("=" * 80)

    uvicorn.run(
        APP_PATH,
        host=host,
        port=port,
        reload=not production,
        workers=1,
        log_level="warning" if production else "info",
        access_log=True,
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run OSCE Exam Backend API Server")
    parser.add_argument("--production", action="store_true", help="Run without auto-reload")
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8000")),
        help="Port to run the server on (default: $PORT or 8000)",
    )

    args = parser.parse_args()
    run_server(args.host, args.port, args.production)
