"""
Run the infoflow API with uvicorn.

Usage:
    python run.py
    python run.py --reload    # Development mode with auto-reload
    python run.py --port 8080 # Custom port
"""
import argparse
import uvicorn

from infoflow.config.settings import settings


def main():
    parser = argparse.ArgumentParser(description="Run the infoflow API server")
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of worker processes (default: 1, ignored if --reload is set)"
    )

    args = parser.parse_args()

    workers = 1 if args.reload else args.workers
    # The dry-run store lives in process memory
    if settings.is_dry_run and workers > 1:
        print("Dry-run backend is per-process; forcing a single worker")
        workers = 1

    print("Starting infoflow API server...")
    print(f"  Host: {args.host}")
    print(f"  Port: {args.port}")
    print(f"  Reload: {args.reload}")
    print(f"  Backend: {settings.repository_backend}")
    if workers > 1:
        print(f"  Workers: {workers}")
    print()

    uvicorn.run(
        "infoflow.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=workers
    )


if __name__ == "__main__":
    main()
