#!/usr/bin/env python3
"""
Container entrypoint for the farmbook API: prepare the database, then exec gunicorn.

Environment:
    PORT              listen port (default 8080)
    WEB_CONCURRENCY   gunicorn worker count (default 2)
    SKIP_RELEASE      set to 1 when migrations run in a separate release job
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

DEFAULT_PORT = 8080


def listen_port() -> int:
    raw = (os.environ.get("PORT") or "").strip()
    if not raw:
        return DEFAULT_PORT
    if not raw.isdigit() or not 1 <= int(raw) <= 65535:
        raise SystemExit(f"[farmbook] PORT must be a number between 1 and 65535, got {raw!r}")
    return int(raw)


def gunicorn_argv(port: int, workers: str) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        f"--bind=0.0.0.0:{port}",
        f"--workers={workers}",
        "--timeout=60",
        "--preload",
        "--access-logfile=-",
        "--error-logfile=-",
    ]


def main() -> None:
    port = listen_port()

    if os.environ.get("SKIP_RELEASE") != "1":
        from scripts.release import run_release

        try:
            run_release()
        except Exception as e:
            raise SystemExit(f"[farmbook] database preparation failed: {e}")

    workers = os.environ.get("WEB_CONCURRENCY", "2")
    argv = gunicorn_argv(port, workers)
    print(f"[farmbook] serving on :{port} with {workers} workers", flush=True)
    # gunicorn takes over this PID so it receives container signals.
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
