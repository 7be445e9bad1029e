"""Launch the ingestion API under uvicorn."""

from __future__ import annotations

import os

import uvicorn

APP_FACTORY = "src.main:create_app"


def _positive_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _worker_count() -> int:
    # page-level parallelism lives in PAGE_WORKERS
    return _positive_int("UVICORN_WORKERS", 1)


def main() -> None:
    uvicorn.run(
        os.getenv("FASTAPI_APP", APP_FACTORY),
        host=os.getenv("HOST", "0.0.0.0"),
        port=_positive_int("PORT", 8080),
        factory=True,
        workers=_worker_count(),
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover - exercised in runtime
    main()
