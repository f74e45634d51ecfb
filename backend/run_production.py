#!/usr/bin/env python3
"""Run the playlist engine API with one uvicorn worker per spare core."""
import os
import multiprocessing

os.environ["OPENBLAS_NUM_THREADS"] = "1"
os.environ["MKL_NUM_THREADS"] = "1"
os.environ["NUMEXPR_NUM_THREADS"] = "1"
os.environ["OMP_NUM_THREADS"] = "1"

available_cores = multiprocessing.cpu_count()

if available_cores <= 2:
    workers = available_cores
else:
    workers = max(1, available_cores - 1)

port = int(os.getenv("PORT", "8000"))

# uvicorn must import after the thread limits are set
import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "playlist_engine.api:app",
        host="0.0.0.0",
        port=port,
        workers=workers,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        proxy_headers=True,
        access_log=True,
        forwarded_allow_ips="*"
    )
