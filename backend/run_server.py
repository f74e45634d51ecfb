#!/usr/bin/env python3
"""Run the playlist engine API locally."""
import os

# CLAP inference runs on a single BLAS thread
os.environ["OPENBLAS_NUM_THREADS"] = "1"
os.environ["MKL_NUM_THREADS"] = "1"
os.environ["NUMEXPR_NUM_THREADS"] = "1"
os.environ["OMP_NUM_THREADS"] = "1"

from playlist_engine.main import start_server

if __name__ == "__main__":
    start_server()
