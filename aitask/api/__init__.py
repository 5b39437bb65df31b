"""External entrypoints.

Composition:
    - `http_api`: FastAPI application exposing task dispatch over HTTP.
    - `cli`: One-shot command line runner.
"""
