"""
API Layer for Live Face Match

FastAPI application exposing the verification session to a host UI:
- REST endpoints to start/stop sampling and inspect its status
- REST endpoints to inspect and recompute the reference signature
- WebSocket stream of per-frame match outcomes
- Health check
"""
