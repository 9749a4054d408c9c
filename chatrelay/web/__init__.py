"""FastAPI service exposing the gateway trigger and webhook endpoints."""
