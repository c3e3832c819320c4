"""FastAPI application and HTTP plumbing."""

from cont_srv.server.app import create_app, create_app_from_env

__all__ = ["create_app", "create_app_from_env"]
