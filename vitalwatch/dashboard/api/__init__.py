"""FastAPI application, middleware and routes."""
