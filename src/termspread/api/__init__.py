"""HTTP API layer -- FastAPI app factory and JSON routes."""
