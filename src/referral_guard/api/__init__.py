"""API - FastAPI intake gateway."""
