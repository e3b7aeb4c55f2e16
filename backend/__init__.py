"""
backend — FastAPI application package.

Routers: api/health.py, api/sessions.py, api/chat.py
Schemas: schemas/response.py
Entry point: main.py → run with `uvicorn backend.main:app --reload`
"""
