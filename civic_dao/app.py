"""
civic_dao/app.py
----------------
Thin entrypoint for running the Civic DAO API via:

    uvicorn civic_dao.app:app

All real route wiring lives in civic_dao.civic_api.
"""

from .civic_api import create_app

app = create_app()


if __name__ == "__main__":
    # Convenience for: python -m civic_dao.app
    import uvicorn

    from .settings import settings

    uvicorn.run(app, host=settings.BIND_HOST, port=settings.BIND_PORT)
