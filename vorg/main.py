# vorg/main.py: only app wiring, no endpoints here.
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from vorg import __version__
from vorg.api.routes import collections
from vorg.core.errors import VorgError
from vorg.services.repo import Repository


def create_app(repo: Path) -> FastAPI:
    """
    Build the read-only HTTP app for the repository at `repo`. The repository
    is opened once here so layout and schema problems fail at startup.
    """
    Repository.open(repo).close()

    app = FastAPI(title="vorg", version=__version__)
    app.state.repo_path = Path(repo)

    @app.exception_handler(VorgError)
    def _vorg_error(request: Request, exc: VorgError):
        return JSONResponse(status_code=500, content={"kind": exc.kind.value, "detail": str(exc)})

    app.include_router(collections.api_router, prefix="/api")
    app.include_router(collections.public_router)   # /store/*
    return app
