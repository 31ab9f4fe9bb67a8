from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fitlog.api.auth import router as auth_router
from fitlog.api.chat import router as chat_router
from fitlog.api.dashboard import router as dashboard_router
from fitlog.api.entries import router as entries_router
from fitlog.api.plans import router as plans_router
from fitlog.api.profile import router as profile_router
from fitlog.core.errors import ConfigurationError, FitlogError, NotFoundError, RecordStoreError, UpstreamFailure
from fitlog.db.session import create_tables

app = FastAPI(title="Fitlog")

ERROR_STATUS = (
    (NotFoundError, 404),
    (ConfigurationError, 500),
    (RecordStoreError, 500),
    (UpstreamFailure, 502),
)


def _status_for(exc: FitlogError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


@app.exception_handler(FitlogError)
async def fitlog_error_handler(request: Request, exc: FitlogError) -> JSONResponse:
    return JSONResponse(status_code=_status_for(exc), content={"detail": str(exc)})


@app.on_event("startup")
def on_startup() -> None:
    create_tables()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api")
def api_root() -> dict[str, str]:
    return {"service": "Fitlog API", "status": "ok"}


app.include_router(auth_router)
app.include_router(entries_router)
app.include_router(chat_router)
app.include_router(plans_router)
app.include_router(profile_router)
app.include_router(dashboard_router)
