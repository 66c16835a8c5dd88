from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from stocksync.api import routes
from stocksync.api.errors import VALIDATION_ERROR, SyncApiError
from stocksync.db import init_db

app = FastAPI(title="stocksync")


@app.on_event("startup")
def startup() -> None:
    init_db()


@app.exception_handler(RequestValidationError)
def request_validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    error = SyncApiError(code=VALIDATION_ERROR, message="Invalid request", details={"errors": exc.errors()})
    return JSONResponse(status_code=422, content=error.to_dict())


app.include_router(routes.router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
