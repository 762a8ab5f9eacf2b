"""
District Import API: FastAPI application

POST /import-districts takes a multipart upload (field "file") and an
Authorization bearer token. Checks run in this order, each answering with
{"error": ...} on failure:

  401  no Authorization header / token not accepted
  403  caller lacks the admin role
  400  no file / no row with an NCES ID
  500  anything unexpected

A 200 response can still carry per-batch failures in "errors".
"""
import logging
from typing import Callable

import psycopg
from fastapi import Depends, FastAPI, File, Header, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from district_etl import config
from district_etl.auth import bearer_token, resolve_user
from district_etl.import_districts import run_import
from district_etl.shared import NoValidRowsError
from district_etl.store import PostgresDistrictStore, has_role

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger(__name__)

app = FastAPI(
    title="District Import API",
    version="1.0.0",
    description="Bulk import of NCES school-district reference data",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


# Dependencies
def _connect() -> psycopg.Connection:
    return psycopg.connect(config.DB_DSN, autocommit=True)


def get_connection_factory() -> Callable[[], psycopg.Connection]:
    return _connect


def get_user_resolver() -> Callable[[str], str | None]:
    return resolve_user


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# Endpoints
@app.get("/health")
def health():
    return {"status": "ok", "service": "district-import"}


@app.post("/import-districts")
def import_districts(
    file: UploadFile | None = File(default=None),
    authorization: str | None = Header(default=None),
    connect: Callable[[], psycopg.Connection] = Depends(get_connection_factory),
    resolve: Callable[[str], str | None] = Depends(get_user_resolver),
):
    if not authorization:
        return _error(401, "No authorization header")

    try:
        user_id = resolve(bearer_token(authorization))
        if not user_id:
            return _error(401, "Unauthorized")

        with connect() as conn:
            if not has_role(conn, user_id, config.ADMIN_ROLE):
                log.warning("User %s lacks %s", user_id, config.ADMIN_ROLE)
                return _error(403, "Admin access required")

            if file is None:
                return _error(400, "No file provided")

            content = file.file.read()
            log.info("Processing file: %s, size: %d", file.filename, len(content))

            result = run_import(
                PostgresDistrictStore(conn),
                file.filename,
                content,
                batch_size=config.IMPORT_BATCH_SIZE,
            )
    except NoValidRowsError as exc:
        return _error(400, str(exc))
    except Exception as exc:
        log.exception("Import error")
        return _error(500, str(exc) or type(exc).__name__)

    log.info(
        "Import complete: total=%d inserted=%d updated=%d skipped=%d batch_errors=%d",
        result.total, result.inserted, result.updated, result.skipped, len(result.errors),
    )
    return JSONResponse(content=result.to_response())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("district_etl.app:app", host="0.0.0.0", port=config.PORT)
