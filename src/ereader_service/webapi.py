import html
import logging
import os
from pathlib import Path

from fastapi import FastAPI, File, Form, HTTPException, UploadFile, status
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse

from ereader_service.jobs import (
    ConversionService,
    InvalidRequestError,
    JobNotFoundError,
    JobRegistry,
    JobStatus,
    ProcessRunner,
)
from ereader_service.jobs.adapters import LocalStorage
from ereader_service.jobs.service import link_for

logger = logging.getLogger(__name__)

app = FastAPI(
    title="E-Reader Conversion Service",
    version=os.getenv("EREADER_SERVICE_VERSION", "0.1.0"),
    description=(
        "Upload files or convert web pages into e-reader documents "
        "(PDF, EPUB, HTML, Markdown) as asynchronous jobs."
    ),
)

# Global configuration defaults
FILES_DIR = Path(os.getenv("FILES_DIR", "./public/files")).resolve()
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "300"))
JOB_TIMEOUT_SEC = int(os.getenv("JOB_TIMEOUT_SEC", "60"))
JOB_TTL_SEC = float(os.getenv("JOB_TTL_SEC")) if os.getenv("JOB_TTL_SEC") else None
CONVERTER_COMMAND = os.getenv("CONVERTER_COMMAND", "npx")

SERVICE: ConversionService | None = None
RUNNER: ProcessRunner | None = None


def _service() -> ConversionService:
    assert SERVICE is not None, "service not started"
    return SERVICE


def _parse_timeout(raw: str | None) -> int | None:
    # Unparseable values fall back to the default timeout.
    try:
        return int(raw) if raw else None
    except ValueError:
        return None


@app.on_event("startup")
async def _startup() -> None:
    global SERVICE, RUNNER
    storage = LocalStorage(str(FILES_DIR))
    storage.ensure()
    RUNNER = ProcessRunner(default_timeout_ms=JOB_TIMEOUT_SEC * 1000)
    SERVICE = ConversionService(
        storage=storage,
        runner=RUNNER,
        registry=JobRegistry(ttl_sec=JOB_TTL_SEC),
        command=CONVERTER_COMMAND,
        default_timeout_sec=JOB_TIMEOUT_SEC,
    )
    logger.info("Serving files from %s", FILES_DIR)


@app.on_event("shutdown")
async def _shutdown() -> None:
    global SERVICE, RUNNER
    if RUNNER is not None:
        await RUNNER.aclose()
    RUNNER = None
    SERVICE = None


@app.get("/health")
def health() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "ok"}


@app.post("/api/upload")
async def upload(userfile: UploadFile | None = File(None)):
    """Store an uploaded file under the files directory.

    Accepts multipart/form-data with a part named "userfile" and redirects to
    the link page of the stored file.
    """
    if userfile is None or not userfile.filename:
        return PlainTextResponse("missing file", status_code=status.HTTP_400_BAD_REQUEST)

    async def read_chunk(n: int) -> bytes:
        return await userfile.read(n)

    try:
        fname = await _service().save_upload(userfile.filename, read_chunk, max_upload_mb=MAX_UPLOAD_MB)
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail={"code": "bad_request", "message": str(e)})
    except ValueError as e:
        raise HTTPException(status_code=413, detail={"code": "payload_too_large", "message": str(e)})
    return RedirectResponse(link_for(fname), status_code=status.HTTP_303_SEE_OTHER)


@app.post("/api/ereader", status_code=status.HTTP_202_ACCEPTED)
async def ereader(
    url: str | None = Form(None),
    format: str | None = Form(None),
    timeout: str | None = Form(None),
) -> JSONResponse:
    """Launch a percollate conversion of `url` into `format`.

    Returns 202 Accepted immediately with the job id; poll /api/job/{id}.
    """
    try:
        job_id = _service().launch_ereader(url or "", format or "", _parse_timeout(timeout))
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail={"code": "bad_request", "message": str(e)})

    body = {
        "id": job_id,
        "status": JobStatus.PENDING,
        "links": {"self": f"/api/job/{job_id}"},
    }
    headers = {"Location": f"/api/job/{job_id}"}
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=body, headers=headers)


@app.get("/api/job/{job_id}")
async def get_job(job_id: str, wait: bool = True):
    """Report a job's outcome, by default waiting for it to settle."""
    try:
        body = await _service().job_status(job_id, wait=wait)
    except JobNotFoundError:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"id": job_id, "status": JobStatus.ERROR, "error": "job not found"},
        )
    if body["status"] == JobStatus.ERROR:
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)
    if body.get("redirect"):
        return RedirectResponse(str(body["redirect"]), status_code=status.HTTP_302_FOUND)
    return JSONResponse(content=body)


@app.get("/link", response_class=HTMLResponse)
def link(fname: str) -> HTMLResponse:
    href = f"/files/{html.escape(fname, quote=True)}"
    content = (
        "<!doctype html><html><head><title>Your file</title></head><body>"
        f'<p>Your file is ready: <a href="{href}">{html.escape(fname)}</a></p>'
        '<p><a href="/files/">All files</a></p>'
        "</body></html>"
    )
    return HTMLResponse(content=content)


@app.get("/files/", response_class=HTMLResponse)
def list_files() -> HTMLResponse:
    rows = []
    for entry in _service().list_files():
        name = html.escape(entry.name)
        suffix = "/" if entry.is_dir else ""
        size = "" if entry.is_dir else f" ({entry.size_bytes} bytes)"
        rows.append(f'<li><a href="/files/{html.escape(entry.name, quote=True)}">{name}{suffix}</a>{size}</li>')
    content = (
        "<!doctype html><html><head><title>Files</title></head><body>"
        f"<h1>Files</h1><ul>{''.join(rows)}</ul></body></html>"
    )
    return HTMLResponse(content=content)


@app.get("/files/{name}")
def get_file(name: str) -> FileResponse:
    try:
        path = _service().file_path(name)
    except InvalidRequestError:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "file not found"})
    if not path.is_file():
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "file not found"})
    return FileResponse(path)


def run() -> None:
    """Run a development ASGI server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:8080). Set PORT env var to override.
    """
    import uvicorn

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8080"))
    # Enable reload in dev unless explicitly disabled
    reload = os.getenv("RELOAD", "true").lower() in {"1", "true", "yes", "on"}

    uvicorn.run("ereader_service.webapi:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    run()
