from fastapi import FastAPI, HTTPException, Request, WebSocket
from fastapi.responses import HTMLResponse, StreamingResponse
from fastapi.templating import Jinja2Templates
from typing import List, Optional
import csv
import io
import logging
import sqlite3

import jinja2

from . import config
from .database import create_tables, fetch_latest_snapshots
from .models import METRIC_FIELDS, Snapshot
from .session import SessionHandler, SessionLimiter

logger = logging.getLogger(__name__)

INGEST_PATH = "/"
LATEST_PATH = "/latest"

# 1013 = "try again later"
CLOSE_TRY_AGAIN_LATER = 1013


def create_app(
    auth_token: Optional[str] = config.AUTH_TOKEN,
    database_url: str = config.DATABASE_URL,
    idle_timeout: float = config.DATA_TIMEOUT,
    max_sessions: Optional[int] = config.MAX_SESSIONS,
    template_dir: str = config.TEMPLATE_DIR,
) -> FastAPI:
    app = FastAPI(title="saigon")
    app.state.auth_token = auth_token
    app.state.database_url = database_url
    app.state.idle_timeout = idle_timeout
    app.state.session_limiter = SessionLimiter(max_sessions)
    app.state.templates = Jinja2Templates(directory=template_dir)

    @app.on_event("startup")
    def on_startup():
        create_tables(app.state.database_url)
        if not app.state.auth_token:
            logger.warning("AUTH_TOKEN is not set, every agent message will be rejected")
        if not app.state.session_limiter.bounded:
            logger.warning("MAX_SESSIONS is not set, concurrent agent sessions are unbounded")

    @app.websocket(INGEST_PATH)
    async def ingest(websocket: WebSocket):
        limiter = app.state.session_limiter
        acquired = limiter.try_acquire()
        try:
            try:
                await websocket.accept()
            except (RuntimeError, OSError) as e:
                logger.warning("Failed to upgrade connection from %s: %s", websocket.client, e)
                return

            if not acquired:
                logger.warning(
                    "Refusing connection from %s: %d sessions already open",
                    websocket.client, limiter.max_sessions,
                )
                # closing before accept() would be a 403 handshake rejection, not a 1013
                await websocket.close(code=CLOSE_TRY_AGAIN_LATER)
                return

            handler = SessionHandler(
                websocket,
                auth_token=app.state.auth_token,
                database_url=app.state.database_url,
                idle_timeout=app.state.idle_timeout,
            )
            await handler.run()
        finally:
            if acquired:
                limiter.release()

    @app.get(LATEST_PATH, response_class=HTMLResponse)
    def latest(request: Request):
        snapshots = _load_latest(app.state.database_url)
        try:
            # Render fully before responding so a template error leaves no partial page
            body = app.state.templates.get_template("latest.html").render(
                request=request, snapshots=snapshots
            )
        except jinja2.TemplateError as e:
            logger.error("Failed to render template: %s", e)
            raise HTTPException(status_code=500, detail="Failed to render template")
        return HTMLResponse(body)

    @app.get("/api/v1/latest")
    def latest_json() -> List[dict]:
        return [snapshot.public_dict() for snapshot in _load_latest(app.state.database_url)]

    @app.get("/api/v1/export.csv")
    def latest_csv():
        snapshots = _load_latest(app.state.database_url)

        output = io.StringIO()
        writer = csv.writer(output)
        headers = ["timestamp", *METRIC_FIELDS]
        writer.writerow(headers)
        for snapshot in snapshots:
            row = snapshot.public_dict()
            writer.writerow([row[name] for name in headers])

        output.seek(0)
        return StreamingResponse(output, media_type="text/csv", headers={"Content-Disposition": "attachment; filename=latest.csv"})

    return app


def _load_latest(database_url: str) -> List[Snapshot]:
    try:
        return fetch_latest_snapshots(database_url)
    except sqlite3.Error as e:
        logger.error("Failed to query database: %s", e)
        raise HTTPException(status_code=500, detail="Failed to query database")


app = create_app()
