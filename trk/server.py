# trk/server.py
"""
FastAPI server exposing the trip archive to tracking devices.
"""

from fastapi import FastAPI, HTTPException, Request
from starlette.responses import JSONResponse

from trk.storage.dao import ArchiveDAO
from trk.storage.remote import ArchiveError, InvalidTripError
from trk.utils.log import get_logger
from trk.utils.validate import DraftUpload, Point, TripSummary, TripUpload

logger = get_logger(__name__)


def create_app(db_path: str) -> FastAPI:
    """
    Build a FastAPI instance bound to one archive database.
    """
    app = FastAPI(title="trk archive")
    app.state.dao = ArchiveDAO(db_path)

    @app.get("/api/status", response_class=JSONResponse)
    async def status() -> JSONResponse:
        return JSONResponse(status_code=200, content={"status": "ok"})

    @app.put("/api/drafts/{draft_id}", response_class=JSONResponse)
    def put_draft(request: Request, draft_id: str, body: DraftUpload) -> JSONResponse:
        """
        Overwrite the checkpoint of a trip in progress.
        """
        dao: ArchiveDAO = request.app.state.dao
        try:
            dao.push_draft(draft_id, body.user, body.path)
        except ArchiveError as e:
            logger.error("Draft %s not saved: %s", draft_id, e)
            raise HTTPException(status_code=503, detail=str(e))
        return JSONResponse(status_code=200, content={"ok": True, "points": len(body.path)})

    @app.post("/api/trips", response_class=JSONResponse)
    def post_trip(request: Request, body: TripUpload) -> JSONResponse:
        dao: ArchiveDAO = request.app.state.dao
        try:
            trip_id = dao.archive_trip(body.user, body.path, body.route)
        except InvalidTripError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ArchiveError as e:
            logger.error("Trip not archived: %s", e)
            raise HTTPException(status_code=503, detail=str(e))
        return JSONResponse(status_code=201, content={"id": trip_id})

    @app.get("/api/trips", response_model=list[TripSummary])
    def get_trips(request: Request):
        """
        Return all trips, newest upload first.
        """
        dao: ArchiveDAO = request.app.state.dao
        return dao.list_trips()

    @app.get("/api/trips/{trip_id}/route", response_model=list[Point])
    def get_route(request: Request, trip_id: str):
        dao: ArchiveDAO = request.app.state.dao
        try:
            return dao.fetch_route(trip_id)
        except ArchiveError as e:
            raise HTTPException(status_code=500, detail=str(e))

    return app
