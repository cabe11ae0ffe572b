import logging
from typing import Any, List

from fastapi import Body, FastAPI, HTTPException, Request, Response

from annotation_tool.config import settings
from annotation_tool.core.exceptions import TrackConstructionError
from annotation_tool.core.timestamps import now_millis
from annotation_tool.database.database import Database, DatabaseContext
from annotation_tool.logging_config import setup_logging
from annotation_tool.models import Annotation, Track, TrackContext
from annotation_tool.services.transport import LocalStorageTransport

logger = logging.getLogger(__name__)

TRACKS_COLLECTION = "tracks"

app = FastAPI()


@app.on_event("startup")
def startup_event():
    setup_logging(settings.log_level)
    settings.database_path.parent.mkdir(parents=True, exist_ok=True)
    database = Database(DatabaseContext(database_path=settings.database_path))
    if not database.initialize():
        raise RuntimeError(f"Unable to initialize database at {settings.database_path}")
    app.state.database = database


def get_database(request: Request) -> Database:
    return request.app.state.database


def server_context(database: Database) -> TrackContext:
    # The backend validates with the same entity, reading annotations straight from the store
    return TrackContext(
        transport=LocalStorageTransport(database),
        collection_url=TRACKS_COLLECTION,
    )


def annotations_collection(track_id: str) -> str:
    return f"{TRACKS_COLLECTION}/{track_id}/annotations"


def load_track_record(database: Database, track_id: str) -> dict[str, Any]:
    record = database.get_record(TRACKS_COLLECTION, track_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Track {track_id} not found")
    return record


@app.get("/")
def read_root():
    return {"message": "Annotation tool API"}


@app.get("/tracks")
def list_tracks(request: Request) -> List[dict[str, Any]]:
    records = get_database(request).get_records(TRACKS_COLLECTION)
    if records is None:
        raise HTTPException(status_code=500, detail="Unable to read tracks")
    return records


@app.post("/tracks", status_code=201)
def create_track(request: Request, body: dict[str, Any] = Body(...)) -> dict[str, Any]:
    database = get_database(request)
    try:
        track = Track(Track.parse(body), server_context(database))
    except TrackConstructionError as e:
        raise HTTPException(status_code=400, detail=e.message)

    now = now_millis()
    track.set({"created_at": track.get("created_at", now), "updated_at": now})

    stored = database.add_record(TRACKS_COLLECTION, track.to_json())
    if stored is None:
        raise HTTPException(status_code=500, detail="Unable to store track")
    logger.info(f"Created track {stored['id']}")
    return stored


@app.get("/tracks/{track_id}")
def read_track(request: Request, track_id: str) -> dict[str, Any]:
    return load_track_record(get_database(request), track_id)


@app.put("/tracks/{track_id}")
def update_track(request: Request, track_id: str, body: dict[str, Any] = Body(...)) -> dict[str, Any]:
    database = get_database(request)
    record = load_track_record(database, track_id)
    try:
        track = Track(Track.parse(record), server_context(database))
    except TrackConstructionError as e:
        logger.error(f"Stored track {track_id} is invalid: {e}")
        raise HTTPException(status_code=500, detail=e.message)

    if not track.set(Track.parse(body)):
        raise HTTPException(status_code=400, detail=track.validation_error)
    track.set({"updated_at": now_millis()})

    stored = database.update_record(TRACKS_COLLECTION, track_id, track.to_json())
    if stored is None:
        raise HTTPException(status_code=500, detail="Unable to store track")
    return stored


@app.delete("/tracks/{track_id}", status_code=204)
def delete_track(request: Request, track_id: str) -> Response:
    database = get_database(request)
    load_track_record(database, track_id)

    collection = annotations_collection(track_id)
    for annotation in database.get_records(collection) or []:
        database.delete_record(collection, annotation["id"])

    if not database.delete_record(TRACKS_COLLECTION, track_id):
        raise HTTPException(status_code=500, detail="Unable to delete track")
    return Response(status_code=204)


@app.get("/tracks/{track_id}/annotations")
def list_annotations(request: Request, track_id: str) -> List[dict[str, Any]]:
    database = get_database(request)
    load_track_record(database, track_id)
    records = database.get_records(annotations_collection(track_id))
    if records is None:
        raise HTTPException(status_code=500, detail="Unable to read annotations")
    return records


@app.post("/tracks/{track_id}/annotations", status_code=201)
def create_annotation(request: Request, track_id: str, annotation: Annotation) -> dict[str, Any]:
    database = get_database(request)
    load_track_record(database, track_id)

    annotation.track_id = track_id
    if annotation.created_at is None:
        annotation.created_at = now_millis()

    stored = database.add_record(annotations_collection(track_id), annotation.to_json())
    if stored is None:
        raise HTTPException(status_code=500, detail="Unable to store annotation")
    return stored
