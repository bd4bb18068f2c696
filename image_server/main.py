from pathlib import Path
from contextlib import asynccontextmanager
from urllib.parse import quote
from fastapi import FastAPI, Request, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn
import config
from logger_config import setup_logger
from app.errors import BlobNotFoundError, BlobStoreError, ValidationError
from app.services.auth import authenticate
from app.services.blob_store import BlobStore
from app.services.uploads import blob_name_for, get_image, read_form

# Data storage path
DATA_DIR = Path(config.DATA_DIR)
TEMP_DIR = Path(config.TEMP_DIR)

# Headers the delete endpoint always sends, even on failure
DELETE_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "DELETE",
    "Access-Control-Allow-Headers": "Content-Type",
}

# Logger setup
logger = setup_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not config.API_KEY:
        raise RuntimeError("IMAGE_SERVER_API_KEY must be set to start the server")
    # Create and initialize blob store
    app.state.blob_store = BlobStore(DATA_DIR, TEMP_DIR)
    await app.state.blob_store.initialize()
    yield


# Create FastAPI app with lifespan
app = FastAPI(title="Image Blob Server", lifespan=lifespan)

# Middleware added last runs first: CORS wraps the authentication gate
app.middleware("http")(authenticate)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=config.CORS_METHODS,
    allow_headers=config.CORS_HEADERS,
)


@app.exception_handler(StarletteHTTPException)
async def plain_text_http_exception_handler(request: Request, exc: StarletteHTTPException):
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)


def content_disposition(name: str) -> str:
    """Attachment header for a blob name, with an RFC 6266 form for non-ASCII names."""
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    if escaped.isascii():
        return f'attachment;filename="{escaped}"'
    fallback = escaped.encode("ascii", "replace").decode("ascii")
    return f"attachment;filename=\"{fallback}\"; filename*=UTF-8''{quote(name, safe='')}"


async def receive_upload(request: Request):
    """Parse the upload body and return the form, the image file and its blob name."""
    try:
        form = await read_form(request)
    except ValidationError as e:
        logger.info(f"Rejected upload: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    try:
        image = get_image(form)
        name = blob_name_for(image)
        request.app.state.blob_store.resolve(name)
    except ValidationError as e:
        logger.info(f"Rejected upload: {e}")
        await form.close()
        raise HTTPException(status_code=400, detail=str(e))
    return form, image, name


@app.post("/upload", response_class=PlainTextResponse)
async def upload_image(request: Request):
    """Store the uploaded image, replacing any blob with the same name."""
    blob_store = request.app.state.blob_store
    form, image, name = await receive_upload(request)

    logger.info(f"Receiving upload request for blob: {name}")
    try:
        size = await blob_store.put(name, image)
    except BlobStoreError as e:
        logger.error(f"Error uploading blob {name}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        await form.close()

    logger.info(f"Uploaded blob {name} ({size} bytes)")
    return f"File - {name}  was uploaded successfully"


@app.post("/update", response_class=PlainTextResponse)
async def update_image(request: Request):
    """Overwrite an existing image in place, or create it if it's missing."""
    blob_store = request.app.state.blob_store
    form, image, name = await receive_upload(request)

    logger.info(f"Receiving update request for blob: {name}")
    try:
        created = await blob_store.upsert(name, image)
    except BlobStoreError as e:
        logger.error(f"Error updating blob {name}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        await form.close()

    if created:
        logger.info(f"Blob {name} didn't exist, created it")
        return f"File - {name} - didn't exist, so the file was uploaded successfully"
    logger.info(f"Updated blob {name}")
    return f"File - {name}  was updated successfully"


@app.delete("/delete/{name}", response_class=PlainTextResponse)
async def delete_image(name: str, request: Request, response: Response):
    """Delete a blob. Any failure, a missing blob included, is a 500."""
    blob_store = request.app.state.blob_store
    logger.info(f"Receiving delete request for blob: {name}")
    response.headers.update(DELETE_CORS_HEADERS)

    try:
        await blob_store.delete(name)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e), headers=DELETE_CORS_HEADERS)
    except (BlobNotFoundError, BlobStoreError) as e:
        logger.error(f"Error deleting blob {name}: {e}")
        raise HTTPException(status_code=500, detail=str(e), headers=DELETE_CORS_HEADERS)

    logger.info(f"Successfully deleted blob: {name}")
    return f"File - {name}  was deleted successfully"


@app.get("/fetch/{name}")
async def fetch_image(name: str, request: Request):
    """Send a blob back as an image attachment."""
    blob_store = request.app.state.blob_store
    logger.info(f"Receiving download request for blob: {name}")

    try:
        content = await blob_store.get(name)
    except (ValidationError, BlobNotFoundError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BlobStoreError as e:
        logger.error(f"Error fetching blob {name}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return Response(
        content=content,
        media_type="image/jpg",
        headers={"Content-Disposition": content_disposition(name)},
    )


@app.get("/fetchlist")
async def fetch_list(request: Request):
    """List the names of all stored blobs."""
    blob_store = request.app.state.blob_store
    logger.info("Receiving list request")

    try:
        names = await blob_store.list()
    except BlobStoreError as e:
        logger.error(f"Error listing blobs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return JSONResponse(names)


if __name__ == "__main__":
    logger.info("Starting image blob server...")
    logger.info(f"Data directory: {DATA_DIR}")
    logger.info(f"Temporary directory: {TEMP_DIR}")
    logger.info(f"Running image server http://{config.HOST}:{config.PORT}")
    uvicorn.run(app, host=config.HOST, port=config.PORT)
