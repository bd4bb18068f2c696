from pathlib import PurePosixPath

from fastapi import Request
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

import config
from app.errors import MalformedUploadError, MissingImageFieldError, RequestTooLargeError

IMAGE_FIELD = "image"


def _too_large() -> RequestTooLargeError:
    return RequestTooLargeError(
        f"Request body exceeds maximum allowed size ({config.MAX_LENGTH} bytes)"
    )


def check_content_length(request: Request):
    """Reject requests that announce a body over the limit."""
    content_length = request.headers.get("content-length")
    if content_length is None:
        return
    try:
        content_length_value = int(content_length)
    except ValueError:
        raise MalformedUploadError("Invalid Content-Length header")
    if content_length_value > config.MAX_LENGTH:
        raise _too_large()


async def read_form(request: Request) -> FormData:
    """Parse a multipart body, stopping as soon as it crosses MAX_LENGTH."""
    check_content_length(request)

    received = 0
    too_large = False

    async def bounded_receive():
        nonlocal received, too_large
        message = await request.receive()
        if message["type"] == "http.request":
            received += len(message.get("body", b""))
            if received > config.MAX_LENGTH:
                too_large = True
                # Starlette closes the files it already spooled on this error
                raise MultiPartException(str(_too_large()))
        return message

    bounded_request = Request(request.scope, bounded_receive)
    try:
        return await bounded_request.form()
    except (MultiPartException, StarletteHTTPException) as e:
        if too_large:
            raise _too_large() from e
        # Starlette wraps multipart errors in an HTTPException inside an app
        detail = e.message if isinstance(e, MultiPartException) else str(e.detail)
        raise MalformedUploadError(detail) from e
    except ValueError as e:
        raise MalformedUploadError(str(e)) from e


def get_image(form: FormData) -> UploadFile:
    image = form.get(IMAGE_FIELD)
    if not isinstance(image, UploadFile):
        raise MissingImageFieldError()
    return image


def blob_name_for(image: UploadFile) -> str:
    """Name a blob after the uploaded file, without any directory part."""
    filename = (image.filename or "").replace("\\", "/")
    return PurePosixPath(filename).name
