import hmac
from typing import Optional

from fastapi import Request
from fastapi.responses import PlainTextResponse

import config
from logger_config import setup_logger

logger = setup_logger()


def is_authorized(provided_key: Optional[str]) -> bool:
    """Compare a request's key with the configured shared secret."""
    expected_key = config.API_KEY
    if not expected_key or provided_key is None:
        return False
    return hmac.compare_digest(provided_key.encode(), expected_key.encode())


async def authenticate(request: Request, call_next):
    """Reject any request that doesn't carry the shared secret."""
    if not is_authorized(request.headers.get(config.API_KEY_HEADER)):
        logger.warning(f"Rejected unauthenticated {request.method} {request.url.path}")
        return PlainTextResponse("Unauthorized", status_code=401)
    return await call_next(request)
