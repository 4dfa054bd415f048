# app/utils/internal_auth.py

import hmac
import logging

from fastapi import Request

from app import config
from app.utils.errors import AuthorizationError

logger = logging.getLogger(__name__)


def verify_internal_api_key(request: Request):
    """Only the dispatch trigger may call worker routes."""
    auth_header = request.headers.get("Authorization") or ""
    expected = config.INTERNAL_API_KEY

    if not expected or not hmac.compare_digest(auth_header.encode(), f"Bearer {expected}".encode()):
        logger.warning("Unauthorized attempt on internal route")
        raise AuthorizationError("Unauthorized internal API call")
    return True
