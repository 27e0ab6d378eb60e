import logging
import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from config import config

logger = logging.getLogger(__name__)

# auto_error=False so a missing header gets the same 401 as a wrong token
bearer_scheme = HTTPBearer(auto_error=False)


def _is_valid(token: str) -> bool:
    return any(secrets.compare_digest(token, valid) for valid in config.valid_tokens)


def get_current_client(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)) -> str:
    """Operator endpoints (catalog and reporting) require a token listed in VALID_TOKENS."""
    if credentials is None or credentials.scheme.lower() != "bearer" or not _is_valid(credentials.credentials):
        logger.info("rejected operator request: %s", "missing token" if credentials is None else "invalid token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing Bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials
