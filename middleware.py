from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from contextvars import ContextVar

import logging
import time
import uuid

# Request id of the request being served, read by log.ContextualFilter
request_id_context: ContextVar[str] = ContextVar("request_id", default="N/A")

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id (reusing an upstream X-Request-ID) and logs its latency."""

    @classmethod
    def request_id_context(cls):
        return request_id_context

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        token = request_id_context.set(request_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error during %s %s.", request.method, request.url.path)
            raise
        else:
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info("%s %s -> %d in %.1fms", request.method, request.url.path,
                        response.status_code, (time.perf_counter() - started) * 1000)
            return response
        finally:
            request_id_context.reset(token)
