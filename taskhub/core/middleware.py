"""
Session and role-gating middleware.

Every API request must carry a valid bearer token; selected path prefixes
additionally require a role that is looked up from the database.
"""
import logging
import time
from typing import Callable, Dict, Iterable, Optional
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .config import get_settings
from .errors import NotAuthenticated
from .security import decode_access_token
from ..services.roles import get_roles_for_user

logger = logging.getLogger(__name__)

settings = get_settings()

PUBLIC_PATHS = {"/", "/health", "/docs", "/openapi.json", "/redoc", "/docs/oauth2-redirect"}


def _error(status_code: int, message: str, path: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "status_code": status_code, "path": path}
    )


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class SessionMiddleware(BaseHTTPMiddleware):
    """Authenticate API requests and enforce role gates"""

    def __init__(
        self,
        app,
        session_factory: Callable,
        api_prefix: str = "/api/v1",
        role_gates: Optional[Dict[str, str]] = None,
        public_paths: Optional[Iterable[str]] = None
    ):
        super().__init__(app)
        self.session_factory = session_factory
        self.api_prefix = api_prefix.rstrip("/")
        self.role_gates = role_gates if role_gates is not None else {
            f"{self.api_prefix}/reports": "admin"
        }
        self.public_paths = set(public_paths or PUBLIC_PATHS)
        self.public_paths.add(f"{self.api_prefix}/auth/login")

    def is_public(self, path: str) -> bool:
        if path in self.public_paths:
            return True
        return not path.startswith(self.api_prefix)

    def required_role(self, path: str) -> Optional[str]:
        for prefix, role in self.role_gates.items():
            if path == prefix or path.startswith(prefix + "/"):
                return role
        return None

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        path = request.url.path

        if request.method == "OPTIONS" or self.is_public(path):
            return await self._timed(request, call_next, start_time)

        token = _bearer_token(request)
        if not token:
            logger.info(f"{request.method} {path} - rejected, no session")
            return _error(status.HTTP_401_UNAUTHORIZED, "Unauthorized", path)

        try:
            claims = decode_access_token(token)
        except NotAuthenticated:
            logger.info(f"{request.method} {path} - rejected, invalid session")
            return _error(status.HTTP_401_UNAUTHORIZED, "Unauthorized", path)

        request.state.claims = claims

        role = self.required_role(path)
        if role:
            try:
                with self.session_factory() as db:
                    roles = get_roles_for_user(db, claims["sub"])
            except Exception as e:
                logger.error(f"Role lookup failed for {claims['sub']}: {e}")
                return _error(
                    status.HTTP_500_INTERNAL_SERVER_ERROR,
                    "Failed to verify permissions",
                    path
                )
            if role not in roles:
                logger.warning(f"User {claims['sub']} denied {path}: missing role {role}")
                return _error(
                    status.HTTP_403_FORBIDDEN,
                    f"Forbidden: {role.capitalize()} access required",
                    path
                )

        return await self._timed(request, call_next, start_time)

    async def _timed(self, request: Request, call_next, start_time: float):
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)

        if request.url.path not in ["/health"]:
            logger.info(
                f"{request.method} {request.url.path} - {response.status_code} ({process_time:.3f}s)"
            )
        return response
