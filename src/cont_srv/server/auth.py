"""HTTP basic authentication against a bcrypt hash."""

import logging
import secrets
import threading

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

log = logging.getLogger(__name__)

REALM = "cont-srv"

security = HTTPBasic(realm=REALM, auto_error=False)


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password for the ``password_hash`` config key."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("ascii")


class BasicAuth:
    """FastAPI dependency checking credentials for a single configured user.

    The first password that passes bcrypt is remembered, so later requests
    are compared directly instead of paying the hashing cost each time.
    """

    def __init__(self, user_name: str, password_hash: str):
        self.user_name = user_name
        self.password_hash = password_hash.encode("ascii")
        self._verified: bytes | None = None
        self._lock = threading.Lock()

    def verify(self, user_name: str, password: str) -> bool:
        if not secrets.compare_digest(user_name.encode("utf-8"), self.user_name.encode("utf-8")):
            return False

        provided = password.encode("utf-8")
        verified = self._verified
        if verified is not None:
            return secrets.compare_digest(provided, verified)

        try:
            ok = bcrypt.checkpw(provided, self.password_hash)
        except ValueError:
            log.error("Configured password hash is not a valid bcrypt hash")
            return False
        if ok:
            with self._lock:
                self._verified = provided
        return ok

    def __call__(
        self, credentials: HTTPBasicCredentials | None = Depends(security)
    ) -> str:
        if credentials is None or not self.verify(credentials.username, credentials.password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
                headers={"WWW-Authenticate": f'Basic realm="{REALM}"'},
            )
        return credentials.username
