from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer

from stockledger.core.security import TokenValidationError, get_token_metadata

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=True)

ROLES = ("admin", "supervisor", "operator")


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_elevated(self) -> bool:
        return self.role in {"admin", "supervisor"}


def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    try:
        metadata = get_token_metadata(token)
    except TokenValidationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    if metadata.role not in ROLES:
        raise HTTPException(status_code=401, detail="Unknown role")
    return Actor(user_id=metadata.subject, role=metadata.role)
