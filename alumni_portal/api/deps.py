from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from alumni_portal.core.security import JWTError, user_id_from_token
from alumni_portal.db.session import get_db
from alumni_portal.models.user import User

# auto_error=False so a missing header is a 401 like a bad token, not a 403
bearer_scheme = HTTPBearer(auto_error=False)

UNAUTHORIZED = {"WWW-Authenticate": "Bearer"}


def get_current_user(
        creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
        db: Session = Depends(get_db)
) -> User:
    if creds is None:
        raise HTTPException(status_code=401, detail="Not authenticated", headers=UNAUTHORIZED)
    try:
        user_id = user_id_from_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token", headers=UNAUTHORIZED)

    user = db.get(User, user_id)
    if user is None:
        # token outlived its account
        raise HTTPException(status_code=401, detail="Account no longer exists", headers=UNAUTHORIZED)
    return user
