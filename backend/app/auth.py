import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple

import bcrypt
from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from shared.config import settings
from shared.database import get_db
from shared.models import ApiToken, User, utcnow

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def issue_token(db: Session, user: User) -> Tuple[str, datetime]:
    """Create a new bearer token for the user. Only its digest is persisted."""
    token = secrets.token_urlsafe(40)
    expires_at = utcnow() + timedelta(minutes=settings.TOKEN_TTL_MINUTES)
    db.add(ApiToken(user_id=user.id, token_hash=_digest(token), expires_at=expires_at))
    db.commit()
    return token, expires_at


def revoke_token(db: Session, token: str) -> None:
    db.query(ApiToken).filter(ApiToken.token_hash == _digest(token)).delete()
    db.commit()


def _resolve_user(db: Session, token: str) -> Optional[User]:
    record = db.query(ApiToken).filter(ApiToken.token_hash == _digest(token)).first()
    if record is None or record.expires_at <= utcnow():
        return None
    return record.user


def get_optional_user(
        credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
        db: Session = Depends(get_db),
) -> Optional[User]:
    if credentials is None:
        return None
    return _resolve_user(db, credentials.credentials)


async def get_current_token(
        credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> str:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthenticated.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


def get_current_user(
        token: str = Depends(get_current_token),
        db: Session = Depends(get_db),
) -> User:
    user = _resolve_user(db, token)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthenticated.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")
    return user


def require_event_author(user: User = Depends(get_current_user)) -> User:
    if not user.can_create_events:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only organizers and admins can create events",
        )
    return user
