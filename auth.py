import logging
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from fastapi import Depends
from fastapi import HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

import models
from database import IS_PRODUCTION, get_db

logger = logging.getLogger(__name__)


def load_secret_key(is_production: bool = IS_PRODUCTION) -> str:
    secret = os.getenv("JWT_SECRET")
    if secret:
        return secret
    if is_production:
        raise RuntimeError("JWT_SECRET must be set in production")
    logger.warning("JWT_SECRET is not set, using the development signing key")
    return "your-secret-key"


SECRET_KEY = load_secret_key()
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", 24))
RESET_TOKEN_EXPIRE_MINUTES = int(os.getenv("RESET_TOKEN_EXPIRE_MINUTES", 60))

ACCESS_TOKEN = "access"
RESET_TOKEN = "password_reset"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=10)
bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


class TokenRevocationStore:
    """Revoked token identifiers (jti), kept in the database.

    Rows only need to live until the token would have expired anyway, so
    every new revocation also purges the ones that are past their expiry.
    Nothing here commits; the caller owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def is_revoked(self, jti: str) -> bool:
        return self.db.query(models.RevokedToken).filter(models.RevokedToken.jti == jti).first() is not None

    def revoke(self, jti: str, expires_at: datetime) -> None:
        self.purge_expired()
        if not self.is_revoked(jti):
            self.db.add(models.RevokedToken(jti=jti, expires_at=expires_at))

    def purge_expired(self) -> int:
        now = datetime.now(timezone.utc)
        return self.db.query(models.RevokedToken).filter(
            models.RevokedToken.expires_at < now
        ).delete(synchronize_session=False)


class AuthService:
    """Credential checks plus issuing, verifying and revoking JWTs"""

    def __init__(self, db: Session, revocations: TokenRevocationStore):
        self.db = db
        self.revocations = revocations

    def create_token(self, user: models.User, token_type: str = ACCESS_TOKEN,
                     expires_delta: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS))
        claims = {
            "sub": user.id,
            "userId": user.id,
            "email": user.email,
            "role": models.UserRole(user.role).value,
            "type": token_type,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": expire,
        }
        return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)

    def decode_token(self, token: str) -> Dict[str, Any]:
        """Check signature and expiry. Raises JWTError."""
        claims = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        if not claims.get("jti") or not claims.get("userId"):
            raise JWTError("Token is missing required claims")
        return claims

    def get_active_user(self, user_id: str) -> Optional[models.User]:
        return self.db.query(models.User).filter(
            models.User.id == user_id,
            models.User.is_active.is_(True),
        ).first()

    def authenticate(self, email: str, password: str) -> Optional[models.User]:
        """
        Return the active user owning these credentials, or None.
        Unknown email and wrong password look the same to the caller.
        """
        user = self.db.query(models.User).filter(
            models.User.email == email,
            models.User.is_active.is_(True),
        ).first()
        if not user:
            return None
        if not verify_password(password, user.hashed_password):
            return None
        return user

    def verify_access_token(self, token: Optional[str]) -> Tuple[models.User, Dict[str, Any]]:
        if not token:
            raise unauthorized("No token provided")
        try:
            claims = self.decode_token(token)
        except JWTError as e:
            logger.info(f"Rejected token: {e}")
            raise unauthorized("Invalid token")
        if self.revocations.is_revoked(claims["jti"]):
            raise unauthorized("Token has been invalidated")
        if claims.get("type") != ACCESS_TOKEN:
            raise unauthorized("Invalid token")

        user = self.get_active_user(claims["userId"])
        if user is None:
            raise unauthorized("Invalid token")
        return user, claims

    def revoke(self, claims: Dict[str, Any]) -> None:
        expires_at = datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
        self.revocations.revoke(claims["jti"], expires_at)

    def issue_reset_token(self, user: models.User) -> str:
        return self.create_token(user, RESET_TOKEN, timedelta(minutes=RESET_TOKEN_EXPIRE_MINUTES))

    def consume_reset_token(self, token: str) -> models.User:
        """Validate a password-reset token and revoke it so it cannot be replayed."""
        invalid = HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired reset token")
        try:
            claims = self.decode_token(token)
        except JWTError:
            raise invalid
        if claims.get("type") != RESET_TOKEN or self.revocations.is_revoked(claims["jti"]):
            raise invalid

        user = self.get_active_user(claims["userId"])
        if user is None:
            raise invalid
        self.revoke(claims)
        return user


# Dependencies
def get_revocation_store(db: Session = Depends(get_db)) -> TokenRevocationStore:
    return TokenRevocationStore(db)


def get_auth_service(
    db: Session = Depends(get_db),
    revocations: TokenRevocationStore = Depends(get_revocation_store),
) -> AuthService:
    return AuthService(db, revocations)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    if credentials is None:
        return None
    return credentials.credentials


def get_current_user(
    token: Optional[str] = Depends(get_bearer_token),
    auth_service: AuthService = Depends(get_auth_service),
) -> models.User:
    """Resolve the bearer token to an active user, rejecting revoked tokens."""
    user, _ = auth_service.verify_access_token(token)
    return user
