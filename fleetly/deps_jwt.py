from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.orm import Session
from .auth_jwt import decode_access_token
from .database import get_db
from . import models

# OAuth2 bearer scheme; tokenUrl is only used by the Swagger "Authorize" button.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> models.User:
    """Decode the JWT and return the corresponding User or raise 401."""
    try:
        user_id, _ = decode_access_token(token)
    except (JWTError, KeyError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    user = db.get(models.User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user

def get_current_operator(user: models.User = Depends(get_current_user)) -> models.Operator:
    """Resolve the caller's operator profile or raise 403/404."""
    if user.role != models.UserRole.operator:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Operators only")
    if user.operator is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Create an operator profile first")
    return user.operator
