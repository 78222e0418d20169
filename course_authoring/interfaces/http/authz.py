from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from ...config import settings

bearer = HTTPBearer()

AUTHOR_ROLES = {"instructor", "admin"}

def decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

def get_claims(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> dict:
    return decode_token(creds.credentials)

def require_instructor(claims: dict = Depends(get_claims)) -> dict:
    # токены выпускает внешний сервис авторизации, здесь только проверяем роль
    if not claims.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    role = claims.get("role", "student")
    if role not in AUTHOR_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Instructor required")
    return claims

def ensure_owner(owner: str | None, claims: dict) -> None:
    if claims.get("role") == "admin":
        return
    if owner != claims.get("sub"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your course")
