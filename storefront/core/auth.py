
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from storefront.core.config import settings

security = HTTPBearer(auto_error=False)

def get_current_identity(creds: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = jwt.decode(creds.credentials, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid access token")
    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid access token")
    return payload  # contains sub (email), role

def require_admin(identity: dict = Depends(get_current_identity)) -> dict:
    if identity.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin only")
    return identity
