
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from storefront.core.errors import UnauthorizedError
from storefront.security.utils import decode_token

security = HTTPBearer(auto_error=False)

def identity_from_token(token: str) -> dict:
    try:
        payload = decode_token(token)
    except Exception:
        raise UnauthorizedError("Invalid token")
    if payload.get("type") != "access":
        raise UnauthorizedError("Invalid access token")
    if payload.get("business_id") is None:
        raise UnauthorizedError("Token is not bound to a business")
    return payload  # contains sub (user id), business_id, role

def get_current_identity(creds: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    if not creds:
        raise UnauthorizedError("Not authenticated")
    return identity_from_token(creds.credentials)

def get_business_id(identity: dict = Depends(get_current_identity)) -> int:
    return int(identity["business_id"])
