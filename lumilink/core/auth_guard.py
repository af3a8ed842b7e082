from typing import Optional
from fastapi import Request, HTTPException, status
from lumilink.core.jwt import decode_token


def get_current_user_from_request(request: Request) -> Optional[str]:
    """
    Helper to extract user_id from the Bearer header or the access_token cookie.
    Returns None if invalid.
    """
    token = None
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[len("Bearer "):].strip()
    if not token:
        token = request.cookies.get("access_token")
    if not token:
        return None

    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        return None

    return str(payload["sub"])


def require_user_id(request: Request) -> str:
    user_id = get_current_user_from_request(request)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )
    return user_id
