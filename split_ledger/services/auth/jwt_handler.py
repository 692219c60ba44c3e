import jwt
from typing import Optional
from split_ledger.core.config import settings


def decode_access_token(token: str) -> Optional[dict]:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def get_current_user(token: str) -> Optional[str]:
    """Extract user_id from a token issued by the auth service"""
    payload = decode_access_token(token)
    if not payload:
        return None
    return payload.get("user_id")
