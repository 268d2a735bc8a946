# core/auth.py
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from firebase_admin import auth
from typing import Optional
import logging

from app.core.errors import AppError, AuthError, NotConfiguredError
from app.models.user_model import User
from app.utils.firebase import firestore_run

logger = logging.getLogger("remindpay")
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> User:
    """
    Returns the currently authenticated user and attaches it to request.state.
    Raises AuthError (401) if the token is missing or rejected by Firebase,
    NotConfiguredError (500) if Firebase was not initialised at startup.
    """
    firebase_app = getattr(request.app.state, "firebase_app", None)
    if firebase_app is None:
        raise NotConfiguredError("Authentication is not configured on server")

    if not credentials or not credentials.credentials:
        raise AuthError("No token provided")

    token = credentials.credentials
    try:
        decoded = await firestore_run(auth.verify_id_token, token, app=firebase_app)
    except (auth.InvalidIdTokenError, auth.UserDisabledError, ValueError) as e:
        logger.warning(f"Token verification failed: {e}")
        raise AuthError("Invalid token")
    except auth.CertificateFetchError as e:
        logger.error(f"Could not fetch Firebase public keys: {e}")
        raise AppError("Authentication failed") from e
    except Exception as e:
        logger.error(f"Unexpected token verification error: {e!r}", exc_info=True)
        raise AppError("Authentication failed") from e

    if not decoded or not (decoded.get("uid") or decoded.get("sub")):
        raise AuthError("Invalid token")

    user = User.from_claims(decoded)
    request.state.user = user
    return user
