import logging
import os
import firebase_admin
from firebase_admin import credentials, auth as firebase_auth
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from medcontrol.core.config import settings

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)
_app = None


#------This Function initializes the Firebase admin app---------
def init_firebase():
    global _app
    if _app:
        return
    cred_path = settings.firebase_credentials_path
    if os.path.exists(cred_path):
        _app = firebase_admin.initialize_app(credentials.Certificate(cred_path))
    else:
        logger.warning(f"Firebase credentials not found at {cred_path}, using application default credentials")
        _app = firebase_admin.initialize_app()


#------This Function returns whether Firebase is initialized---------
def is_firebase_ready() -> bool:
    return _app is not None


#------This Function resolves the caller uid from the bearer ID token---------
async def get_current_user_uid(
    creds: HTTPAuthorizationCredentials = Depends(_bearer),
) -> str:
    if creds is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    try:
        decoded = firebase_auth.verify_id_token(creds.credentials)
        return decoded["uid"]
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
