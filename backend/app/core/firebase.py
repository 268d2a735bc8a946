import json
import base64
import logging
from typing import Optional

from firebase_admin import App, credentials, initialize_app, get_app, firestore

from app.core.config import Settings

logger = logging.getLogger("remindpay")


def _load_credentials(settings: Settings) -> Optional[credentials.Base]:
    if settings.FIREBASE_CREDENTIALS:
        try:
            decoded_json = base64.b64decode(settings.FIREBASE_CREDENTIALS).decode("utf-8")
            service_account_info = json.loads(decoded_json)
        except (ValueError, UnicodeDecodeError) as e:
            logger.error(f"❌ Failed to decode or parse FIREBASE_CREDENTIALS: {e}")
            return None
        logger.info("🔑 Loaded Firebase credentials from FIREBASE_CREDENTIALS")
        return credentials.Certificate(service_account_info)

    if settings.GOOGLE_APPLICATION_CREDENTIALS:
        logger.info("🔑 Loading Firebase credentials from GOOGLE_APPLICATION_CREDENTIALS")
        return credentials.Certificate(settings.GOOGLE_APPLICATION_CREDENTIALS)

    return None


def init_firebase(settings: Settings) -> Optional[App]:
    """
    Initialise the Firebase Admin SDK once.
    Returns None when no credentials are configured, so auth and the reminder
    store stay in an "unconfigured" state instead of crashing the process.
    """
    try:
        app = get_app()
        logger.info("✅ Firebase Admin SDK already initialized")
        return app
    except ValueError:
        pass

    try:
        cred = _load_credentials(settings)
    except (ValueError, OSError) as e:
        logger.error(f"❌ Invalid Firebase service account: {e}")
        return None

    if cred is None:
        logger.warning("⚠️ Firebase not configured: FIREBASE_CREDENTIALS or GOOGLE_APPLICATION_CREDENTIALS missing")
        return None

    app = initialize_app(cred)
    logger.info(f"🔥 Firebase Admin SDK initialized | Project: {app.project_id}")
    return app


def get_firestore_client(app: Optional[App]):
    if app is None:
        return None
    try:
        db = firestore.client(app)
        logger.info("✅ Firestore client ready")
        return db
    except Exception as e:
        logger.error(f"❌ Failed to initialize Firestore client: {e}")
        return None
