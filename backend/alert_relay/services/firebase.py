"""Firebase Admin bootstrap shared by the change feed and the FCM gateway."""
import json
import logging
import os
from typing import Optional

import firebase_admin
from firebase_admin import credentials

from ..config import Settings

logger = logging.getLogger(__name__)


def _load_credentials(settings: Settings) -> Optional[credentials.Certificate]:
    path = (settings.firebase_credentials_path or "").strip()
    if path:
        if os.path.exists(path):
            return credentials.Certificate(path)
        logger.warning(f"Firebase service account file not found: {path}")

    if settings.firebase_service_account:
        try:
            info = json.loads(settings.firebase_service_account)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse FIREBASE_SERVICE_ACCOUNT: {e}")
            return None
        logger.info("Loaded Firebase service account from environment")
        return credentials.Certificate(info)

    return None


def init_firebase(settings: Settings) -> Optional[firebase_admin.App]:
    """Initialize the default Firebase app once.

    Returns None when no credentials are configured, in which case the
    caller selects the no-op change feed and gateway.
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    cred = _load_credentials(settings)
    if cred is None:
        logger.warning("Firebase credentials not configured, push and change feed disabled")
        return None

    options = {}
    if settings.firebase_database_url:
        options["databaseURL"] = settings.firebase_database_url

    try:
        app = firebase_admin.initialize_app(cred, options)
    except (ValueError, IOError) as e:
        logger.error(f"Failed to initialize Firebase: {e}")
        return None
    logger.info("Firebase initialized")
    return app
