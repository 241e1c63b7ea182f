"""
TrailMemo Backend — Firebase Admin App
========================================

What:  Builds the firebase_admin App shared by the identity verifier and
       the Cloud Storage object store.
Why a named app: initialize_app() without a name registers the process-wide
       default app, which can only exist once. Tests and reloads build and
       tear down their own contexts, so each AppContext owns a named app
       and deletes it on shutdown.

Credential resolution (first match wins):
    1. FIREBASE_SERVICE_ACCOUNT_JSON  (raw JSON, container deployments)
    2. FIREBASE_SERVICE_ACCOUNT_PATH  (file, local development)
    3. Application Default Credentials
"""

import json
import logging
import uuid

import firebase_admin
from firebase_admin import credentials

from trailmemo.config import Settings

logger = logging.getLogger(__name__)


def _load_credential(settings: Settings) -> credentials.Base:
    if settings.firebase_service_account_json:
        try:
            info = json.loads(settings.firebase_service_account_json)
        except json.JSONDecodeError as e:
            raise ValueError(f"FIREBASE_SERVICE_ACCOUNT_JSON is not valid JSON: {e}") from e
        logger.info("Firebase credentials: service account JSON")
        return credentials.Certificate(info)

    if settings.firebase_service_account_path:
        logger.info(
            "Firebase credentials: service account file %s",
            settings.firebase_service_account_path,
        )
        return credentials.Certificate(settings.firebase_service_account_path)

    logger.info("Firebase credentials: Application Default Credentials")
    return credentials.ApplicationDefault()


def init_firebase_app(settings: Settings) -> firebase_admin.App:
    """Initialize a uniquely named firebase_admin App for one AppContext."""
    options = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id
    if settings.firebase_storage_bucket:
        options["storageBucket"] = settings.firebase_storage_bucket

    app = firebase_admin.initialize_app(
        _load_credential(settings),
        options=options,
        name=f"trailmemo-{uuid.uuid4().hex[:8]}",
    )
    logger.info(
        "Firebase app initialized (project=%s, bucket=%s)",
        settings.firebase_project_id or "<default>",
        settings.firebase_storage_bucket or "<none>",
    )
    return app


def close_firebase_app(app: firebase_admin.App) -> None:
    firebase_admin.delete_app(app)
    logger.info("Firebase app %s deleted", app.name)
