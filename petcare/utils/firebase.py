"""
Firebase Admin SDK helpers
Builds the Firebase app used by Firestore, FCM and ID-token verification
"""

import os
import json
import logging
from typing import Dict, Optional, Any

import firebase_admin
from firebase_admin import auth, credentials

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = 'petcare'


def init_firebase_app(config: Dict[str, Any]) -> firebase_admin.App:
    """
    Initialize (or reuse) the named Firebase app.

    Credentials are resolved from a service account file, then a service
    account JSON string, then application default credentials.
    """
    try:
        return firebase_admin.get_app(FIREBASE_APP_NAME)
    except ValueError:
        pass

    options = {}
    if config.get('FIREBASE_PROJECT_ID'):
        options['projectId'] = config['FIREBASE_PROJECT_ID']

    service_account_path = config.get('FIREBASE_SERVICE_ACCOUNT_PATH')
    service_account_key = config.get('FIREBASE_SERVICE_ACCOUNT_KEY')

    if service_account_path and os.path.exists(service_account_path):
        cred = credentials.Certificate(service_account_path)
        logger.info(f"Firebase initialized with service account file: {service_account_path}")
    elif service_account_key:
        try:
            cred = credentials.Certificate(json.loads(service_account_key))
        except json.JSONDecodeError as e:
            logger.error(f"Invalid Firebase service account JSON: {e}")
            raise
        logger.info("Firebase initialized with service account key from environment")
    else:
        cred = credentials.ApplicationDefault()
        logger.info("Firebase initialized with default credentials")

    return firebase_admin.initialize_app(cred, options or None, name=FIREBASE_APP_NAME)


def verify_id_token(id_token: str, app: Optional[firebase_admin.App] = None) -> Dict[str, Any]:
    """Verify a Firebase ID token and return its decoded claims"""
    return auth.verify_id_token(id_token, app=app)
