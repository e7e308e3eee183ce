"""
OAuth2 credentials for the Google Tasks API.

The token is cached in ``token_file``; the first run (or a revoked token)
goes through the installed-app browser flow using ``client_secrets_file``.
"""

import logging
from pathlib import Path

from google.auth.exceptions import RefreshError
from google.auth.exceptions import TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from gtasks_ical_sync.models import ConnectivityError
from gtasks_ical_sync.models import CredentialsError

SCOPES = ["https://www.googleapis.com/auth/tasks"]


def load_credentials(
    client_secrets_file: Path,
    token_file: Path,
    interactive: bool = True,
) -> Credentials:
    """Return valid credentials, refreshing or running the OAuth flow as needed.

    Raises CredentialsError when no usable credentials can be obtained and
    ConnectivityError when the token endpoint cannot be reached.
    """
    logger = logging.getLogger(__name__)
    creds = None

    # Load existing token if available
    if token_file.exists():
        try:
            creds = Credentials.from_authorized_user_file(str(token_file), SCOPES)
        except ValueError as e:
            logger.warning(f"Failed to load existing token from {token_file}: {e}")

    if creds and creds.valid:
        return creds

    if creds and creds.expired and creds.refresh_token:
        logger.info("Refreshing expired credentials...")
        try:
            creds.refresh(Request())
        except TransportError as e:
            raise ConnectivityError(f"Cannot reach Google to refresh credentials: {e}") from e
        except RefreshError as e:
            if not interactive:
                raise CredentialsError(f"Stored credentials were rejected: {e}") from e
            logger.warning(f"Stored credentials were rejected ({e}), re-authorizing")
            creds = None

    if not creds or not creds.valid:
        if not interactive:
            raise CredentialsError(
                f"No valid credentials in {token_file}; run 'gtasks-ical-sync lists' "
                f"once to authorize"
            )
        if not client_secrets_file.exists():
            raise CredentialsError(
                f"Client secrets file not found: {client_secrets_file}\n"
                f"Download OAuth client credentials from the Google Cloud Console."
            )
        logger.info("No valid credentials, starting OAuth flow...")
        flow = InstalledAppFlow.from_client_secrets_file(str(client_secrets_file), SCOPES)
        creds = flow.run_local_server(port=0)

    # Save credentials for future use
    try:
        token_file.parent.mkdir(parents=True, exist_ok=True)
        token_file.write_text(creds.to_json())
        token_file.chmod(0o600)
    except OSError as e:
        raise CredentialsError(f"Cannot save credentials to {token_file}: {e}") from e
    logger.info(f"Saved credentials to {token_file}")
    return creds
