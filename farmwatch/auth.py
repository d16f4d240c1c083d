"""Authentication module for the Streamlit dashboard using AWS Secrets Manager."""

import json
import secrets
from typing import Any

import boto3
import streamlit as st
from botocore.exceptions import ClientError

from .config import Settings


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


def _parse_accounts(secret: dict[str, Any]) -> list[dict[str, str]]:
    """Accept either {"accounts": [...]} or a single {"username", "password", "uid"} object."""
    raw = secret.get("accounts")
    if raw is None:
        raw = [secret]
    if not isinstance(raw, list):
        raise AuthenticationError("Secret 'accounts' must be a list")
    accounts: list[dict[str, str]] = []
    for entry in raw:
        if not isinstance(entry, dict) or not entry.get("uid"):
            raise AuthenticationError("Every account needs a username, password and uid")
        accounts.append(
            {
                "username": str(entry.get("username", "")),
                "password": str(entry.get("password", "")),
                "uid": str(entry["uid"]),
            }
        )
    return accounts


def get_accounts_from_secrets_manager(secret_name: str, region: str | None = None) -> list[dict[str, str]]:
    """
    Retrieve dashboard accounts from AWS Secrets Manager.

    Args:
        secret_name: Name or ARN of the secret (AUTH_SECRET_NAME)
        region: Region of the secret; the SDK default when None

    Returns:
        list: Dictionaries with 'username', 'password' and 'uid' keys

    Raises:
        AuthenticationError: If unable to retrieve credentials
    """
    if not secret_name:
        raise AuthenticationError("AUTH_SECRET_NAME is not configured")

    try:
        client = boto3.client("secretsmanager", region_name=region) if region else boto3.client("secretsmanager")
        response = client.get_secret_value(SecretId=secret_name)
    except ClientError as e:
        raise AuthenticationError(f"Failed to retrieve credentials: {str(e)}")

    if "SecretString" not in response:
        raise AuthenticationError("Secret is binary, expected string")
    try:
        secret = json.loads(response["SecretString"])
    except ValueError as e:
        raise AuthenticationError("Secret is not valid JSON") from e
    if not isinstance(secret, dict):
        raise AuthenticationError("Secret must be a JSON object")
    return _parse_accounts(secret)


@st.cache_resource
def load_accounts(secret_name: str, region: str | None) -> list[dict[str, str]]:
    """
    Load and cache accounts from Secrets Manager.
    This is cached to avoid repeated API calls.
    """
    return get_accounts_from_secrets_manager(secret_name, region)


def match_account(accounts: list[dict[str, str]], username: str, password: str) -> str | None:
    """Return the uid of the matching account, comparing in constant time."""
    found: str | None = None
    for account in accounts:
        username_match = secrets.compare_digest(username.encode(), account["username"].encode())
        password_match = secrets.compare_digest(password.encode(), account["password"].encode())
        if username_match and password_match:
            found = account["uid"]
    return found


def verify_credentials(settings: Settings, username: str, password: str) -> str | None:
    """
    Verify username and password against stored accounts.

    Returns:
        str | None: The account's uid if the credentials are valid
    """
    try:
        return match_account(load_accounts(settings.auth_secret_name, settings.aws_region), username, password)
    except AuthenticationError as e:
        st.error(f"Authentication error: {str(e)}")
        return None


def login(settings: Settings) -> bool:
    """
    Display login form and handle authentication.

    Returns:
        bool: True if user is authenticated, False otherwise
    """
    if st.session_state.get("authenticated", False):
        return True

    st.title("🌱 Farm Monitor")
    st.subheader("Please log in to continue")

    with st.form("login_form"):
        username = st.text_input("Username", key="login_username")
        password = st.text_input("Password", type="password", key="login_password")
        submit = st.form_submit_button("Login")

        if submit:
            uid = verify_credentials(settings, username, password)
            if uid:
                st.session_state["authenticated"] = True
                st.session_state["username"] = username
                st.session_state["uid"] = uid
                st.success("✅ Login successful!")
                st.rerun()
            else:
                st.error("❌ Invalid username or password")

    return False


def logout() -> None:
    """Clear authentication state and force logout."""
    for key in ("authenticated", "username", "uid"):
        st.session_state[key] = None
    st.session_state["authenticated"] = False
    st.rerun()
