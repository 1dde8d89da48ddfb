"""Session state for both clouds: load, persist, refresh and log in."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from tplc.client import CloudClient, LoginResult
from tplc.cloud import CloudType
from tplc.credentials import CredentialStore
from tplc.errors import MfaRequiredError, NotAuthenticatedError, TplcError

logger = logging.getLogger(__name__)

KEY_USERNAME = "username"
KEY_TERM_ID = "term_id"

SESSION_FIELDS = ("token", "refresh_token", "regional_url")

ALL_KEYS: tuple[str, ...] = (
    KEY_USERNAME,
    KEY_TERM_ID,
    *(f"{cloud.key_prefix}{name}" for cloud in CloudType for name in SESSION_FIELDS),
)

MfaPrompt = Callable[[CloudType, str | None], str]
"""Called with ``(cloud_type, email)``; returns the code the user entered."""


@dataclass
class CloudSession:
    token: str
    refresh_token: str | None = None
    regional_url: str = ""

    @property
    def active(self) -> bool:
        return bool(self.token)

    @classmethod
    def from_login(cls, result: LoginResult) -> CloudSession:
        return cls(result.token, result.refresh_token, result.regional_url)


@dataclass
class AuthContext:
    """Everything needed to talk to both clouds on behalf of one account.

    Passed explicitly to every call that needs a token; refresh mutates it
    in place and re-persists the whole record.
    """

    username: str
    term_id: str
    kasa: CloudSession
    tapo: CloudSession | None = None
    store: CredentialStore | None = field(default=None, repr=False, compare=False)

    def session(self, cloud_type: CloudType) -> CloudSession | None:
        return self.kasa if cloud_type is CloudType.KASA else self.tapo

    @property
    def has_tapo(self) -> bool:
        return self.tapo is not None and self.tapo.active

    def to_record(self) -> tuple[dict[str, str], list[str]]:
        """Flatten into ``(values, keys_to_remove)`` for the credential store."""
        values = {KEY_USERNAME: self.username, KEY_TERM_ID: self.term_id}
        remove: list[str] = []
        for cloud_type in CloudType:
            prefix = cloud_type.key_prefix
            session = self.session(cloud_type)
            if session is None:
                remove.extend(f"{prefix}{name}" for name in SESSION_FIELDS)
                continue
            values[f"{prefix}token"] = session.token
            values[f"{prefix}regional_url"] = session.regional_url
            if session.refresh_token:
                values[f"{prefix}refresh_token"] = session.refresh_token
            else:
                remove.append(f"{prefix}refresh_token")
        return values, remove


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def load_auth(store: CredentialStore) -> AuthContext:
    """Load the stored sessions.

    Raises :class:`NotAuthenticatedError` when no primary token is stored
    (an empty token counts as absent).  Missing secondary fields degrade to
    empty strings.
    """
    token = store.get("token")
    if not token:
        raise NotAuthenticatedError()

    kasa = CloudSession(
        token=token,
        refresh_token=store.get("refresh_token") or None,
        regional_url=store.get("regional_url") or "",
    )
    tapo = None
    tapo_token = store.get("tapo_token")
    if tapo_token:
        tapo = CloudSession(
            token=tapo_token,
            refresh_token=store.get("tapo_refresh_token") or None,
            regional_url=store.get("tapo_regional_url") or "",
        )

    return AuthContext(
        username=store.get(KEY_USERNAME) or "",
        term_id=store.get(KEY_TERM_ID) or "",
        kasa=kasa,
        tapo=tapo,
        store=store,
    )


def store_auth(store: CredentialStore, auth: AuthContext) -> None:
    """Persist both clouds' sessions as one atomic write."""
    values, remove = auth.to_record()
    store.update(values, remove=remove)
    auth.store = store


def clear_auth(store: CredentialStore) -> None:
    store.update({}, remove=ALL_KEYS)


async def refresh_auth(auth: AuthContext, cloud_type: CloudType) -> None:
    """Refresh *cloud_type*'s access token in place and re-persist *auth*.

    The Tapo session also needs its stored regional URL; the Kasa session
    falls back to the global host.

    Raises:
        NotAuthenticatedError: If the refresh token (or Tapo regional URL)
            is missing.
        RefreshTokenExpiredError: If the refresh token is no longer valid.
    """
    session = auth.session(cloud_type)
    if session is None or not session.refresh_token:
        raise NotAuthenticatedError()
    if cloud_type is CloudType.TAPO and not session.regional_url:
        raise NotAuthenticatedError()

    api = CloudClient(cloud_type, host=session.regional_url or None, term_id=auth.term_id)
    result = await api.refresh_token(session.refresh_token)
    logger.debug("[%s] Access token refreshed", cloud_type)

    session.token = result.token
    session.refresh_token = result.refresh_token
    session.regional_url = result.regional_url

    if auth.store is not None:
        store_auth(auth.store, auth)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


async def login(username: str, password: str, mfa_prompt: MfaPrompt) -> AuthContext:
    """Log in to Kasa (required) and Tapo (best-effort) with one terminal id.

    *mfa_prompt* is asked for a code whenever a cloud requires MFA; it runs
    in a worker thread, so it may block on user input.  The returned
    context is not persisted; pass it to :func:`store_auth`.
    """
    kasa_api = CloudClient(CloudType.KASA)
    kasa = await _login_cloud(kasa_api, username, password, mfa_prompt)

    tapo_api = CloudClient(CloudType.TAPO, term_id=kasa_api.term_id)
    try:
        tapo: LoginResult | None = await _login_cloud(tapo_api, username, password, mfa_prompt)
    except TplcError as e:
        logger.warning("Tapo login failed (non-fatal): %s", e)
        tapo = None

    return AuthContext(
        username=username,
        term_id=kasa_api.term_id,
        kasa=CloudSession.from_login(kasa),
        tapo=CloudSession.from_login(tapo) if tapo is not None else None,
    )


async def _login_cloud(
    api: CloudClient, username: str, password: str, mfa_prompt: MfaPrompt
) -> LoginResult:
    try:
        return await api.login(username, password)
    except MfaRequiredError as e:
        code = await asyncio.to_thread(mfa_prompt, api.cloud_type, e.email)
        return await api.verify_mfa(username, password, code)
