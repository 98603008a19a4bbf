"""Authenticated connections to the MIMIQ services.

A connection owns a `Mailbox` with the current token and a `TokenRefresher`
that renews it in the background. Callers only ever read the token through
`auth_header()`, which never removes it from the mailbox.

Two flavours exist: `MimiqConnection` talks to the native services (login
page, refresh token or email/password), `PlanqkConnection` goes through the
PlanQK gateway with OAuth2 client credentials. Both satisfy the `Connection`
protocol used by `ExecutionClient`.
"""

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Protocol, Union

import requests

from .auth import check_limits, fetch_user_limits, get_planqk_token, refresh, remote_login
from .config import (
    DEFAULT_INTERVAL,
    MIMIQ_API_ROOT,
    PLANQK_API_ROOT,
    PLANQK_GATEWAY,
    QPERFECT_CLOUD,
    MimiqConfig,
    PlanqkConfig,
)
from .exceptions import AuthenticationError, MalformedTokenFileError
from .login import get_token_from_login_page
from .logs import setup_logging
from .mailbox import Mailbox
from .models import JWTToken, TokenFile, Tokens, UserLimits
from .refresher import TokenRefresher, fixed_interval, lifetime_interval
from .utils import join_url

logger = logging.getLogger(__name__)


@contextmanager
def _closing_on_error(session: requests.Session, owned: bool):
    """Close a session created here if connecting fails."""
    try:
        yield session
    except BaseException:
        if owned:
            session.close()
        raise


class Connection(Protocol):
    """What the execution client needs from a connection."""

    uri: str
    session: requests.Session

    def auth_header(self) -> tuple[str, str]:
        ...

    def resource_uri(self, *parts: object) -> str:
        ...

    def close(self) -> None:
        ...

    def is_open(self) -> bool:
        ...


class _RefreshedConnection:
    """Shared plumbing: token mailbox, refresher and session lifecycle."""

    api_root = ""
    _dropped_message = "Connection to MIMIQ services dropped, please connect again."

    uri: str
    session: requests.Session
    tokens_mailbox: Mailbox
    refresher: TokenRefresher

    def _current_token(self):
        token = self.tokens_mailbox.peek()
        if token.is_empty:
            raise AuthenticationError(self._dropped_message)
        return token

    def resource_uri(self, *parts: object) -> str:
        return join_url(self.uri, self.api_root, *parts)

    def is_open(self) -> bool:
        return self.refresher.is_alive() and not self.refresher.cancelled()

    def close(self) -> None:
        """Stop the background refresher. Does not wait for it to exit."""
        logger.info("Closing %s to %s", type(self).__name__, self.uri)
        self.refresher.cancel()
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.uri})"


class MimiqConnection(_RefreshedConnection):
    """Connection to the native MIMIQ services.

    Tokens are refreshed every `interval` seconds; the account usage limits
    are fetched again after each successful refresh.
    """

    api_root = MIMIQ_API_ROOT

    def __init__(
        self,
        uri: str,
        tokens: Tokens,
        *,
        interval: float = DEFAULT_INTERVAL,
        session: Optional[requests.Session] = None,
    ):
        setup_logging()
        self.uri = str(uri).rstrip("/")
        self.session = session or requests.Session()
        self.tokens_mailbox: Mailbox[Tokens] = Mailbox(tokens)

        with _closing_on_error(self.session, owned=session is None):
            limits = fetch_user_limits(self.uri, tokens, self.session)
        check_limits(limits)
        self.limits_mailbox: Mailbox[UserLimits] = Mailbox(limits)

        self.refresher = TokenRefresher(
            self.tokens_mailbox,
            renew=lambda t: refresh(t.refresh_token, self.uri, self.session),
            interval=fixed_interval(interval),
            sentinel=Tokens.empty,
            after_refresh=self._refresh_limits,
            on_failure=self._drop_limits,
        )
        self.refresher.start()

    @classmethod
    def from_login(
        cls,
        url: str = QPERFECT_CLOUD,
        *,
        config: Optional[MimiqConfig] = None,
        session: Optional[requests.Session] = None,
        open_browser: bool = True,
    ) -> "MimiqConnection":
        """Open the login page in a browser and connect with the result."""
        config = config or MimiqConfig(url=url)
        owned = session is None
        session = session or requests.Session()
        with _closing_on_error(session, owned):
            tokens = get_token_from_login_page(
                config.url, public_dir=config.public_dir, session=session, open_browser=open_browser
            )
            return cls(config.url, tokens, interval=config.refresh_interval, session=session)

    @classmethod
    def from_token(
        cls,
        token: str,
        url: str = QPERFECT_CLOUD,
        *,
        interval: float = DEFAULT_INTERVAL,
        session: Optional[requests.Session] = None,
    ) -> "MimiqConnection":
        """Connect with a saved refresh token."""
        setup_logging()
        owned = session is None
        session = session or requests.Session()
        logger.info("Obtaining access token for connection")
        with _closing_on_error(session, owned):
            tokens = refresh(token, url, session)
            logger.info("Access token obtained. You should now be connected to MIMIQ Services.")
            return cls(url, tokens, interval=interval, session=session)

    @classmethod
    def from_credentials(
        cls,
        email: str,
        password: str,
        url: str = QPERFECT_CLOUD,
        *,
        interval: float = DEFAULT_INTERVAL,
        session: Optional[requests.Session] = None,
    ) -> "MimiqConnection":
        """Connect with email and password (discouraged)."""
        setup_logging()
        logger.warning(
            "This connection method is discouraged. Please use the login page or a token, if possible."
        )
        owned = session is None
        session = session or requests.Session()
        with _closing_on_error(session, owned):
            tokens = remote_login(url, email, password, session)
            return cls(url, tokens, interval=interval, session=session)

    def tokens(self) -> Tokens:
        """Most recently published tokens (may be the empty sentinel)."""
        return self.tokens_mailbox.peek()

    def auth_header(self) -> tuple[str, str]:
        tokens = self._current_token()
        return "Authorization", f"Bearer {tokens.access_token}"

    def user_limits(self) -> UserLimits:
        return self.limits_mailbox.peek()

    def _refresh_limits(self, tokens: Tokens) -> None:
        logger.debug("Refreshing user limits")
        limits = fetch_user_limits(self.uri, tokens, self.session)
        logger.debug("Received new limits %r", limits)
        check_limits(limits)
        self.limits_mailbox.take_for_update()
        self.limits_mailbox.publish(limits)

    def _drop_limits(self) -> None:
        if self.limits_mailbox.is_full():
            self.limits_mailbox.take_for_update()
        self.limits_mailbox.publish(UserLimits())


class PlanqkConnection(_RefreshedConnection):
    """Connection through the PlanQK gateway.

    Gateway tokens cannot be refreshed; a new one is requested with the
    consumer key and secret after 80% of the previous token's lifetime.
    """

    api_root = PLANQK_API_ROOT
    _dropped_message = "Connection to PlanQK gateway dropped, please connect again."

    def __init__(
        self,
        uri: str,
        consumer_key: str,
        consumer_secret: str,
        *,
        gateway_url: str = PLANQK_GATEWAY,
        session: Optional[requests.Session] = None,
    ):
        setup_logging()
        self.uri = str(uri).rstrip("/")
        self.session = session or requests.Session()
        self.gateway_url = gateway_url
        self._consumer_key = consumer_key
        self._consumer_secret = consumer_secret

        with _closing_on_error(self.session, owned=session is None):
            token = self._acquire()
        self.tokens_mailbox: Mailbox[JWTToken] = Mailbox(token)
        self.refresher = TokenRefresher(
            self.tokens_mailbox,
            renew=lambda _old: self._acquire(),
            interval=lifetime_interval(0.8),
            sentinel=JWTToken.empty,
            name="planqk-token-refresher",
        )
        self.refresher.start()

    @classmethod
    def from_config(
        cls, config: PlanqkConfig, session: Optional[requests.Session] = None
    ) -> "PlanqkConnection":
        config.validate()
        return cls(
            config.api_url,  # type: ignore[arg-type]
            config.consumer_key,  # type: ignore[arg-type]
            config.consumer_secret,  # type: ignore[arg-type]
            gateway_url=config.gateway_url,
            session=session,
        )

    def _acquire(self) -> JWTToken:
        return get_planqk_token(
            self.gateway_url, self._consumer_key, self._consumer_secret, self.session
        )

    def token(self) -> JWTToken:
        return self.tokens_mailbox.peek()

    def auth_header(self) -> tuple[str, str]:
        token = self._current_token()
        return "Authorization", f"Bearer {token.access_token}"


def connect(
    token: Optional[str] = None,
    *,
    email: Optional[str] = None,
    password: Optional[str] = None,
    url: str = QPERFECT_CLOUD,
    interval: float = DEFAULT_INTERVAL,
    session: Optional[requests.Session] = None,
    open_browser: bool = True,
) -> MimiqConnection:
    """Establish a connection to the MIMIQ services.

    With no credentials the login page is opened in a browser. A refresh
    `token` (for example from `save_token`) or `email` and `password` skip
    the browser. A refresher keeps the connection alive until `close()`.

    Example:
        conn = connect(email="john.doe@example.com", password="...")
        ...
        conn.close()
    """
    if token is not None:
        return MimiqConnection.from_token(token, url, interval=interval, session=session)
    if email is not None or password is not None:
        if email is None or password is None:
            raise ValueError("Both email and password are required.")
        return MimiqConnection.from_credentials(
            email, password, url, interval=interval, session=session
        )
    return MimiqConnection.from_login(
        config=MimiqConfig(url=url, refresh_interval=interval),
        session=session,
        open_browser=open_browser,
    )


def connect_planqk(
    url: Optional[str] = None,
    consumer_key: Optional[str] = None,
    consumer_secret: Optional[str] = None,
    *,
    gateway_url: str = PLANQK_GATEWAY,
    session: Optional[requests.Session] = None,
) -> PlanqkConnection:
    """Connect through PlanQK; missing values come from the environment."""
    config = PlanqkConfig(
        api_url=url,
        consumer_key=consumer_key,
        consumer_secret=consumer_secret,
        gateway_url=gateway_url,
    )
    return PlanqkConnection.from_config(config, session=session)


# --- Token files -----------------------------------------------------------


def write_token_file(filename: Union[str, Path], url: str, refresh_token: str) -> Path:
    path = Path(filename)
    with open(path, "w") as f:
        json.dump(TokenFile(url=str(url), token=refresh_token).model_dump(), f)
    return path


def read_token_file(filename: Union[str, Path]) -> TokenFile:
    """Parse a token file, requiring both `url` and `token`."""
    with open(filename, "r") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise MalformedTokenFileError(f"Malformed token file: {e}") from e
    if not isinstance(data, dict) or "url" not in data or "token" not in data:
        raise MalformedTokenFileError("Malformed token file")
    return TokenFile(url=str(data["url"]), token=str(data["token"]))


def save_token(
    filename: Union[str, Path, None] = None,
    url: str = QPERFECT_CLOUD,
    *,
    session: Optional[requests.Session] = None,
    open_browser: bool = True,
) -> Path:
    """Log in through the browser and save the refresh token to `filename`."""
    setup_logging()
    config = MimiqConfig(url=url)
    tokens = get_token_from_login_page(
        config.url, public_dir=config.public_dir, session=session, open_browser=open_browser
    )
    path = write_token_file(filename or config.token_file, url, tokens.refresh_token)
    logger.info("Token saved in `%s`", path)
    return path


def load_token(
    filename: Union[str, Path, None] = None,
    *,
    interval: float = DEFAULT_INTERVAL,
    session: Optional[requests.Session] = None,
) -> MimiqConnection:
    """Connect with the refresh token saved in `filename`.

    Saved tokens are only valid for a limited time; regenerate them with
    `save_token` when loading fails.
    """
    setup_logging()
    token_file = read_token_file(filename or MimiqConfig().token_file)
    logger.info("Loaded connection file to %s", token_file.url)
    return MimiqConnection.from_token(
        token_file.token, token_file.url, interval=interval, session=session
    )
