"""
MIMIQ client package: connections with background token refresh and the
execution lifecycle (submit, poll, stop, delete, download).
"""

from .config import (
    DEFAULT_INTERVAL,
    PLANQK_GATEWAY,
    QPERFECT_CLOUD,
    QPERFECT_CLOUD2,
    MimiqConfig,
    PlanqkConfig,
)
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    InvalidArgumentError,
    MalformedTokenFileError,
    MimiqAPIError,
    RemoteRequestError,
)
from .models import Execution, JWTToken, TokenFile, Tokens, UserLimits
from .mailbox import Mailbox
from .refresher import RefresherState, TokenRefresher
from .login import LoginServer, get_token_from_login_page, open_in_default_browser
from .connection import (
    Connection,
    MimiqConnection,
    PlanqkConnection,
    connect,
    connect_planqk,
    load_token,
    save_token,
)
from .executions import ExecutionClient, ExecutionStatus

__all__ = [
    'DEFAULT_INTERVAL', 'PLANQK_GATEWAY', 'QPERFECT_CLOUD', 'QPERFECT_CLOUD2',
    'MimiqConfig', 'PlanqkConfig',
    'MimiqAPIError', 'ConfigurationError', 'AuthenticationError', 'RemoteRequestError',
    'InvalidArgumentError', 'MalformedTokenFileError',
    'Execution', 'JWTToken', 'TokenFile', 'Tokens', 'UserLimits',
    'Mailbox', 'RefresherState', 'TokenRefresher',
    'LoginServer', 'get_token_from_login_page', 'open_in_default_browser',
    'Connection', 'MimiqConnection', 'PlanqkConnection',
    'connect', 'connect_planqk', 'load_token', 'save_token',
    'ExecutionClient', 'ExecutionStatus',
]
