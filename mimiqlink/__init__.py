"""
MimiqLink - access to the QPerfect MIMIQ services

Establishes and keeps up an authenticated connection to the MIMIQ services,
remote or on premises, and drives executions on it.

Usage:
    from mimiqlink import ExecutionClient, connect

    # Opens the login page in your browser
    conn = connect()

    client = ExecutionClient(conn)
    execution = client.submit("statevector", "bell", "demo", 30, "circuit.pb")
    while not client.is_done(execution):
        time.sleep(1)
    client.download_result_files(execution, "results")

    conn.close()

A token saved with `save_token("qperfect.json")` can be reused from another
session with `load_token("qperfect.json")`. Email and password login
(`connect(email=..., password=...)`) works but is discouraged.
"""

from .core.client import (
    QPERFECT_CLOUD,
    QPERFECT_CLOUD2,
    AuthenticationError,
    ConfigurationError,
    Execution,
    ExecutionClient,
    ExecutionStatus,
    InvalidArgumentError,
    MalformedTokenFileError,
    MimiqAPIError,
    MimiqConfig,
    MimiqConnection,
    PlanqkConfig,
    PlanqkConnection,
    RemoteRequestError,
    Tokens,
    connect,
    connect_planqk,
    load_token,
    save_token,
)
from .vis.terminal import TerminalPrinter

__all__ = [
    "QPERFECT_CLOUD", "QPERFECT_CLOUD2",
    "MimiqAPIError", "ConfigurationError", "AuthenticationError", "RemoteRequestError",
    "InvalidArgumentError", "MalformedTokenFileError",
    "MimiqConfig", "PlanqkConfig",
    "Tokens", "Execution", "ExecutionStatus",
    "MimiqConnection", "PlanqkConnection", "ExecutionClient",
    "connect", "connect_planqk", "load_token", "save_token",
    "TerminalPrinter",
]
