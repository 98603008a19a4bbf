"""Submitting, polling and retrieving executions on the MIMIQ services.

`ExecutionClient` works with any connection providing `auth_header()` and
`resource_uri()`; it keeps no job state of its own, every query goes to the
remote service.
"""

import logging
import numbers
import os
import urllib.parse
from enum import Enum
from pathlib import Path
from typing import IO, Any, Optional, Union

from .connection import Connection
from .download import download_file
from .exceptions import InvalidArgumentError
from .models import Execution
from .utils import check_response
from mimiqlink.vis.terminal import TerminalPrinter

logger = logging.getLogger(__name__)

FileLike = Union[str, "os.PathLike[str]", IO[bytes]]
ExecutionLike = Union[Execution, str]


class ExecutionStatus(str, Enum):
    NEW = "NEW"
    RUNNING = "RUNNING"
    ERROR = "ERROR"
    CANCELED = "CANCELED"
    DONE = "DONE"

    @property
    def is_terminal(self) -> bool:
        return self not in (ExecutionStatus.NEW, ExecutionStatus.RUNNING)


class FileSource(str, Enum):
    UPLOADS = "uploads"
    RESULTS = "results"


_FILE_COUNT_FIELDS = {
    FileSource.UPLOADS: "numberOfUploadedFiles",
    FileSource.RESULTS: "numberOfResultedFiles",
}


def _execution_id(execution: ExecutionLike) -> str:
    return str(execution)


def _file_count(value: Any) -> int:
    """Number of files from a status field; 0 when absent or not a count."""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return 0
    if not float(value).is_integer() or value < 0:
        return 0
    return int(value)


class ExecutionClient:
    """Execution lifecycle operations on top of a connection."""

    def __init__(self, connection: Connection, printer: Optional[TerminalPrinter] = None):
        self.connection = connection
        self.printer = printer or TerminalPrinter()

    @property
    def session(self):
        return self.connection.session

    def _headers(self) -> dict[str, str]:
        name, value = self.connection.auth_header()
        return {name: value}

    # --- submission --------------------------------------------------------

    def submit(
        self,
        emulator_type: str,
        name: str,
        label: str,
        timeout: int,
        *files: FileLike,
    ) -> Execution:
        """Create an execution request.

        Files may be paths (opened and streamed) or binary file objects.
        The service stops the execution once `timeout` has elapsed.
        """
        if (
            isinstance(timeout, bool)
            or not isinstance(timeout, numbers.Integral)
            or timeout <= 0
        ):
            raise InvalidArgumentError("Timeout must be a positive integer")

        form: list[tuple[str, Any]] = [
            ("name", (None, name)),
            ("label", (None, label)),
            ("emulatorType", (None, emulator_type)),
            ("timeout", (None, str(timeout))),
        ]
        opened: list[IO[bytes]] = []
        try:
            for f in files:
                if isinstance(f, (str, os.PathLike)):
                    fh = open(f, "rb")
                    opened.append(fh)
                    form.append(("uploads", (os.path.basename(os.fspath(f)), fh)))
                else:
                    fname = os.path.basename(str(getattr(f, "name", "upload")))
                    form.append(("uploads", (fname, f)))

            response = self.session.post(
                self.connection.resource_uri("request"),
                files=form,
                headers=self._headers(),
            )
        finally:
            for fh in opened:
                fh.close()

        check_response(response, "Error creating execution request")
        execution = Execution(id=str(response.json()["executionRequestId"]))
        logger.info("Created execution %s", execution)
        return execution

    # --- status ------------------------------------------------------------

    def status(self, execution: ExecutionLike) -> dict[str, Any]:
        """Return the status document of an execution."""
        response = self.session.get(
            self.connection.resource_uri("request", _execution_id(execution)),
            headers=self._headers(),
        )
        check_response(response, "Error retrieving execution information")
        return response.json()

    def _status_value(self, execution: ExecutionLike) -> str:
        return str(self.status(execution).get("status"))

    def is_done(self, execution: ExecutionLike) -> bool:
        """True once the execution left NEW and RUNNING, whatever the outcome."""
        value = self._status_value(execution)
        try:
            return ExecutionStatus(value).is_terminal
        except ValueError:
            # Unknown states are past NEW and RUNNING
            return True

    def is_failed(self, execution: ExecutionLike) -> bool:
        return self._status_value(execution) == ExecutionStatus.ERROR.value

    def is_started(self, execution: ExecutionLike) -> bool:
        return self._status_value(execution) != ExecutionStatus.NEW.value

    def is_canceled(self, execution: ExecutionLike) -> bool:
        return self._status_value(execution) == ExecutionStatus.CANCELED.value

    # --- control -----------------------------------------------------------

    def stop(self, execution: ExecutionLike) -> bool:
        response = self.session.post(
            self.connection.resource_uri("stop-execution", _execution_id(execution)),
            headers=self._headers(),
        )
        check_response(response, "Error stopping execution")
        return True

    def delete_files(self, execution: ExecutionLike) -> bool:
        response = self.session.post(
            self.connection.resource_uri("delete-files", _execution_id(execution)),
            headers=self._headers(),
        )
        check_response(response, "Error deleting execution files")
        return True

    def list_executions(
        self,
        status: Optional[str] = None,
        user_email: Optional[str] = None,
        limit: Optional[int] = None,
        page: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Return one page of execution records as sent by the service."""
        params = {
            "status": status,
            "userEmail": user_email,
            "limit": limit,
            "page": page,
        }
        response = self.session.get(
            self.connection.resource_uri("request"),
            params={k: v for k, v in params.items() if v is not None},
            headers=self._headers(),
        )
        check_response(response, "Error retrieving executions")
        data = response.json()
        if isinstance(data, list):
            return data
        # Paginated answers wrap the records in {"docs": [...]}
        docs = data.get("docs") if isinstance(data, dict) else None
        return docs if isinstance(docs, list) else []

    # --- files -------------------------------------------------------------

    def download_uploaded_files(
        self, execution: ExecutionLike, dest_dir: Union[str, Path, None] = None
    ) -> list[str]:
        return self._download_files(execution, dest_dir, FileSource.UPLOADS)

    def download_result_files(
        self, execution: ExecutionLike, dest_dir: Union[str, Path, None] = None
    ) -> list[str]:
        return self._download_files(execution, dest_dir, FileSource.RESULTS)

    def _download_files(
        self, execution: ExecutionLike, dest_dir: Union[str, Path, None], source: FileSource
    ) -> list[str]:
        exec_id = _execution_id(execution)
        dest = Path(dest_dir) if dest_dir is not None else Path(".") / exec_id

        info = self.status(exec_id)
        count = _file_count(info.get(_FILE_COUNT_FIELDS[source]))
        if count == 0:
            logger.warning("No files to download.")
            return []

        logger.debug("Downloading %s files of %s in %s", source.value, exec_id, dest)
        dest.mkdir(parents=True, exist_ok=True)
        names: list[str] = []
        query = urllib.parse.urlencode({"source": source.value})
        for idx in range(count):
            url = f"{self.connection.resource_uri('files', exec_id, idx)}?{query}"
            path = download_file(
                self.session, url, dest, headers=self._headers(), printer=self.printer
            )
            names.append(str(path))
        return names
