"""Tests for the execution lifecycle client."""

import gzip
import io
import logging
from pathlib import Path

import pytest

from mimiqlink.core.client.download import expected_size, filename_from_response
from mimiqlink.core.client.exceptions import InvalidArgumentError, RemoteRequestError
from mimiqlink.core.client.executions import ExecutionClient, ExecutionStatus
from mimiqlink.core.client.models import Execution

from conftest import BASE_URL, StubConnection, make_response, make_stream_response

REQUEST_URL = f"{BASE_URL}/api/request"


@pytest.fixture
def client(session):
    return ExecutionClient(StubConnection(session))


def _form(call: dict) -> dict:
    """Collect the non-file fields of a multipart form."""
    return {name: value[1] for name, value in call["files"] if value[0] is None}


def _uploads(call: dict) -> list:
    return [value for name, value in call["files"] if name == "uploads"]


# --- submit ----------------------------------------------------------------


@pytest.mark.parametrize("timeout", [0, -1, -30, True, 1.5, "30"])
def test_submit_rejects_invalid_timeout_before_any_request(client, session, timeout):
    with pytest.raises(InvalidArgumentError):
        client.submit("statevector", "bell", "demo", timeout)
    assert session.calls == []


@pytest.mark.parametrize("timeout", [1, 30, 3600])
def test_submit_sends_timeout_as_string(client, session, timeout):
    session.add("POST", REQUEST_URL, make_response(200, {"executionRequestId": "exec-1"}))
    execution = client.submit("statevector", "bell", "demo", timeout)
    assert execution == Execution(id="exec-1")
    form = _form(session.calls_to("POST", REQUEST_URL)[0])
    assert form == {
        "name": "bell",
        "label": "demo",
        "emulatorType": "statevector",
        "timeout": str(timeout),
    }


def test_submit_uploads_paths_and_streams(client, session, tmp_path):
    circuit = tmp_path / "circuit.pb"
    circuit.write_bytes(b"circuit-bytes")
    stream = io.BytesIO(b"algorithm-bytes")
    stream.name = "algorithm.json"
    seen = []

    def answer(**kwargs):
        for fname, fh in _uploads(kwargs):
            seen.append((fname, fh.read()))
        return make_response(200, {"executionRequestId": "exec-2"})

    session.add("POST", REQUEST_URL, answer)
    execution = client.submit("mps", "job", "label", 10, str(circuit), stream)

    assert str(execution) == "exec-2"
    assert seen == [("circuit.pb", b"circuit-bytes"), ("algorithm.json", b"algorithm-bytes")]
    call = session.calls_to("POST", REQUEST_URL)[0]
    assert call["headers"] == {"Authorization": "Bearer access-1"}
    # Files opened from a path are closed again
    opened = _uploads(call)[0][1]
    assert opened.closed


def test_submit_error_carries_status_and_message(client, session):
    session.add("POST", REQUEST_URL, make_response(400, {"message": "Unknown emulator"}))
    with pytest.raises(RemoteRequestError) as err:
        client.submit("nope", "job", "label", 10)
    assert err.value.status_code == 400
    assert str(err.value) == "Error creating execution request: Unknown emulator"


def test_submit_error_without_body(client, session):
    session.add("POST", REQUEST_URL, make_response(500))
    with pytest.raises(RemoteRequestError) as err:
        client.submit("mps", "job", "label", 10)
    assert str(err.value) == "Error creating execution request: Server responded with code 500"


def test_submit_error_body_without_message(client, session):
    session.add("POST", REQUEST_URL, make_response(502, {"error": "bad gateway"}))
    with pytest.raises(RemoteRequestError) as err:
        client.submit("mps", "job", "label", 10)
    assert str(err.value) == "Error creating execution request: Server responded with code 502"


# --- status ----------------------------------------------------------------


@pytest.mark.parametrize(
    "status,done,failed,started,canceled",
    [
        ("NEW", False, False, False, False),
        ("RUNNING", False, False, True, False),
        ("ERROR", True, True, True, False),
        ("CANCELED", True, False, True, True),
        ("DONE", True, False, True, False),
    ],
)
def test_status_predicates(client, session, status, done, failed, started, canceled):
    session.add("GET", f"{REQUEST_URL}/exec-1", make_response(200, {"status": status}))
    execution = Execution(id="exec-1")
    assert client.is_done(execution) is done
    assert client.is_failed(execution) is failed
    assert client.is_started(execution) is started
    assert client.is_canceled(execution) is canceled


def test_status_enum_terminal_states():
    assert {s for s in ExecutionStatus if s.is_terminal} == {
        ExecutionStatus.ERROR,
        ExecutionStatus.CANCELED,
        ExecutionStatus.DONE,
    }


def test_unknown_status_counts_as_done(client, session):
    session.add("GET", f"{REQUEST_URL}/exec-1", make_response(200, {"status": "ARCHIVED"}))
    assert client.is_done("exec-1") is True


def test_status_accepts_plain_ids_and_raises_on_error(client, session):
    session.add("GET", f"{REQUEST_URL}/missing", make_response(404, {"message": "Not found"}))
    with pytest.raises(RemoteRequestError) as err:
        client.status("missing")
    assert str(err.value) == "Error retrieving execution information: Not found"


def test_status_reads_a_fresh_token_each_call(session):
    conn = StubConnection(session)
    client = ExecutionClient(conn)
    session.add("GET", f"{REQUEST_URL}/exec-1", make_response(200, {"status": "NEW"}))
    client.status("exec-1")
    conn.token = "access-2"
    client.status("exec-1")
    calls = session.calls_to("GET", f"{REQUEST_URL}/exec-1")
    assert [c["headers"]["Authorization"] for c in calls] == ["Bearer access-1", "Bearer access-2"]


# --- stop / delete / list --------------------------------------------------


def test_stop_and_delete_files(client, session):
    session.add("POST", f"{BASE_URL}/api/stop-execution/exec-1", make_response(200, {}))
    session.add("POST", f"{BASE_URL}/api/delete-files/exec-1", make_response(200))
    assert client.stop(Execution(id="exec-1")) is True
    assert client.delete_files(Execution(id="exec-1")) is True


def test_stop_failure(client, session):
    session.add(
        "POST",
        f"{BASE_URL}/api/stop-execution/exec-1",
        make_response(409, {"message": "Execution already finished"}),
    )
    with pytest.raises(RemoteRequestError) as err:
        client.stop("exec-1")
    assert str(err.value) == "Error stopping execution: Execution already finished"


def test_list_executions_passes_filters_and_returns_docs(client, session):
    docs = [{"_id": "a", "status": "DONE"}, {"_id": "b", "status": "DONE"}]
    session.add("GET", REQUEST_URL, make_response(200, {"docs": docs, "totalDocs": 2}))
    result = client.list_executions(status="DONE", user_email="a@b.c", limit=10, page=2)
    assert result == docs
    call = session.calls_to("GET", REQUEST_URL)[0]
    assert call["params"] == {"status": "DONE", "userEmail": "a@b.c", "limit": 10, "page": 2}


def test_list_executions_omits_unset_filters(client, session):
    session.add("GET", REQUEST_URL, make_response(200, [{"_id": "a"}]))
    assert client.list_executions() == [{"_id": "a"}]
    assert session.calls_to("GET", REQUEST_URL)[0]["params"] == {}


# --- downloads -------------------------------------------------------------


def test_download_without_files_warns(client, session, tmp_path, caplog):
    session.add("GET", f"{REQUEST_URL}/exec-1", make_response(200, {"status": "DONE"}))
    dest = tmp_path / "out"
    with caplog.at_level(logging.WARNING):
        assert client.download_result_files("exec-1", dest) == []
    assert "No files to download." in caplog.text
    assert not dest.exists()


@pytest.mark.parametrize("count", [0, -1, 1.5, "2", True, None])
def test_download_ignores_unusable_file_counts(client, session, tmp_path, count):
    session.add(
        "GET", f"{REQUEST_URL}/exec-1", make_response(200, {"numberOfResultedFiles": count})
    )
    assert client.download_result_files("exec-1", tmp_path / "out") == []
    assert session.calls_to("GET", f"{BASE_URL}/api/files/exec-1/0?source=results") == []


def test_download_accepts_whole_float_counts(client, session, tmp_path):
    session.add(
        "GET", f"{REQUEST_URL}/exec-1", make_response(200, {"numberOfResultedFiles": 2.0})
    )
    for idx in range(2):
        session.add(
            "GET",
            f"{BASE_URL}/api/files/exec-1/{idx}?source=results",
            lambda idx=idx, **kw: make_stream_response(f"part-{idx}".encode()),
        )
    names = client.download_result_files("exec-1", tmp_path)
    assert names == [str(tmp_path / "0"), str(tmp_path / "1")]
    assert (tmp_path / "1").read_bytes() == b"part-1"


def test_download_uploaded_files_uses_uploads_source(client, session, tmp_path):
    session.add(
        "GET", f"{REQUEST_URL}/exec-1", make_response(200, {"numberOfUploadedFiles": 1})
    )
    url = f"{BASE_URL}/api/files/exec-1/0?source=uploads"
    session.add(
        "GET",
        url,
        lambda **kw: make_stream_response(
            b"circuit",
            headers={"Content-Disposition": 'attachment; filename="circuit.pb"'},
        ),
    )
    names = client.download_uploaded_files("exec-1", tmp_path / "in")
    assert names == [str(tmp_path / "in" / "circuit.pb")]
    assert (tmp_path / "in" / "circuit.pb").read_bytes() == b"circuit"
    assert session.calls_to("GET", url)[0]["headers"] == {"Authorization": "Bearer access-1"}
    assert session.calls_to("GET", url)[0]["stream"] is True


def test_download_decompresses_gzip(client, session, tmp_path):
    payload = b"result " * 1000
    session.add(
        "GET", f"{REQUEST_URL}/exec-1", make_response(200, {"numberOfResultedFiles": 1})
    )
    session.add(
        "GET",
        f"{BASE_URL}/api/files/exec-1/0?source=results",
        lambda **kw: make_stream_response(
            gzip.compress(payload),
            headers={"Content-Encoding": "gzip"},
        ),
    )
    [name] = client.download_result_files("exec-1", tmp_path)
    assert Path(name).read_bytes() == payload


def test_download_error_is_raised(client, session, tmp_path):
    session.add(
        "GET", f"{REQUEST_URL}/exec-1", make_response(200, {"numberOfResultedFiles": 1})
    )
    session.add(
        "GET",
        f"{BASE_URL}/api/files/exec-1/0?source=results",
        make_response(403, {"message": "Forbidden"}),
    )
    with pytest.raises(RemoteRequestError) as err:
        client.download_result_files("exec-1", tmp_path)
    assert str(err.value) == "Error downloading file: Forbidden"


def test_default_destination_is_execution_id(client, session, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    session.add(
        "GET", f"{REQUEST_URL}/exec-7", make_response(200, {"numberOfResultedFiles": 1})
    )
    session.add(
        "GET",
        f"{BASE_URL}/api/files/exec-7/0?source=results",
        lambda **kw: make_stream_response(b"data"),
    )
    [name] = client.download_result_files(Execution(id="exec-7"))
    assert Path(name) == Path("exec-7") / "0"
    assert (tmp_path / "exec-7" / "0").read_bytes() == b"data"


def test_expected_size_and_filename_helpers():
    plain = make_response(200, content=b"abc", headers={"Content-Length": "3"})
    zipped = make_response(200, headers={"Content-Length": "3", "Content-Encoding": "gzip"})
    assert expected_size(plain) == 3
    assert expected_size(zipped) is None
    assert expected_size(make_response(200)) is None

    named = make_response(200, headers={"Content-Disposition": "attachment; filename=../x.bin"})
    assert filename_from_response(named, "https://h/files/e/0") == "x.bin"
    assert filename_from_response(make_response(200), "https://h/files/e/3?source=results") == "3"


# --- end to end ------------------------------------------------------------


def test_submit_poll_download_scenario(client, session, tmp_path):
    circuit = tmp_path / "circuit.pb"
    circuit.write_bytes(b"circuit")
    session.add("POST", REQUEST_URL, make_response(200, {"executionRequestId": "exec-42"}))
    session.add(
        "GET",
        f"{REQUEST_URL}/exec-42",
        make_response(200, {"status": "NEW"}),
        make_response(200, {"status": "RUNNING"}),
        make_response(200, {"status": "DONE", "numberOfResultedFiles": 2}),
    )
    for idx in range(2):
        session.add(
            "GET",
            f"{BASE_URL}/api/files/exec-42/{idx}?source=results",
            lambda idx=idx, **kw: make_stream_response(
                f"result-{idx}".encode(),
                headers={"Content-Disposition": f'attachment; filename="result{idx}.pb"'},
            ),
        )

    execution = client.submit("statevector", "bell", "demo", 30, str(circuit))
    assert _form(session.calls_to("POST", REQUEST_URL)[0])["timeout"] == "30"

    assert [client.is_done(execution) for _ in range(3)] == [False, False, True]

    dest = tmp_path / "results"
    names = client.download_result_files(execution, dest)
    assert names == [str(dest / "result0.pb"), str(dest / "result1.pb")]
    assert (dest / "result1.pb").read_bytes() == b"result-1"
