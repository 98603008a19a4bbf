import sys
import time

from mimiqlink import ExecutionClient, TerminalPrinter, connect, load_token


def main() -> int:
    # Reuse a token saved with save_token("qperfect.json") if one is given
    conn = load_token(sys.argv[2]) if len(sys.argv) > 2 else connect()
    TerminalPrinter().print_connection(conn)

    with conn:
        client = ExecutionClient(conn)
        execution = client.submit("statevector", "bell", "example", 30, sys.argv[1])
        print(f"Submitted execution {execution}")

        while not client.is_done(execution):
            time.sleep(2)

        if client.is_failed(execution):
            print("Execution failed")
            return 1

        for name in client.download_result_files(execution, f"results-{execution}"):
            print(f"Downloaded {name}")
    return 0


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("usage: submit_and_download.py CIRCUIT_FILE [TOKEN_FILE]")
        sys.exit(2)
    sys.exit(main())
