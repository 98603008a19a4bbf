from mimiqlink import ExecutionClient, connect_planqk


def main() -> int:
    # PLANQK_API, PLANQK_CONSUMER_KEY and PLANQK_CONSUMER_SECRET are read from
    # the environment or a .env file
    with connect_planqk() as conn:
        client = ExecutionClient(conn)
        for record in client.list_executions(status="DONE", limit=10):
            print(record.get("_id"), record.get("name"), record.get("status"))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
