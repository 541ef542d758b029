import pytest
from fastapi.testclient import TestClient

from saigon_server.database import get_db_connection
from saigon_server.main import create_app

TEST_TOKEN = "test-shared-secret"


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'saigon-test.db'}"


@pytest.fixture
def make_client(database_url):
    """
    Builds a started TestClient; keyword arguments are passed to create_app.
    """
    clients = []

    def _make(**overrides):
        options = {"auth_token": TEST_TOKEN, "database_url": database_url}
        options.update(overrides)
        client = TestClient(create_app(**options))
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def insert_row(database_url):
    """Writes a row with an explicit timestamp, bypassing the ingestion path."""

    def _insert(hostname, timestamp, **fields):
        conn = get_db_connection(database_url)
        try:
            columns = ["hostname", "timestamp", *fields]
            conn.execute(
                f"INSERT INTO system_data ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
                (hostname, timestamp, *fields.values()),
            )
            conn.commit()
        finally:
            conn.close()

    return _insert


def snapshot_message(hostname="web1", token=TEST_TOKEN, **overrides):
    message = {
        "hostname": hostname,
        "os": "Debian GNU/Linux 12",
        "kernel": "6.1.0-18-amd64",
        "uptime": "1:00:00",
        "shell": "/bin/bash",
        "cpu": "Intel(R) Xeon(R) CPU",
        "cpu_percentage": "12.5%",
        "mem_stats": "1.00 GiB / 4.00 GiB",
        "ram_percentage": "25.0%",
        "total_disk_space": "100.00 GiB",
        "free_disk_space": "60.00 GiB",
        "used_disk_space": "40.00 GiB",
        "system_arch": "x86_64",
        "auth_token": token,
    }
    message.update(overrides)
    return message
