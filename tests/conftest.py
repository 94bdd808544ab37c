"""
Lab Inventory - test configuration and fixtures

The API runs against a SQLite file per test: same gateway, same pool, same
SQL text (placeholders rewritten), and a schema shaped like the MySQL one
with foreign keys enforced.
"""
import os
import sqlite3
from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient

from api import app, get_db, get_storage
from db import Database
from storage import FileStorage

SQLITE_SCHEMA = """
CREATE TABLE room (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    label TEXT NOT NULL,
    type TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    image_file_id TEXT
);
CREATE TABLE computer_cat (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    label TEXT NOT NULL,
    model_release_date TEXT NOT NULL,
    description TEXT NOT NULL
);
CREATE TABLE computer (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    label TEXT NOT NULL,
    install_date TEXT,
    isassignedto INTEGER NOT NULL REFERENCES room(id) ON DELETE RESTRICT,
    belongstocategory INTEGER NOT NULL REFERENCES computer_cat(id) ON DELETE RESTRICT,
    status TEXT NOT NULL,
    quantity INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE smart_board (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    model_id TEXT NOT NULL,
    isassignedto INTEGER NOT NULL REFERENCES room(id) ON DELETE RESTRICT,
    installed_date TEXT NOT NULL,
    status TEXT NOT NULL,
    image_file_id TEXT
);
CREATE TABLE lab_utility (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    label TEXT NOT NULL,
    description TEXT NOT NULL,
    quantity INTEGER NOT NULL,
    isassignedto INTEGER NOT NULL REFERENCES room(id) ON DELETE RESTRICT,
    status TEXT NOT NULL
);
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    name TEXT NOT NULL
);
"""

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
GIF_BYTES = b"GIF89a" + b"\x00" * 32


class SQLiteDatabase(Database):
    driver_errors = (sqlite3.Error,)
    integrity_errors = (sqlite3.IntegrityError,)

    def _cursor(self, conn):
        return conn.cursor()

    def _prepare(self, sql: str) -> str:
        return sql.replace("%s", "?")

    def _is_timeout(self, exc) -> bool:
        return isinstance(exc, sqlite3.OperationalError) and "locked" in str(exc)


def sqlite_connector(path: str, timeout: float = 5.0):
    def connect():
        conn = sqlite3.connect(path, timeout=timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        return conn
    return connect


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "inventory.db")


@pytest.fixture
def db(db_path):
    """Fresh SQLite-backed gateway for each test"""
    conn = sqlite3.connect(db_path)
    conn.executescript(SQLITE_SCHEMA)
    conn.close()

    database = SQLiteDatabase(connect=sqlite_connector(db_path), pool_size=4, acquire_timeout=2.0)
    yield database
    database.close()


@pytest.fixture
def make_db(db, db_path):
    """Extra gateways over the same file, e.g. with a short lock timeout"""
    made = []

    def make(timeout: float = 5.0, pool_size: int = 2):
        gateway = SQLiteDatabase(connect=sqlite_connector(db_path, timeout), pool_size=pool_size, acquire_timeout=1.0)
        made.append(gateway)
        return gateway
    yield make
    for gateway in made:
        gateway.close()


@pytest.fixture
def storage(tmp_path) -> FileStorage:
    return FileStorage(str(tmp_path / "uploads"))


@pytest.fixture
def client(db, storage):
    """Test client with the database and upload directory overridden"""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def stored_files(storage):
    """Names currently present in the upload directory"""
    return lambda: sorted(os.listdir(storage.directory))


@pytest.fixture
def png():
    return ("photo.png", PNG_BYTES, "image/png")


@pytest.fixture
def gif():
    return ("board.GIF", GIF_BYTES, "image/gif")


# --------------------------------------------------------------------------
# Factories
# --------------------------------------------------------------------------
@pytest.fixture
def create_category(client):
    def make(label="Desktop", model_release_date="2021-03-01", description="Office desktops") -> int:
        r = client.post("/category/create", json={
            "label": label,
            "model_release_date": model_release_date,
            "description": description,
        })
        assert r.status_code == 201, r.text
        return r.json()["id"]
    return make


@pytest.fixture
def create_room(client):
    def make(label="Lab A", type="lab", status=None, image=None) -> Dict[str, Any]:
        data = {"label": label, "type": type}
        if status:
            data["status"] = status
        files = {"image": image} if image else None
        r = client.post("/room/create", data=data, files=files)
        assert r.status_code == 201, r.text
        return r.json()
    return make


@pytest.fixture
def create_computer(client):
    def make(room_id, category_id, label="PC", status="functional", quantity=None, install_date=None) -> int:
        body = {
            "label": label,
            "isassignedto": room_id,
            "belongstocategory": category_id,
            "status": status,
        }
        if quantity is not None:
            body["quantity"] = quantity
        if install_date is not None:
            body["install_date"] = install_date
        r = client.post("/computer/create", json=body)
        assert r.status_code == 201, r.text
        return r.json()["id"]
    return make


@pytest.fixture
def create_smart_board(client):
    def make(room_id, model_id="SB-100", status="functional") -> Dict[str, Any]:
        r = client.post("/smart-board/create", json={
            "model_id": model_id,
            "room_id": room_id,
            "status": status,
        })
        assert r.status_code == 201, r.text
        return r.json()["data"]
    return make


@pytest.fixture
def create_lab_utility(client):
    def make(room_id, label="Projector", quantity=1, status="functional", description="Ceiling mounted") -> int:
        r = client.post("/lab-utility/create", json={
            "label": label,
            "description": description,
            "quantity": quantity,
            "isassignedto": room_id,
            "status": status,
        })
        assert r.status_code == 201, r.text
        return r.json()["id"]
    return make
