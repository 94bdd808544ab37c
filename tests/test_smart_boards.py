from datetime import date


def test_create_sets_install_date_and_returns_joined_row(client, create_room):
    room_id = create_room(label="Room 101", type="classroom")["id"]

    r = client.post("/smart-board/create", json={"model_id": "SB-480", "room_id": room_id, "status": "functional"})

    assert r.status_code == 201
    data = r.json()["data"]
    assert data["model_id"] == "SB-480"
    assert data["isassignedto"] == room_id
    assert data["room_name"] == "Room 101"
    assert data["installed_date"] == date.today().isoformat()
    assert data["image_file_id"] is None


def test_create_requires_existing_room(client):
    r = client.post("/smart-board/create", json={"model_id": "SB-480", "room_id": 12, "status": "functional"})

    assert r.status_code == 400
    assert r.json()["details"]["field"] == "room_id"
    assert client.get("/smart-board/all").json() == []


def test_create_names_missing_fields(client):
    r = client.post("/smart-board/create", json={"model_id": "SB-480"})

    assert r.status_code == 400
    assert r.json()["details"]["missing"] == ["room_id", "status"]


def test_edit_with_image_returns_updated_row(client, create_room, create_smart_board, png, stored_files):
    room_id = create_room()["id"]
    board = create_smart_board(room_id)
    other_room = create_room(label="Lab Z")["id"]

    r = client.put(
        f"/smart-board/edit/{board['id']}",
        data={"status": "maintenance", "room_id": str(other_room)},
        files={"image": png},
    )

    assert r.status_code == 200
    data = r.json()["data"]
    assert data["status"] == "maintenance"
    assert data["room_name"] == "Lab Z"
    assert stored_files() == [data["image_file_id"]]
    assert client.get(f"/smart-board/image/{data['image_file_id']}").content == png[1]


def test_edit_rejects_unknown_room_and_status(client, create_room, create_smart_board):
    board = create_smart_board(create_room()["id"])

    assert client.put(f"/smart-board/edit/{board['id']}", data={"room_id": "404"}).status_code == 400
    assert client.put(f"/smart-board/edit/{board['id']}", data={"status": "active"}).status_code == 400
    assert client.put("/smart-board/edit/999", data={"status": "retired"}).status_code == 404


def test_upload_image_replaces_previous(client, create_room, create_smart_board, png, gif, stored_files):
    board = create_smart_board(create_room()["id"])
    first = client.post(f"/smart-board/upload-image/{board['id']}", files={"image": png}).json()["filename"]

    second = client.post(f"/smart-board/upload-image/{board['id']}", files={"image": gif}).json()["filename"]

    assert stored_files() == [second]
    assert client.get(f"/smart-board/{board['id']}").json()["image_file_id"] == second
    assert client.get(f"/smart-board/image/{first}").status_code == 404


def test_delete_removes_row_and_image(client, create_room, create_smart_board, png, stored_files):
    board = create_smart_board(create_room()["id"])
    client.post(f"/smart-board/upload-image/{board['id']}", files={"image": png})

    r = client.delete(f"/smart-board/delete/{board['id']}")

    assert r.status_code == 200
    assert stored_files() == []
    assert client.get(f"/smart-board/{board['id']}").status_code == 404
    assert client.delete(f"/smart-board/delete/{board['id']}").status_code == 404


def test_list_smart_boards(client, create_room, create_smart_board):
    room_id = create_room()["id"]
    create_smart_board(room_id, model_id="SB-B")
    create_smart_board(room_id, model_id="SB-A")

    assert [b["model_id"] for b in client.get("/smart-board/all").json()] == ["SB-A", "SB-B"]
