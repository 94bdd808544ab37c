import pytest

from errors import UpstreamError


def test_create_room_defaults_to_active(client, create_room):
    created = create_room(label="Lab A", type="lab")

    room = client.get(f"/room/{created['id']}").json()

    assert room == {"id": created["id"], "label": "Lab A", "type": "lab", "status": "active", "image_file_id": None}


def test_create_room_requires_label_and_type(client):
    r = client.post("/room/create", data={"label": "Lab A"})

    assert r.status_code == 400
    assert r.json()["details"]["missing"] == ["type"]


def test_create_room_rejects_unknown_status(client):
    r = client.post("/room/create", data={"label": "Lab A", "type": "lab", "status": "functional"})

    assert r.status_code == 400
    assert r.json()["details"]["field"] == "status"


def test_create_room_with_image_serves_it(client, create_room, png, stored_files):
    created = create_room(image=png)

    file_id = created["image_file_id"]
    assert stored_files() == [file_id]
    assert client.get(f"/room/{created['id']}").json()["image_file_id"] == file_id

    r = client.get(f"/room/image/{file_id}")
    assert r.status_code == 200
    assert r.content == png[1]


def test_create_room_with_bad_image_inserts_nothing(client, stored_files):
    r = client.post(
        "/room/create",
        data={"label": "Lab A", "type": "lab"},
        files={"image": ("notes.txt", b"hello", "text/plain")},
    )

    assert r.status_code == 400
    assert client.get("/room/all").json() == []
    assert stored_files() == []


def test_list_rooms_ordered_by_label(client, create_room):
    create_room(label="Lab C")
    create_room(label="Lab A")

    assert [r["label"] for r in client.get("/room/all").json()] == ["Lab A", "Lab C"]


def test_unknown_room_is_404(client):
    assert client.get("/room/5").status_code == 404
    assert client.get("/room/details/5").status_code == 404
    assert client.put("/room/edit/5", data={"label": "x"}).status_code == 404
    assert client.delete("/room/delete/5").status_code == 404


def test_partial_update(client, create_room):
    room_id = create_room(label="Lab A", type="lab")["id"]

    r = client.put(f"/room/edit/{room_id}", data={"status": "maintenance"})

    assert r.status_code == 200
    room = client.get(f"/room/{room_id}").json()
    assert room["status"] == "maintenance"
    assert room["label"] == "Lab A"


def test_update_without_fields_is_rejected(client, create_room):
    room_id = create_room()["id"]

    r = client.put(f"/room/edit/{room_id}")

    assert r.status_code == 400
    assert r.json()["message"] == "No fields to update"


def test_replacing_image_removes_old_file(client, create_room, png, gif, stored_files):
    created = create_room(image=png)
    old_id = created["image_file_id"]

    r = client.put(f"/room/edit/{created['id']}", data={"label": "Lab A2"}, files={"image": gif})

    assert r.status_code == 200
    new_id = r.json()["image_file_id"]
    assert new_id != old_id
    assert new_id.endswith(".gif")
    assert stored_files() == [new_id]
    assert client.get(f"/room/{created['id']}").json()["image_file_id"] == new_id
    assert client.get(f"/room/image/{new_id}").content == gif[1]
    assert client.get(f"/room/image/{old_id}").status_code == 404


def test_upload_image_route_replaces_image(client, create_room, png, gif, stored_files):
    created = create_room(image=png)

    r = client.post(f"/room/upload-image/{created['id']}", files={"image": gif})

    assert r.status_code == 200
    assert stored_files() == [r.json()["filename"]]
    assert client.get(f"/room/{created['id']}").json()["image_file_id"] == r.json()["filename"]


def test_upload_image_for_unknown_room_stores_nothing(client, png, stored_files):
    r = client.post("/room/upload-image/31", files={"image": png})

    assert r.status_code == 404
    assert stored_files() == []


def test_failed_update_discards_new_image_and_keeps_old(client, db, create_room, png, gif, stored_files, monkeypatch):
    created = create_room(image=png)
    old_id = created["image_file_id"]

    def failing_execute(sql, params=(), **kwargs):
        raise UpstreamError()

    monkeypatch.setattr(db, "execute", failing_execute)
    r = client.put(f"/room/edit/{created['id']}", files={"image": gif})

    assert r.status_code == 500
    assert r.json()["message"] == "Internal server error"
    assert stored_files() == [old_id]


def test_delete_blocked_by_dependents_reports_counts(
    client, create_room, create_category, create_computer, create_smart_board, create_lab_utility,
):
    room_id = create_room()["id"]
    category_id = create_category()
    create_computer(room_id, category_id)
    create_computer(room_id, category_id, label="PC-2")
    create_smart_board(room_id)

    r = client.delete(f"/room/delete/{room_id}")

    assert r.status_code == 400
    assert r.json()["details"] == {"computers": 2, "labUtilities": 0, "smartBoards": 1}
    assert client.get(f"/room/{room_id}").status_code == 200


def test_delete_room_removes_its_image(client, create_room, png, stored_files):
    created = create_room(image=png)

    r = client.delete(f"/room/delete/{created['id']}")

    assert r.status_code == 200
    assert stored_files() == []
    assert client.get(f"/room/{created['id']}").status_code == 404


def test_room_details_groups_equipment(
    client, create_room, create_category, create_computer, create_smart_board, create_lab_utility,
):
    room_id = create_room(label="Lab A")["id"]
    other_id = create_room(label="Lab B")["id"]
    category_id = create_category(label="Desktop")
    create_computer(room_id, category_id, label="PC-1")
    create_computer(other_id, category_id, label="PC-X")
    create_smart_board(room_id)
    create_lab_utility(room_id, label="Sink")

    body = client.get(f"/room/details/{room_id}").json()

    assert body["room"]["label"] == "Lab A"
    assert [c["label"] for c in body["computers"]] == ["PC-1"]
    assert body["computers"][0]["category_name"] == "Desktop"
    assert [u["label"] for u in body["utilities"]] == ["Sink"]
    assert len(body["smartBoards"]) == 1


@pytest.mark.parametrize("name", ["0" * 32 + ".png", "..%2Finventory.db", "photo.png"])
def test_missing_image_is_404(client, name):
    assert client.get(f"/room/image/{name}").status_code == 404
