def test_location_crud(client, keeper_h):
    r = client.post(
        "/storage-locations",
        json={"type": "Rack", "name": "Rack 7", "address": "Hall 2"},
        headers=keeper_h,
    )
    assert r.status_code == 201
    loc_id = r.json()["id"]
    assert r.json()["toolsCount"] == 0

    r = client.put(f"/storage-locations/{loc_id}", json={"name": "Rack 7B"}, headers=keeper_h)
    assert r.status_code == 200
    assert r.json()["name"] == "Rack 7B"
    assert r.json()["type"] == "Rack"

    listed = client.get("/storage-locations", headers=keeper_h).json()
    assert [loc["name"] for loc in listed] == ["Rack 7B"]

    types = client.get("/storage-locations/types", headers=keeper_h).json()
    assert {"id": "Workshop", "name": "Workshop"} in types


def test_delete_location_guarded_by_tools(client, keeper_h, location_id, make_tool):
    tool_id = make_tool()

    detail = client.get(f"/storage-locations/{location_id}", headers=keeper_h).json()
    assert detail["toolsCount"] == 1
    assert detail["tools"][0]["id"] == tool_id

    r = client.delete(f"/storage-locations/{location_id}", headers=keeper_h)
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "LOCATION_NOT_EMPTY"

    assert client.delete(f"/tools/{tool_id}", headers=keeper_h).status_code == 204
    assert client.delete(f"/storage-locations/{location_id}", headers=keeper_h).status_code == 204
    assert client.get(f"/storage-locations/{location_id}", headers=keeper_h).status_code == 404


def test_worker_cannot_create_location(client, worker_h):
    r = client.post("/storage-locations", json={"type": "Box", "name": "B"}, headers=worker_h)
    assert r.status_code == 403
