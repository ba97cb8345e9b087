from datetime import datetime, timedelta, timezone


def _issue(client, h, tool_id, worker_id, issuer_id, **extra):
    payload = {"toolId": tool_id, "workerId": worker_id, "issuedById": issuer_id, "quantity": 1}
    payload.update(extra)
    return client.post("/operations/issue", json=payload, headers=h)


def test_scenario_issue_shows_in_active(client, keeper_h, users, make_tool):
    tool_id = make_tool("HAM-001", "Hammer")
    expected = (datetime.now(timezone.utc) + timedelta(days=7)).isoformat()

    r = _issue(client, keeper_h, tool_id, users["worker1"], users["keeper"],
               notes="site 1", expectedReturnDate=expected)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["toolName"] == "Hammer"
    assert body["workerName"] == "Pavel Petrov"
    assert body["issuedByName"] == "Kirill Keeper"
    assert isinstance(body["transactionId"], int)

    r = client.get("/operations/active", headers=keeper_h)
    assert r.status_code == 200
    active = [a for a in r.json() if a["tool"]["id"] == tool_id]
    assert len(active) == 1
    assert active[0]["daysIssued"] == 0
    assert active[0]["worker"]["fullName"] == "Pavel Petrov"
    assert active[0]["issuedBy"]["id"] == users["keeper"]
    assert active[0]["notes"] == "site 1"
    assert active[0]["transactionDate"].endswith("+00:00")
    assert datetime.fromisoformat(active[0]["expectedReturnDate"]) == datetime.fromisoformat(expected)


def test_scenario_return_clears_active(client, keeper_h, users, make_tool):
    tool_id = make_tool()
    assert _issue(client, keeper_h, tool_id, users["worker1"], users["keeper"]).status_code == 200

    r = client.post(
        "/operations/return",
        json={"toolId": tool_id, "workerId": users["worker1"], "returnedById": users["keeper"],
              "condition": "good", "notes": ""},
        headers=keeper_h,
    )
    assert r.status_code == 200, r.text
    ret_id = r.json()["transactionId"]
    # 时间带 UTC 偏移输出
    returned = r.json()["returnedDate"]
    assert returned.endswith("+00:00")
    assert datetime.fromisoformat(returned).tzinfo is not None

    active = client.get("/operations/active", headers=keeper_h).json()
    assert all(a["tool"]["id"] != tool_id for a in active)

    recent = client.get("/operations/transactions/recent?limit=1", headers=keeper_h).json()
    assert len(recent) == 1
    assert recent[0]["id"] == ret_id
    assert recent[0]["transactionType"] == "Return"
    assert recent[0]["condition"] == "good"


def test_scenario_full_write_off(client, keeper_h, admin_h, users, make_tool):
    tool_id = make_tool("WRN-003", "Spanner")

    r = client.post(
        f"/tools/{tool_id}/writeoff",
        json={"userId": users["admin"], "quantity": 1, "reason": "broken", "notes": "",
              "writeOffCompletely": True},
        headers=admin_h,
    )
    assert r.status_code == 200, r.text
    tx_id = r.json()["transactionId"]

    r = client.get(f"/tools/{tool_id}", headers=keeper_h)
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "TOOL_NOT_FOUND"

    recent = client.get("/operations/transactions/recent", headers=keeper_h).json()
    row = next(t for t in recent if t["id"] == tx_id)
    assert row["transactionType"] == "WriteOff"
    assert row["tool"] == {"id": tool_id, "article": "WRN-003", "name": "Spanner"}


def test_double_return_conflicts(client, keeper_h, users, make_tool):
    tool_id = make_tool()
    _issue(client, keeper_h, tool_id, users["worker1"], users["keeper"])
    payload = {"toolId": tool_id, "workerId": users["worker1"], "returnedById": users["keeper"],
               "condition": "worn"}

    assert client.post("/operations/return", json=payload, headers=keeper_h).status_code == 200
    r = client.post("/operations/return", json=payload, headers=keeper_h)
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "NO_OPEN_ISSUE"


def test_issue_validation_errors(client, keeper_h, users, make_tool):
    tool_id = make_tool()

    r = _issue(client, keeper_h, tool_id, users["keeper"], users["keeper"])
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "INVALID_WORKER"

    r = _issue(client, keeper_h, tool_id, users["worker1"], users["keeper"], quantity=0)
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "VALIDATION_ERROR"

    assert _issue(client, keeper_h, tool_id, users["worker1"], users["keeper"]).status_code == 200
    r = _issue(client, keeper_h, tool_id, users["worker1"], users["keeper"])
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "OPEN_ISSUE_EXISTS"


def test_unknown_condition_rejected(client, keeper_h, users, make_tool):
    tool_id = make_tool()
    _issue(client, keeper_h, tool_id, users["worker1"], users["keeper"])
    r = client.post(
        "/operations/return",
        json={"toolId": tool_id, "workerId": users["worker1"], "returnedById": users["keeper"],
              "condition": "sparkling"},
        headers=keeper_h,
    )
    assert r.status_code == 422


def test_stats_match_active_list(client, keeper_h, users, make_tool):
    a = make_tool("A-1", "First")
    b = make_tool("B-2", "Second")
    past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    _issue(client, keeper_h, a, users["worker1"], users["keeper"], expectedReturnDate=past)
    _issue(client, keeper_h, b, users["worker2"], users["keeper"])

    stats = client.get("/operations/stats", headers=keeper_h).json()
    active = client.get("/operations/active", headers=keeper_h).json()

    assert stats["activeIssues"] == len(active) == 2
    assert stats["overdueIssues"] == 1
    assert stats["issuesToday"] == 2
    assert stats["returnsToday"] == 0
    assert stats["totalTransactions"] == 2


def test_user_active_tools_endpoint(client, keeper_h, users, make_tool):
    tool_id = make_tool("DRL-004", "Drill")
    _issue(client, keeper_h, tool_id, users["worker2"], users["keeper"])

    r = client.get(f"/operations/user/{users['worker2']}/active", headers=keeper_h)
    assert r.status_code == 200
    items = r.json()
    assert len(items) == 1
    assert items[0]["toolId"] == tool_id
    assert items[0]["toolName"] == "Drill"
    assert items[0]["article"] == "DRL-004"
    assert items[0]["isOverdue"] is False
    assert items[0]["expectedReturnDate"] is None


def test_receive_endpoint_and_history(client, keeper_h, users, location_id):
    r = client.post(
        "/operations/receive",
        json={"article": "SAW-005", "name": "Hacksaw", "storageLocationId": location_id,
              "receivedById": users["keeper"], "quantity": 2},
        headers=keeper_h,
    )
    assert r.status_code == 201, r.text
    tool_id = r.json()["toolId"]

    tool = client.get(f"/tools/{tool_id}", headers=keeper_h).json()
    assert tool["storageLocationName"] == "Main warehouse"

    history = client.get(f"/operations/tool/{tool_id}/history", headers=keeper_h).json()
    assert [h["transactionType"] for h in history] == ["Receipt"]
    assert history[0]["user"]["fullName"] == "Kirill Keeper"
