import pytest

TICKET = {"subject": "Cannot upgrade", "description": "The payment page keeps spinning forever.", "category": "payment"}


async def open_ticket(client, user, **overrides):
    response = await client.post("/api/support/tickets", json={**TICKET, **overrides}, headers=user["headers"])
    assert response.status_code == 200, response.text
    return response.json()


async def test_create_and_list_own_tickets(client, volunteer, ngo):
    ticket = await open_ticket(client, volunteer)
    assert ticket["status"] == "open"
    assert ticket["priority"] == "medium"
    assert ticket["user_type"] == "volunteer"
    await open_ticket(client, ngo, subject="NGO question")

    mine = (await client.get("/api/support/tickets", headers=volunteer["headers"])).json()
    assert [t["id"] for t in mine] == [ticket["id"]]
    other = await client.get(f"/api/support/tickets/{ticket['id']}", headers=ngo["headers"])
    assert other.status_code == 404


async def test_invalid_ticket(client, volunteer):
    response = await client.post(
        "/api/support/tickets", json={**TICKET, "category": "gossip"}, headers=volunteer["headers"]
    )
    assert response.status_code == 422


async def test_admin_response_notifies_and_user_reply_reopens(client, db, admin, volunteer):
    ticket = await open_ticket(client, volunteer)

    responded = await client.post(
        f"/api/admin/support/tickets/{ticket['id']}/respond", json={"message": "Looking into it"},
        headers=admin["headers"],
    )
    assert responded.json()["status"] == "in-progress"
    assert responded.json()["responses"][0]["is_admin"] is True
    assert await db.notifications.count_documents({"user_id": volunteer["id"], "type": "support"}) == 1

    replied = await client.post(
        f"/api/support/tickets/{ticket['id']}/reply", json={"message": "Still broken"}, headers=volunteer["headers"]
    )
    body = replied.json()
    assert body["status"] == "open"
    assert [r["is_admin"] for r in body["responses"]] == [True, False]


async def test_closed_tickets_take_no_replies(client, db, admin, volunteer):
    ticket = await open_ticket(client, volunteer)
    response = await client.put(
        f"/api/admin/support/tickets/{ticket['id']}/status", json={"status": "resolved"}, headers=admin["headers"]
    )
    assert response.json()["resolved_at"] is not None
    assert await db.audit_logs.count_documents({"action": "ticket_status", "target_id": ticket["id"]}) == 1

    reply = await client.post(
        f"/api/support/tickets/{ticket['id']}/reply", json={"message": "Thanks"}, headers=volunteer["headers"]
    )
    assert reply.status_code == 400


async def test_admin_list_orders_by_priority(client, admin, volunteer):
    low = await open_ticket(client, volunteer, priority="low")
    urgent = await open_ticket(client, volunteer, priority="urgent", category="account")

    listed = (await client.get("/api/admin/support/tickets", headers=admin["headers"])).json()
    assert [t["id"] for t in listed["tickets"]] == [urgent["id"], low["id"]]
    filtered = (await client.get(
        "/api/admin/support/tickets", params={"category": "account"}, headers=admin["headers"]
    )).json()
    assert filtered["total"] == 1

    stats = (await client.get("/api/admin/support/stats", headers=admin["headers"])).json()
    assert stats["by_status"] == {"open": 2}
    assert stats["by_category"] == {"payment": 1, "account": 1}


@pytest.mark.parametrize("path", ["/api/admin/support/tickets", "/api/admin/support/stats"])
async def test_admin_support_routes_need_admin(client, volunteer, path):
    assert (await client.get(path, headers=volunteer["headers"])).status_code == 403
