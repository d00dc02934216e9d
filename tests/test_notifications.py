import pytest

from justbecause.services.notifications import create_notification


async def notifications_for(client, user, **params):
    return (await client.get("/api/notifications", params=params, headers=user["headers"])).json()


async def test_list_and_count(client, project, volunteer, ngo):
    await client.post(f"/api/projects/{project['id']}/apply", json={}, headers=volunteer["headers"])

    notifications = await notifications_for(client, ngo)
    assert notifications[0]["type"] == "new_application"
    assert notifications[0]["is_read"] is False
    count = (await client.get("/api/notifications/unread-count", headers=ngo["headers"])).json()
    assert count == {"count": 1}


async def test_mark_read_and_read_all(client, db, volunteer, ngo):
    await client.post(f"/api/follow/{ngo['id']}", headers=volunteer["headers"])
    await client.post("/api/messages/send", json={"receiver_id": ngo["id"], "content": "Hi"}, headers=volunteer["headers"])
    first, second = await notifications_for(client, ngo)

    response = await client.post(f"/api/notifications/{first['id']}/read", headers=ngo["headers"])
    assert response.status_code == 200
    unread = await notifications_for(client, ngo, unread_only=True)
    assert [n["id"] for n in unread] == [second["id"]]

    await client.post("/api/notifications/read-all", headers=ngo["headers"])
    assert (await client.get("/api/notifications/unread-count", headers=ngo["headers"])).json() == {"count": 0}


async def test_users_only_touch_their_own_notifications(client, db, volunteer, ngo):
    await client.post(f"/api/follow/{ngo['id']}", headers=volunteer["headers"])
    notification = (await notifications_for(client, ngo))[0]

    assert (await client.post(f"/api/notifications/{notification['id']}/read", headers=volunteer["headers"])).status_code == 404
    assert (await client.delete(f"/api/notifications/{notification['id']}", headers=volunteer["headers"])).status_code == 404
    assert (await client.delete(f"/api/notifications/{notification['id']}", headers=ngo["headers"])).status_code == 200
    assert await db.notifications.count_documents({"user_id": ngo["id"]}) == 0


async def test_notifications_can_be_disabled(client, db, volunteer, ngo):
    await db.admin_settings.insert_one({"id": "platform", "enable_notifications": False})
    await client.post(f"/api/follow/{ngo['id']}", headers=volunteer["headers"])
    assert await notifications_for(client, ngo) == []


async def test_unknown_notification_type_is_rejected(volunteer):
    with pytest.raises(ValueError):
        await create_notification(volunteer["id"], "party_invite", "Hi", "You are invited")
