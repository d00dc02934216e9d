from conftest import PROJECT, NGO_PROFILE, register, make_pro


async def test_create_project(client, db, ngo):
    response = await client.post("/api/projects", json=PROJECT, headers=ngo["headers"])
    assert response.status_code == 200
    project = response.json()
    assert project["ngo_id"] == ngo["id"]
    assert project["ngo_name"] == NGO_PROFILE["org_name"]
    assert project["status"] == "active"
    assert project["applicants_count"] == 0

    stored = await db.users.find_one({"id": ngo["id"]})
    assert stored["projects_posted"] == 1
    assert stored["monthly_projects_posted"] == 1


async def test_create_project_requires_ngo_profile(client):
    bare = await register(client, "bare-ngo@example.com", "Bare NGO", "ngo")
    response = await client.post("/api/projects", json=PROJECT, headers=bare["headers"])
    assert response.status_code == 400


async def test_volunteers_cannot_post_projects(client, volunteer):
    response = await client.post("/api/projects", json=PROJECT, headers=volunteer["headers"])
    assert response.status_code == 403


async def test_create_project_validates_content(client, ngo):
    response = await client.post(
        "/api/projects", json={**PROJECT, "title": "Hi", "description": "too short"}, headers=ngo["headers"]
    )
    assert response.status_code == 400
    assert "Title must be at least 5 characters" in response.json()["detail"]
    assert "Description must be at least 20 characters" in response.json()["detail"]


class TestMonthlyProjectLimit:
    async def test_free_ngo_is_limited(self, client, ngo):
        for _ in range(3):
            response = await client.post("/api/projects", json=PROJECT, headers=ngo["headers"])
            assert response.status_code == 200

        response = await client.post("/api/projects", json=PROJECT, headers=ngo["headers"])
        assert response.status_code == 403
        assert "Monthly project limit reached (3)" in response.json()["detail"]

    async def test_pro_ngo_is_unlimited(self, client, db, ngo):
        await make_pro(db, ngo["id"])
        for _ in range(5):
            response = await client.post("/api/projects", json=PROJECT, headers=ngo["headers"])
            assert response.status_code == 200

    async def test_counter_resets_in_a_new_month(self, client, db, ngo):
        await db.users.update_one(
            {"id": ngo["id"]},
            {"$set": {"monthly_projects_posted": 3, "subscription_reset_date": "2020-01-01T00:00:00+00:00"}}
        )
        response = await client.post("/api/projects", json=PROJECT, headers=ngo["headers"])
        assert response.status_code == 200
        stored = await db.users.find_one({"id": ngo["id"]})
        assert stored["monthly_projects_posted"] == 1


class TestBrowse:
    async def test_filters(self, client, ngo, project):
        onsite = {**PROJECT, "title": "Food drive volunteers", "work_mode": "onsite", "location": "Mumbai",
                  "causes": ["hunger"], "skills_required": []}
        await client.post("/api/projects", json=onsite, headers=ngo["headers"])

        everything = (await client.get("/api/projects")).json()
        assert everything["total"] == 2

        remote = (await client.get("/api/projects", params={"work_mode": "remote"})).json()
        assert [p["id"] for p in remote["projects"]] == [project["id"]]

        hunger = (await client.get("/api/projects", params={"cause": "hunger"})).json()
        assert [p["title"] for p in hunger["projects"]] == ["Food drive volunteers"]

        design = (await client.get("/api/projects", params={"skill_category": "design"})).json()
        assert design["total"] == 1

    async def test_text_search_escapes_input(self, client, project):
        found = (await client.get("/api/projects", params={"q": "DONATION"})).json()
        assert found["total"] == 1
        nothing = (await client.get("/api/projects", params={"q": ".*("})).json()
        assert nothing["total"] == 0

    async def test_closed_projects_are_hidden(self, client, ngo, project):
        await client.put(f"/api/projects/{project['id']}", json={"status": "closed"}, headers=ngo["headers"])
        assert (await client.get("/api/projects")).json()["total"] == 0

    async def test_skill_categories(self, client, project):
        response = await client.get("/api/projects/skill-categories")
        assert response.status_code == 200
        assert response.json() == [{"category_id": "design", "count": 1}]


async def test_get_project_counts_views(client, project):
    first = await client.get(f"/api/projects/{project['id']}")
    second = await client.get(f"/api/projects/{project['id']}")
    assert first.json()["views_count"] == 1
    assert second.json()["views_count"] == 2


async def test_drafts_are_only_visible_to_their_owner(client, ngo, project, volunteer):
    await client.put(f"/api/projects/{project['id']}", json={"status": "draft"}, headers=ngo["headers"])
    assert (await client.get(f"/api/projects/{project['id']}")).status_code == 404
    assert (await client.get(f"/api/projects/{project['id']}", headers=volunteer["headers"])).status_code == 404
    assert (await client.get(f"/api/projects/{project['id']}", headers=ngo["headers"])).status_code == 200


async def test_missing_project(client):
    assert (await client.get("/api/projects/nope")).status_code == 404


class TestEditing:
    async def test_owner_can_update(self, client, ngo, project):
        response = await client.put(
            f"/api/projects/{project['id']}", json={"title": "Redesign the donate flow"}, headers=ngo["headers"]
        )
        assert response.status_code == 200
        assert response.json()["title"] == "Redesign the donate flow"

    async def test_other_users_cannot_update(self, client, project, volunteer):
        response = await client.put(
            f"/api/projects/{project['id']}", json={"title": "Hijacked title"}, headers=volunteer["headers"]
        )
        assert response.status_code == 403

    async def test_admin_can_update(self, client, project, admin):
        response = await client.put(f"/api/projects/{project['id']}", json={"status": "paused"}, headers=admin["headers"])
        assert response.status_code == 200
        assert response.json()["status"] == "paused"

    async def test_completing_counts_for_the_ngo(self, client, db, ngo, project):
        await client.put(f"/api/projects/{project['id']}", json={"status": "completed"}, headers=ngo["headers"])
        stored = await db.users.find_one({"id": ngo["id"]})
        assert stored["projects_completed"] == 1

    async def test_delete_removes_applications(self, client, db, ngo, project, volunteer):
        await client.post(f"/api/projects/{project['id']}/apply", json={}, headers=volunteer["headers"])
        response = await client.delete(f"/api/projects/{project['id']}", headers=ngo["headers"])
        assert response.status_code == 200
        assert await db.projects.count_documents({}) == 0
        assert await db.applications.count_documents({}) == 0


async def test_ngo_projects_lists_only_own(client, ngo, project):
    other = await register(client, "other-ngo@example.com", "Other", "ngo")
    await client.post("/api/ngo/onboarding", json={**NGO_PROFILE, "org_name": "Other Org"}, headers=other["headers"])
    await client.post("/api/projects", json=PROJECT, headers=other["headers"])

    mine = (await client.get("/api/ngo/projects", headers=ngo["headers"])).json()
    assert [p["id"] for p in mine] == [project["id"]]


async def test_save_toggle(client, project, volunteer):
    url = f"/api/projects/{project['id']}/save"
    assert (await client.post(url, headers=volunteer["headers"])).json() == {"saved": True}

    saved = (await client.get("/api/volunteer/saved-projects", headers=volunteer["headers"])).json()
    assert [p["id"] for p in saved] == [project["id"]]

    assert (await client.post(url, headers=volunteer["headers"])).json() == {"saved": False}
    assert (await client.get("/api/volunteer/saved-projects", headers=volunteer["headers"])).json() == []


async def test_matching_volunteers_are_notified_of_new_projects(client, db, volunteer, ngo):
    await client.post("/api/projects", json=PROJECT, headers=ngo["headers"])
    notifications = await db.notifications.find({"user_id": volunteer["id"]}).to_list(10)
    assert [n["type"] for n in notifications] == ["new_opportunity"]


async def accept(client, project, volunteer, ngo):
    application = (await client.post(
        f"/api/projects/{project['id']}/apply", json={}, headers=volunteer["headers"]
    )).json()
    await client.put(
        f"/api/applications/{application['id']}/status", json={"status": "accepted"}, headers=ngo["headers"]
    )
    return application


class TestCompletion:
    async def test_accepted_volunteers_are_credited(self, client, db, ngo, project, volunteer, paid_volunteer):
        await accept(client, project, volunteer, ngo)
        await client.post(f"/api/projects/{project['id']}/apply", json={}, headers=paid_volunteer["headers"])

        for _ in range(2):
            await client.put(f"/api/projects/{project['id']}", json={"status": "completed"}, headers=ngo["headers"])

        assert (await db.users.find_one({"id": volunteer["id"]}))["completed_projects"] == 1
        assert (await db.users.find_one({"id": paid_volunteer["id"]})).get("completed_projects", 0) == 0

    async def test_applicants_hear_about_status_changes(self, client, db, ngo, project, volunteer):
        await client.post(f"/api/projects/{project['id']}/apply", json={}, headers=volunteer["headers"])
        await client.put(f"/api/projects/{project['id']}", json={"status": "paused"}, headers=ngo["headers"])
        notification = await db.notifications.find_one({"user_id": volunteer["id"], "type": "project_update"})
        assert notification["message"] == f"\"{PROJECT['title']}\" is now paused"


class TestHours:
    async def test_volunteer_logs_own_hours(self, client, db, ngo, project, volunteer):
        await accept(client, project, volunteer, ngo)
        response = await client.post(
            f"/api/projects/{project['id']}/hours", json={"hours": 3.5, "description": "Wireframes"},
            headers=volunteer["headers"],
        )
        assert response.status_code == 200
        assert (await db.projects.find_one({"id": project["id"]}))["total_hours_logged"] == 3.5
        assert (await db.users.find_one({"id": volunteer["id"]}))["hours_contributed"] == 3.5

        impact = (await client.get("/api/impact")).json()
        assert impact["hours_contributed"] == 3.5

    async def test_owner_logs_for_an_accepted_volunteer(self, client, db, ngo, project, volunteer):
        await accept(client, project, volunteer, ngo)
        missing = await client.post(f"/api/projects/{project['id']}/hours", json={"hours": 2}, headers=ngo["headers"])
        assert missing.status_code == 400
        response = await client.post(
            f"/api/projects/{project['id']}/hours", json={"hours": 2, "volunteer_id": volunteer["id"]},
            headers=ngo["headers"],
        )
        assert response.json()["logged_by"] == ngo["id"]

    async def test_only_accepted_volunteers(self, client, project, volunteer):
        await client.post(f"/api/projects/{project['id']}/apply", json={}, headers=volunteer["headers"])
        response = await client.post(f"/api/projects/{project['id']}/hours", json={"hours": 2}, headers=volunteer["headers"])
        assert response.status_code == 403

    async def test_hours_must_be_within_a_day(self, client, ngo, project, volunteer):
        await accept(client, project, volunteer, ngo)
        for hours in (0, 25):
            response = await client.post(
                f"/api/projects/{project['id']}/hours", json={"hours": hours}, headers=volunteer["headers"]
            )
            assert response.status_code == 422
