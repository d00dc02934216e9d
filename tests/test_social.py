from conftest import register


class TestFollows:
    async def test_follow_is_idempotent(self, client, db, volunteer, ngo):
        for _ in range(2):
            response = await client.post(f"/api/follow/{ngo['id']}", headers=volunteer["headers"])
            assert response.json() == {"following": True}
        assert await db.follows.count_documents({}) == 1
        assert await db.notifications.count_documents({"user_id": ngo["id"], "type": "new_follower"}) == 1

    async def test_stats_and_lists(self, client, volunteer, ngo):
        await client.post(f"/api/follow/{ngo['id']}", headers=volunteer["headers"])

        stats = (await client.get(f"/api/follow/{ngo['id']}/stats", headers=volunteer["headers"])).json()
        assert stats == {"followers_count": 1, "following_count": 0, "is_following": True}
        anonymous = (await client.get(f"/api/follow/{ngo['id']}/stats")).json()
        assert anonymous["is_following"] is False

        followers = (await client.get(f"/api/follow/{ngo['id']}/followers")).json()
        assert [f["id"] for f in followers] == [volunteer["id"]]
        following = (await client.get(f"/api/follow/{volunteer['id']}/following")).json()
        assert following[0]["name"] == "Bright Futures Foundation"

    async def test_unfollow(self, client, volunteer, ngo):
        await client.post(f"/api/follow/{ngo['id']}", headers=volunteer["headers"])
        await client.delete(f"/api/follow/{ngo['id']}", headers=volunteer["headers"])
        stats = (await client.get(f"/api/follow/{ngo['id']}/stats")).json()
        assert stats["followers_count"] == 0

    async def test_cannot_follow_self_or_ghosts(self, client, volunteer):
        assert (await client.post(f"/api/follow/{volunteer['id']}", headers=volunteer["headers"])).status_code == 400
        assert (await client.post("/api/follow/ghost", headers=volunteer["headers"])).status_code == 404

    async def test_followers_hear_about_new_projects(self, client, db, ngo):
        fan = await register(client, "fan@example.com", "Fan")
        await client.post(f"/api/follow/{ngo['id']}", headers=fan["headers"])
        await client.post("/api/projects", json={
            "title": "Community kitchen helpers", "description": "Help us run a weekend community kitchen.",
        }, headers=ngo["headers"])
        notification = await db.notifications.find_one({"user_id": fan["id"], "type": "new_opportunity"})
        assert notification["message"] == "Community kitchen helpers"


class TestReviews:
    async def test_review_updates_rating(self, client, db, project, volunteer, ngo):
        other = await register(client, "second-ngo@example.com", "Second NGO")
        for reviewer, rating in ((ngo, 5), (other, 4)):
            response = await client.post(
                "/api/reviews",
                json={"reviewee_id": volunteer["id"], "project_id": project["id"], "rating": rating, "comment": "Great"},
                headers=reviewer["headers"],
            )
            assert response.status_code == 200

        stored = await db.users.find_one({"id": volunteer["id"]})
        assert stored["rating"] == 4.5
        assert stored["total_ratings"] == 2

        reviews = (await client.get(f"/api/reviews/user/{volunteer['id']}")).json()
        assert len(reviews) == 2
        assert {r["reviewer"]["id"] for r in reviews} == {ngo["id"], other["id"]}

    async def test_ngo_rating_is_stored_separately(self, client, db, project, volunteer, ngo):
        await client.post(
            "/api/reviews", json={"reviewee_id": ngo["id"], "project_id": project["id"], "rating": 3},
            headers=volunteer["headers"],
        )
        stored = await db.users.find_one({"id": ngo["id"]})
        assert stored["ngo_rating"] == 3
        project_reviews = (await client.get(f"/api/reviews/project/{project['id']}")).json()
        assert project_reviews[0]["rating"] == 3

    async def test_one_review_per_project(self, client, project, volunteer, ngo):
        payload = {"reviewee_id": volunteer["id"], "project_id": project["id"], "rating": 5}
        await client.post("/api/reviews", json=payload, headers=ngo["headers"])
        duplicate = await client.post("/api/reviews", json=payload, headers=ngo["headers"])
        assert duplicate.status_code == 409

    async def test_invalid_reviews(self, client, project, volunteer):
        self_review = await client.post(
            "/api/reviews", json={"reviewee_id": volunteer["id"], "project_id": project["id"], "rating": 5},
            headers=volunteer["headers"],
        )
        assert self_review.status_code == 400
        out_of_range = await client.post(
            "/api/reviews", json={"reviewee_id": project["ngo_id"], "project_id": project["id"], "rating": 6},
            headers=volunteer["headers"],
        )
        assert out_of_range.status_code == 422


class TestEndorsements:
    SKILL = {"category_id": "design", "subskill_id": "ui-ux"}

    async def test_endorse_counts_and_dedupes(self, client, volunteer, ngo):
        payload = {"user_id": volunteer["id"], **self.SKILL}
        first = (await client.post("/api/endorsements", json=payload, headers=ngo["headers"])).json()
        second = (await client.post("/api/endorsements", json=payload, headers=ngo["headers"])).json()
        assert first["already_endorsed"] is False
        assert second["already_endorsed"] is True

        summary = (await client.get(f"/api/endorsements/{volunteer['id']}", headers=ngo["headers"])).json()
        assert summary == {"counts": {"design:ui-ux": 1}, "endorsed_by_me": ["design:ui-ux"], "total": 1}

    async def test_remove_endorsement(self, client, volunteer, ngo):
        payload = {"user_id": volunteer["id"], **self.SKILL}
        await client.post("/api/endorsements", json=payload, headers=ngo["headers"])
        await client.request("DELETE", "/api/endorsements", json=payload, headers=ngo["headers"])
        assert (await client.get(f"/api/endorsements/{volunteer['id']}")).json()["total"] == 0

    async def test_cannot_endorse_self(self, client, volunteer):
        response = await client.post(
            "/api/endorsements", json={"user_id": volunteer["id"], **self.SKILL}, headers=volunteer["headers"]
        )
        assert response.status_code == 400


class TestReferrals:
    async def test_referral_lifecycle(self, client, db, volunteer):
        code = (await client.post("/api/referrals/code", headers=volunteer["headers"])).json()["code"]
        assert (await client.post("/api/referrals/code", headers=volunteer["headers"])).json()["code"] == code

        response = await client.post("/api/auth/register", json={
            "email": "friend@example.com", "name": "Friend", "password": "friend-pass", "referral_code": code.lower(),
        })
        friend_headers = {"Authorization": f"Bearer {response.json()['access_token']}"}
        stats = (await client.get("/api/referrals/stats", headers=volunteer["headers"])).json()
        assert stats["signed_up"] == 1
        assert stats["completed"] == 0

        await client.post("/api/auth/select-role", json={"role": "volunteer"}, headers=friend_headers)
        await client.post("/api/auth/complete-onboarding", headers=friend_headers)
        stats = (await client.get("/api/referrals/stats", headers=volunteer["headers"])).json()
        assert stats["completed"] == 1

    async def test_cannot_use_own_code(self, client, volunteer):
        code = (await client.post("/api/referrals/code", headers=volunteer["headers"])).json()["code"]
        response = await client.post("/api/referrals/apply", json={"code": code}, headers=volunteer["headers"])
        assert response.status_code == 400

    async def test_unknown_code(self, client, volunteer):
        response = await client.post("/api/referrals/apply", json={"code": "NOPE1234"}, headers=volunteer["headers"])
        assert response.status_code == 404

    async def test_bad_code_does_not_block_sign_up(self, client):
        response = await client.post("/api/auth/register", json={
            "email": "late@example.com", "name": "Late", "password": "late-pass-1", "referral_code": "BOGUS",
        })
        assert response.status_code == 200
