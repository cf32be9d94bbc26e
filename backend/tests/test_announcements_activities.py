"""
Announcements feed and activity log.
"""


def _announce(client, headers, **fields):
    body = {"title": "Toplantı", "content": "Cuma 10:00 ofiste toplantı var."}
    body.update(fields)
    return client.post("/api/announcements", json=body, headers=headers)


class TestAnnouncements:

    def test_create_and_read(self, client, admin_headers, salesperson_headers):
        resp = _announce(client, admin_headers)
        assert resp.status_code == 201
        announcement_id = resp.json["announcement"]["id"]
        assert resp.json["announcement"]["priority"] == "medium"

        feed = client.get("/api/announcements", headers=salesperson_headers).json
        assert feed["count"] == 1
        assert feed["announcements"][0]["is_read"] is False
        assert client.get("/api/announcements/unread-count", headers=salesperson_headers).json["count"] == 1

        resp = client.post(f"/api/announcements/{announcement_id}/read", headers=salesperson_headers)
        assert resp.json["message"] == "Announcement marked as read"
        again = client.post(f"/api/announcements/{announcement_id}/read", headers=salesperson_headers)
        assert again.json["message"] == "Announcement was already read"

        assert client.get("/api/announcements/unread-count", headers=salesperson_headers).json["count"] == 0
        unread = client.get("/api/announcements?include_read=false", headers=salesperson_headers).json
        assert unread["count"] == 0

    def test_priority_ordering(self, client, admin_headers, salesperson_headers):
        _announce(client, admin_headers, title="Düşük", priority="low")
        _announce(client, admin_headers, title="Acil", priority="urgent")
        _announce(client, admin_headers, title="Yüksek", priority="high")

        titles = [a["title"] for a in client.get("/api/announcements", headers=salesperson_headers).json["announcements"]]
        assert titles == ["Acil", "Yüksek", "Düşük"]

    def test_targeted_announcement(
        self, client, admin_headers, salesperson, salesperson_headers, other_salesperson_headers
    ):
        resp = _announce(client, admin_headers, target_users=[salesperson.id])
        announcement_id = resp.json["announcement"]["id"]

        assert client.get("/api/announcements", headers=salesperson_headers).json["count"] == 1
        assert client.get("/api/announcements", headers=other_salesperson_headers).json["count"] == 0
        resp = client.post(f"/api/announcements/{announcement_id}/read", headers=other_salesperson_headers)
        assert resp.status_code == 404

    def test_expired_and_inactive_hidden(self, client, admin_headers, salesperson_headers):
        _announce(client, admin_headers, title="Eski", expires_at="2020-01-01T00:00:00Z")
        announcement_id = _announce(client, admin_headers, title="Kapalı").json["announcement"]["id"]
        client.put(f"/api/announcements/{announcement_id}", json={"is_active": False}, headers=admin_headers)

        assert client.get("/api/announcements", headers=salesperson_headers).json["count"] == 0
        assert client.get("/api/announcements/admin", headers=admin_headers).json["count"] == 2

    def test_admin_list_read_stats(self, client, admin_headers, salesperson_headers):
        announcement_id = _announce(client, admin_headers).json["announcement"]["id"]
        client.post(f"/api/announcements/{announcement_id}/read", headers=salesperson_headers)

        row = client.get("/api/announcements/admin", headers=admin_headers).json["announcements"][0]
        assert row["read_count"] == 1
        assert row["total_users"] == 2
        assert row["read_percentage"] == 50.0

    def test_validation(self, client, admin_headers):
        assert _announce(client, admin_headers, title="").status_code == 400
        assert _announce(client, admin_headers, priority="critical").status_code == 400
        assert _announce(client, admin_headers, type="neon").status_code == 400
        assert _announce(client, admin_headers, target_users=[9999]).status_code == 400
        assert _announce(client, admin_headers, expires_at="yarın").status_code == 400

    def test_update_and_delete(self, client, admin_headers):
        announcement_id = _announce(client, admin_headers).json["announcement"]["id"]
        resp = client.put(
            f"/api/announcements/{announcement_id}", json={"title": "Güncel"}, headers=admin_headers
        )
        assert resp.json["announcement"]["title"] == "Güncel"

        assert client.delete(f"/api/announcements/{announcement_id}", headers=admin_headers).status_code == 200
        assert client.delete(f"/api/announcements/{announcement_id}", headers=admin_headers).status_code == 404

    def test_salesperson_cannot_manage(self, client, salesperson_headers):
        assert _announce(client, salesperson_headers).status_code == 403
        assert client.get("/api/announcements/admin", headers=salesperson_headers).status_code == 403


class TestActivities:

    def test_own_feed_and_read_flags(self, client, salesperson, salesperson_headers):
        feed = client.get("/api/activities", headers=salesperson_headers).json
        assert feed["pagination"]["total"] >= 1
        assert {a["user"]["id"] for a in feed["activities"]} == {salesperson.id}

        unread = client.get("/api/activities/unread-count", headers=salesperson_headers).json["count"]
        assert unread == feed["pagination"]["total"]

        first_id = feed["activities"][0]["id"]
        resp = client.post(f"/api/activities/{first_id}/read", headers=salesperson_headers)
        assert resp.json["activity"]["is_read"] is True

        resp = client.post("/api/activities/mark-all-read", headers=salesperson_headers)
        assert resp.json["updated"] == unread - 1
        assert client.get("/api/activities/unread-count", headers=salesperson_headers).json["count"] == 0

    def test_cannot_mark_others_entry(self, client, admin_headers, salesperson_headers):
        admin_entry = client.get("/api/activities", headers=admin_headers).json["activities"][0]
        resp = client.post(f"/api/activities/{admin_entry['id']}/read", headers=salesperson_headers)
        assert resp.status_code == 404

    def test_action_filter(self, client, salesperson_headers):
        feed = client.get("/api/activities?action=login", headers=salesperson_headers).json
        assert all(a["action"] == "login" for a in feed["activities"])
        assert client.get("/api/activities?action=nothing", headers=salesperson_headers).json["pagination"]["total"] == 0

    def test_system_log_and_stats(self, client, admin, salesperson, admin_headers, salesperson_headers):
        resp = client.get(f"/api/activities/system?user={salesperson.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["pagination"]["total"] >= 1

        stats = client.get("/api/activities/stats?days=7", headers=admin_headers).json
        actions = {row["action"]: row["count"] for row in stats["by_action"]}
        assert actions["login"] >= 2
        assert stats["total"] >= 2

    def test_stats_days_bounds(self, client, admin_headers):
        assert client.get("/api/activities/stats?days=0", headers=admin_headers).status_code == 400
        assert client.get("/api/activities/stats?days=400", headers=admin_headers).status_code == 400
