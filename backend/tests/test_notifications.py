from propertyhub.models import UserNotification
from propertyhub.notifications import user_notifications
from propertyhub.writes import set_approval


def test_decisions_land_in_owner_inbox(db_session, taxonomy, owner, admin_user, make_property):
    p = make_property(title="Corner shop", status="inactive", approval_status="pending")

    set_approval(db_session, admin=admin_user, property_id=p.id, approval_status="rejected", rejection_reason="Blurry photos")
    set_approval(db_session, admin=admin_user, property_id=p.id, approval_status="approved")
    db_session.commit()

    inbox = user_notifications(db_session, owner.id)
    assert [n.kind for n in inbox] == ["property_approved", "property_rejected"]
    assert all(n.property_id == p.id and not n.is_read for n in inbox)
    assert "Blurry photos" in inbox[1].message
    assert user_notifications(db_session, admin_user.id) == []


def test_inbox_routes(client, db_session, taxonomy, make_property, auth_headers, admin_auth_headers):
    p = make_property(status="inactive", approval_status="pending")
    client.put(f"/properties/{p.id}/approval", headers=admin_auth_headers, json={"approvalStatus": "approved"})

    resp = client.get("/user/notifications", headers=auth_headers)
    assert resp.status_code == 200
    [item] = resp.json()["data"]
    assert item["kind"] == "property_approved"
    assert item["propertyId"] == p.id
    assert item["isRead"] is False

    resp = client.put(f"/user/notifications/{item['id']}/read", headers=auth_headers)
    assert resp.json() == {"success": True, "data": {"updated": True}}
    assert client.get("/user/notifications", headers=auth_headers).json()["data"][0]["isRead"] is True

    resp = client.delete(f"/user/notifications/{item['id']}", headers=auth_headers)
    assert resp.json()["data"] == {"deleted": True}
    assert client.get("/user/notifications", headers=auth_headers).json()["data"] == []

    resp = client.delete(f"/user/notifications/{item['id']}", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["data"] == {"deleted": False}


def test_inbox_is_scoped_to_owner(client, db_session, taxonomy, owner, make_property, other_auth_headers):
    n = UserNotification(user_id=owner.id, kind="property_approved", title="Approved", message="")
    db_session.add(n)
    db_session.commit()

    assert client.get("/user/notifications", headers=other_auth_headers).json()["data"] == []
    resp = client.put(f"/user/notifications/{n.id}/read", headers=other_auth_headers)
    assert resp.json()["data"] == {"updated": False}
    resp = client.delete(f"/user/notifications/{n.id}", headers=other_auth_headers)
    assert resp.json()["data"] == {"deleted": False}

    db_session.refresh(n)
    assert n.is_read is False


def test_inbox_bad_id_and_auth(client, auth_headers):
    assert client.get("/user/notifications").status_code == 401

    resp = client.put("/user/notifications/abc/read", headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Invalid notification ID"}
    assert client.delete("/user/notifications/0", headers=auth_headers).status_code == 400
