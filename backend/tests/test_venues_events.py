import json
from datetime import date, datetime, time

import backend.app as appmod


class DummyCursor:
    def __init__(self, rows, rowcount=1, error=None):
        self._rows = rows
        self.rowcount = rowcount
        self._error = error
        self.executed = []

    def execute(self, sql, params=()):
        self.executed.append((sql, params))
        if self._error:
            raise self._error
        return None

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return self._rows


class DummyConn:
    def __init__(self, rows=(), rowcount=1, error=None):
        self.cur = DummyCursor(list(rows), rowcount, error)
        self.rolled_back = False

    def cursor(self):
        return self.cur

    def commit(self):
        pass

    def rollback(self):
        self.rolled_back = True

    def close(self):
        pass


def event_row(eid=1, recurring_event_id=None, **extra):
    return (
        eid, "Quiz Night", None, "quiz", 3, date(2026, 10, 20), time(19, 30),
        None, "scheduled", recurring_event_id, datetime(2026, 10, 1, 12, 0), None,
    ) + tuple(extra.values())


def test_list_events_serializes_dates(monkeypatch):
    rows = [event_row(1, 4, venue_name="The Crown", venue_city="Leeds")]
    conn = DummyConn(rows)
    monkeypatch.setattr(appmod, "getconn", lambda: conn)

    client = appmod.app.test_client()
    res = client.get("/events?upcoming=true&limit=5")
    assert res.status_code == 200
    j = json.loads(res.data)
    assert j[0]["event_date"] == "2026-10-20"
    assert j[0]["event_time"] == "19:30:00"
    assert j[0]["recurring_event_id"] == 4
    assert j[0]["venue_name"] == "The Crown"
    sql, params = conn.cur.executed[0]
    assert "e.event_date >= CURRENT_DATE" in sql
    assert params == (5,)


def test_list_events_rejects_bad_limit(monkeypatch):
    client = appmod.app.test_client()
    res = client.get("/events?limit=lots")
    assert res.status_code == 400


def test_event_detail_404(monkeypatch):
    monkeypatch.setattr(appmod, "getconn", lambda: DummyConn([]))
    client = appmod.app.test_client()
    assert client.get("/events/77").status_code == 404


def test_create_event_requires_title_and_date(monkeypatch):
    monkeypatch.setattr(appmod, "ADMIN_TOKEN", None)
    client = appmod.app.test_client()
    res = client.post("/admin/events", json={"title": "Quiz"})
    assert res.status_code == 400
    assert "event_date" in json.loads(res.data)["error"]


def test_create_event_defaults_to_scheduled(monkeypatch):
    monkeypatch.setattr(appmod, "ADMIN_TOKEN", None)
    conn = DummyConn([event_row(12)])
    monkeypatch.setattr(appmod, "getconn", lambda: conn)
    client = appmod.app.test_client()
    res = client.post("/admin/events", json={"title": "Quiz Night", "event_date": "2026-10-20"})
    assert res.status_code == 201
    _, params = conn.cur.executed[0]
    assert params[6] == "scheduled"
    assert json.loads(res.data)["id"] == 12


def test_delete_venue(monkeypatch):
    monkeypatch.setattr(appmod, "ADMIN_TOKEN", None)
    conn = DummyConn(rowcount=1)
    monkeypatch.setattr(appmod, "getconn", lambda: conn)
    client = appmod.app.test_client()
    res = client.delete("/admin/venues/2")
    assert res.status_code == 200
    assert conn.cur.executed[0] == ("DELETE FROM venues WHERE id=%s;", (2,))


def test_delete_missing_venue_404(monkeypatch):
    monkeypatch.setattr(appmod, "ADMIN_TOKEN", None)
    monkeypatch.setattr(appmod, "getconn", lambda: DummyConn(rowcount=0))
    client = appmod.app.test_client()
    assert client.delete("/admin/venues/2").status_code == 404


def test_update_missing_venue_404(monkeypatch):
    monkeypatch.setattr(appmod, "ADMIN_TOKEN", None)
    monkeypatch.setattr(appmod, "getconn", lambda: DummyConn([]))
    client = appmod.app.test_client()
    res = client.put("/admin/venues/5", json={"name": "The Crown"})
    assert res.status_code == 404


def test_list_active_venues(monkeypatch):
    row = (1, "The Crown", "1 High St", "Leeds", "LS1", None, None, None, None, None, True, None, None)
    conn = DummyConn([row])
    monkeypatch.setattr(appmod, "getconn", lambda: conn)
    client = appmod.app.test_client()
    res = client.get("/venues?active=true")
    assert json.loads(res.data) == [{
        "id": 1, "name": "The Crown", "address": "1 High St", "city": "Leeds", "postcode": "LS1",
        "phone": None, "email": None, "website": None, "description": None, "image_url": None,
        "is_active": True, "created_at": None, "updated_at": None,
    }]
    assert "WHERE is_active = true" in conn.cur.executed[0][0]


def test_doctor_without_db_config(monkeypatch):
    monkeypatch.setattr(appmod, "PGHOST", None)
    client = appmod.app.test_client()
    res = client.get("/doctor")
    assert json.loads(res.data) == {"status": "ok", "db": 1}


def test_create_event_with_non_string_fields_is_json_400(monkeypatch):
    monkeypatch.setattr(appmod, "ADMIN_TOKEN", None)

    def no_db():
        raise AssertionError("database should not be touched")

    monkeypatch.setattr(appmod, "getconn", no_db)
    client = appmod.app.test_client()
    res = client.post("/admin/events", json={"title": "Quiz", "event_date": 20261020})
    assert res.status_code == 400
    assert json.loads(res.data) == {"error": "event_date must be a YYYY-MM-DD date"}

    res = client.put("/admin/events/1", json={"title": 5, "event_date": "tuesday"})
    assert res.status_code == 400
    assert json.loads(res.data)["error"] == "event_date must be a YYYY-MM-DD date"


def test_venue_name_must_be_present(monkeypatch):
    monkeypatch.setattr(appmod, "ADMIN_TOKEN", None)
    client = appmod.app.test_client()
    res = client.post("/admin/venues", json={"name": 0})
    assert res.status_code == 400
    assert json.loads(res.data)["error"] == "Venue name is required"
