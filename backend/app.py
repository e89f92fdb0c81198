# app.py
import os
import ssl
import logging
from datetime import date, datetime, time

import click
import pg8000

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import RequestEntityTooLarge

from backend.recurrence import (
    DEFAULT_STATUS,
    RecurrenceTemplate,
    StorageError,
    TemplateNotFound,
    clean_template_payload,
    generate_all_active,
    generate_from_template,
)

# ------------------------------------------------------------------------------
# App + CORS
# ------------------------------------------------------------------------------
app = Flask(__name__)

raw_origins = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
)
for sep in ("|", " "):
    raw_origins = raw_origins.replace(sep, ",")
ALLOWED = [o.strip() for o in raw_origins.split(",") if o.strip()]
CORS(app, resources={r"/*": {"origins": ALLOWED}})

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# ------------------------------------------------------------------------------
# Config
# ------------------------------------------------------------------------------
PGHOST = os.getenv("PGHOST")
PGDATABASE = os.getenv("PGDATABASE")
PGUSER = os.getenv("PGUSER")
PGPASSWORD = os.getenv("PGPASSWORD")
PGPORT = int(os.getenv("PGPORT", "5432"))
PGSSL = os.getenv("PGSSL", "true").strip().lower() not in ("0", "false", "no", "off")

PUBLIC_BASE = os.getenv("PUBLIC_BASE", "http://localhost:5173")
DEFAULT_GENERATE_WEEKS_AHEAD = int(os.getenv("DEFAULT_GENERATE_WEEKS_AHEAD", "12"))

app.config["MAX_CONTENT_LENGTH"] = 2 * 1024 * 1024

# ------------------------------------------------------------------------------
# Optional admin token gate (disable by leaving ADMIN_API_TOKEN unset)
# ------------------------------------------------------------------------------
ADMIN_TOKEN = os.getenv("ADMIN_API_TOKEN")

def require_admin_token():
    if not ADMIN_TOKEN:
        return True
    tok = request.headers.get("X-Admin-Token") or request.args.get("t")
    return tok == ADMIN_TOKEN

@app.before_request
def _gate():
    protected = request.path.startswith("/admin/") or request.path == "/migrate"
    if protected and request.method != "OPTIONS" and not require_admin_token():
        return jsonify({"error": "unauthorized"}), 401

@app.errorhandler(RequestEntityTooLarge)
def handle_413(_e):
    return jsonify({"error": "Request body too large"}), 413

# ------------------------------------------------------------------------------
# DB conn
# ------------------------------------------------------------------------------
def getconn():
    if not all([PGHOST, PGDATABASE, PGUSER, PGPASSWORD]):
        raise RuntimeError("DB env vars missing: PGHOST, PGDATABASE, PGUSER, PGPASSWORD")
    kwargs = {}
    if PGSSL:
        kwargs["ssl_context"] = ssl.create_default_context()
    return pg8000.connect(
        host=PGHOST,
        database=PGDATABASE,
        user=PGUSER,
        password=PGPASSWORD,
        port=PGPORT,
        **kwargs,
    )

def to_json_value(v):
    if isinstance(v, (datetime, date, time)):
        return v.isoformat()
    return v

def row_dict(columns, row):
    return {c: to_json_value(v) for c, v in zip(columns, row)}

# ------------------------------------------------------------------------------
# Recurring-event storage (template repository + event store over pg8000)
# ------------------------------------------------------------------------------
TEMPLATE_COLUMNS = (
    "id", "title", "description", "event_type", "venue_id",
    "recurrence_type", "day_of_week", "week_of_month", "day_of_month",
    "event_time", "start_date", "end_date", "generate_weeks_ahead",
    "default_image_url", "default_status", "is_active",
    "created_at", "updated_at",
)
TEMPLATE_SELECT = ", ".join(f"re.{c}" for c in TEMPLATE_COLUMNS)

EVENT_COLUMNS = (
    "id", "title", "description", "event_type", "venue_id",
    "event_date", "event_time", "image_url", "status",
    "recurring_event_id", "created_at", "updated_at",
)
EVENT_RETURNING = ", ".join(EVENT_COLUMNS)


class PgTemplateRepository:
    def __init__(self, conn):
        self.conn = conn

    def get_template(self, template_id):
        cur = self.conn.cursor()
        cur.execute(f"SELECT {TEMPLATE_SELECT} FROM recurring_events re WHERE re.id=%s;", (template_id,))
        row = cur.fetchone()
        if not row:
            return None
        return RecurrenceTemplate.from_row(dict(zip(TEMPLATE_COLUMNS, row)))

    def list_active_templates(self):
        cur = self.conn.cursor()
        cur.execute(f"SELECT {TEMPLATE_SELECT} FROM recurring_events re WHERE re.is_active = TRUE ORDER BY re.id;")
        return [RecurrenceTemplate.from_row(dict(zip(TEMPLATE_COLUMNS, r))) for r in cur.fetchall()]


class PgEventStore:
    """
    Event rows written by the generator. Each insert commits on its own and
    relies on UNIQUE (recurring_event_id, event_date) to stay idempotent.
    """

    def __init__(self, conn):
        self.conn = conn

    def occurrence_exists(self, template_id, event_date) -> bool:
        try:
            cur = self.conn.cursor()
            cur.execute(
                "SELECT 1 FROM events WHERE recurring_event_id=%s AND event_date=%s LIMIT 1;",
                (template_id, event_date),
            )
            return cur.fetchone() is not None
        except pg8000.exceptions.Error as e:
            raise StorageError(f"existence check failed for template {template_id} on {event_date}: {e}") from e

    def insert_occurrence(self, fields: dict):
        try:
            cur = self.conn.cursor()
            cur.execute(
                f"""
                INSERT INTO events (
                  title, description, event_type, venue_id, event_date, event_time,
                  image_url, status, recurring_event_id
                ) VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s)
                ON CONFLICT (recurring_event_id, event_date) DO NOTHING
                RETURNING {EVENT_RETURNING};
                """,
                (
                    fields["title"], fields["description"], fields["event_type"],
                    fields["venue_id"], fields["event_date"], fields["event_time"],
                    fields["image_url"], fields["status"], fields["recurring_event_id"],
                ),
            )
            row = cur.fetchone()
            self.conn.commit()
        except pg8000.exceptions.Error as e:
            self.conn.rollback()
            raise StorageError(
                f"insert failed for template {fields.get('recurring_event_id')} on {fields.get('event_date')}: {e}"
            ) from e
        return row_dict(EVENT_COLUMNS, row) if row else None

# ------------------------------------------------------------------------------
# Migrate
# ------------------------------------------------------------------------------
@app.route("/migrate", methods=["POST"])
def migrate():
    """
    Creates the schema from scratch or brings an existing one up to date.
    Idempotent: safe to run repeatedly.
    """
    conn = getconn()
    try:
        cur = conn.cursor()

        cur.execute("""
            CREATE TABLE IF NOT EXISTS venues (
              id SERIAL PRIMARY KEY,
              name TEXT NOT NULL,
              address TEXT,
              city TEXT,
              postcode TEXT,
              phone TEXT,
              email TEXT,
              website TEXT,
              description TEXT,
              image_url TEXT,
              is_active BOOLEAN DEFAULT true,
              created_at TIMESTAMP DEFAULT now(),
              updated_at TIMESTAMP
            );
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS recurring_events (
              id SERIAL PRIMARY KEY,
              title TEXT NOT NULL,
              description TEXT,
              event_type TEXT,
              venue_id INTEGER REFERENCES venues(id) ON DELETE SET NULL,
              recurrence_type TEXT NOT NULL
                CHECK (recurrence_type IN ('weekly', 'biweekly', 'monthly')),
              day_of_week INTEGER CHECK (day_of_week BETWEEN 0 AND 6),
              week_of_month INTEGER CHECK (week_of_month BETWEEN 1 AND 5),
              day_of_month INTEGER CHECK (day_of_month BETWEEN 1 AND 31),
              event_time TIME NOT NULL,
              start_date DATE NOT NULL,
              end_date DATE,
              generate_weeks_ahead INTEGER DEFAULT 12,
              default_image_url TEXT,
              default_status TEXT DEFAULT 'scheduled',
              is_active BOOLEAN DEFAULT true,
              created_at TIMESTAMP DEFAULT now(),
              updated_at TIMESTAMP
            );
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS events (
              id SERIAL PRIMARY KEY,
              title TEXT NOT NULL,
              description TEXT,
              event_type TEXT,
              venue_id INTEGER REFERENCES venues(id) ON DELETE SET NULL,
              event_date DATE NOT NULL,
              event_time TIME,
              image_url TEXT,
              status TEXT DEFAULT 'scheduled',
              recurring_event_id INTEGER REFERENCES recurring_events(id) ON DELETE SET NULL,
              created_at TIMESTAMP DEFAULT now(),
              updated_at TIMESTAMP
            );
        """)
        # Older databases created events before recurring generation existed.
        # The unique index is what ON CONFLICT (recurring_event_id, event_date) targets.
        cur.execute("""
            ALTER TABLE events ADD COLUMN IF NOT EXISTS recurring_event_id INTEGER
              REFERENCES recurring_events(id) ON DELETE SET NULL;
        """)
        cur.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_events_recurring_date
              ON events(recurring_event_id, event_date);
        """)

        cur.execute("CREATE INDEX IF NOT EXISTS idx_events_date ON events(event_date);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_events_venue ON events(venue_id);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_recurring_events_active ON recurring_events(is_active);")

        conn.commit()
        return jsonify({"status": "ok", "message": "Database schema created/verified successfully."})
    except Exception as e:
        conn.rollback()
        logger.exception("migrate failed")
        return jsonify({"status": "error", "message": str(e)}), 500
    finally:
        conn.close()

# ------------------------------------------------------------------------------
# Health / diagnostics
# ------------------------------------------------------------------------------
@app.get("/doctor")
def doctor():
    try:
        if all([PGHOST, PGDATABASE, PGUSER, PGPASSWORD]):
            conn = getconn()
            cur = conn.cursor()
            cur.execute("SELECT 1;")
            val = int(cur.fetchone()[0])
            cur.close()
            conn.close()
        else:
            val = 1
        return jsonify({"status": "ok", "db": val})
    except Exception as e:
        logger.exception("doctor failed")
        return jsonify({"status": "error", "message": str(e)}), 500

@app.get("/version")
def version():
    routes = [
        # health/diag
        "GET /doctor",
        "GET /version",
        "POST /migrate",

        # public
        "GET /venues?active=true",
        "GET /venues/<id>",
        "GET /events?upcoming=true|past=true&limit=",
        "GET /events/<id>",

        # admin venues/events
        "POST /admin/venues",
        "PUT /admin/venues/<id>",
        "DELETE /admin/venues/<id>",
        "POST /admin/events",
        "PUT /admin/events/<id>",
        "DELETE /admin/events/<id>",

        # recurring events
        "GET /admin/recurring-events",
        "GET /admin/recurring-events/<id>",
        "POST /admin/recurring-events",
        "PUT /admin/recurring-events/<id>",
        "DELETE /admin/recurring-events/<id>",
        "POST /admin/recurring-events/<id>/generate",
        "POST /admin/recurring-events/generate-all",
    ]
    return jsonify({
        "app": "quiz-events-api",
        "build": datetime.utcnow().strftime("%Y-%m-%dT%H:%M:%SZ"),
        "env": {
            "pg_host": bool(PGHOST),
            "pg_db": bool(PGDATABASE),
            "pg_user": bool(PGUSER),
            "pg_ssl": PGSSL,
            "admin_token": bool(ADMIN_TOKEN),
            "public_base": PUBLIC_BASE or None,
            "cors_origins": ALLOWED,
            "default_generate_weeks_ahead": DEFAULT_GENERATE_WEEKS_AHEAD,
        },
        "routes": routes,
    })

# ------------------------------------------------------------------------------
# Venues
# ------------------------------------------------------------------------------
VENUE_COLUMNS = (
    "id", "name", "address", "city", "postcode", "phone", "email",
    "website", "description", "image_url", "is_active", "created_at", "updated_at",
)
VENUE_FIELDS = ("name", "address", "city", "postcode", "phone", "email", "website", "description", "image_url")

def _venue_params(data):
    vals = [(str(data.get(k)).strip() or None) if data.get(k) is not None else None for k in VENUE_FIELDS]
    return vals + [data.get("is_active") is not False]

@app.get("/venues")
def list_venues():
    active = request.args.get("active")
    conn = getconn()
    try:
        cur = conn.cursor()
        sql = f"SELECT {', '.join(VENUE_COLUMNS)} FROM venues"
        if active == "true":
            sql += " WHERE is_active = true"
        cur.execute(sql + " ORDER BY name ASC;")
        return jsonify([row_dict(VENUE_COLUMNS, r) for r in cur.fetchall()])
    finally:
        conn.close()

@app.get("/venues/<int:venue_id>")
def get_venue(venue_id):
    conn = getconn()
    try:
        cur = conn.cursor()
        cur.execute(f"SELECT {', '.join(VENUE_COLUMNS)} FROM venues WHERE id=%s;", (venue_id,))
        row = cur.fetchone()
        if not row:
            return jsonify({"error": "Venue not found"}), 404
        return jsonify(row_dict(VENUE_COLUMNS, row))
    finally:
        conn.close()

@app.post("/admin/venues")
def admin_create_venue():
    data = request.json or {}
    if not str(data.get("name") or "").strip():
        return jsonify({"error": "Venue name is required"}), 400

    conn = getconn()
    try:
        cur = conn.cursor()
        cur.execute(
            f"""
            INSERT INTO venues ({', '.join(VENUE_FIELDS)}, is_active)
            VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
            RETURNING {', '.join(VENUE_COLUMNS)};
            """,
            tuple(_venue_params(data)),
        )
        row = cur.fetchone()
        conn.commit()
        return jsonify(row_dict(VENUE_COLUMNS, row)), 201
    except Exception as e:
        conn.rollback()
        logger.exception("admin_create_venue failed")
        return jsonify({"error": str(e)}), 500
    finally:
        conn.close()

@app.put("/admin/venues/<int:venue_id>")
def admin_update_venue(venue_id):
    data = request.json or {}
    if not str(data.get("name") or "").strip():
        return jsonify({"error": "Venue name is required"}), 400

    conn = getconn()
    try:
        cur = conn.cursor()
        sets = ", ".join(f"{k}=%s" for k in VENUE_FIELDS)
        cur.execute(
            f"""
            UPDATE venues SET {sets}, is_active=%s, updated_at=NOW()
            WHERE id=%s
            RETURNING {', '.join(VENUE_COLUMNS)};
            """,
            tuple(_venue_params(data) + [venue_id]),
        )
        row = cur.fetchone()
        conn.commit()
        if not row:
            return jsonify({"error": "Venue not found"}), 404
        return jsonify(row_dict(VENUE_COLUMNS, row))
    except Exception as e:
        conn.rollback()
        logger.exception(f"admin_update_venue {venue_id} failed")
        return jsonify({"error": str(e)}), 500
    finally:
        conn.close()

@app.delete("/admin/venues/<int:venue_id>")
def admin_delete_venue(venue_id):
    conn = getconn()
    try:
        cur = conn.cursor()
        cur.execute("DELETE FROM venues WHERE id=%s;", (venue_id,))
        conn.commit()
        if cur.rowcount == 0:
            return jsonify({"error": "Venue not found"}), 404
        return jsonify({"status": "ok", "message": "Venue deleted successfully"})
    except Exception as e:
        conn.rollback()
        logger.exception(f"admin_delete_venue {venue_id} failed")
        return jsonify({"error": str(e)}), 500
    finally:
        conn.close()

# ------------------------------------------------------------------------------
# Events
# ------------------------------------------------------------------------------
EVENT_FIELDS = ("title", "description", "event_type", "venue_id", "event_date", "event_time", "status", "image_url")

def _event_params(data):
    return [
        str(data.get("title") or "").strip(),
        data.get("description"),
        data.get("event_type"),
        data.get("venue_id") or None,
        data.get("event_date"),
        data.get("event_time") or None,
        data.get("status") or DEFAULT_STATUS,
        data.get("image_url") or None,
    ]

def _event_error(data):
    missing = [k for k in ("title", "event_date") if not str(data.get(k) or "").strip()]
    if missing:
        return f"Missing fields: {', '.join(missing)}"
    try:
        date.fromisoformat(str(data["event_date"]).strip())
    except ValueError:
        return "event_date must be a YYYY-MM-DD date"
    return None

@app.get("/events")
def list_events():
    upcoming = request.args.get("upcoming")
    past = request.args.get("past")
    limit = request.args.get("limit")

    cols = [f"e.{c}" for c in EVENT_COLUMNS] + ["v.name", "v.city"]
    names = EVENT_COLUMNS + ("venue_name", "venue_city")
    sql = f"SELECT {', '.join(cols)} FROM events e LEFT JOIN venues v ON e.venue_id = v.id"
    params = []
    if upcoming == "true":
        sql += " WHERE e.event_date >= CURRENT_DATE"
    elif past == "true":
        sql += " WHERE e.event_date < CURRENT_DATE"
    sql += " ORDER BY e.event_date DESC, e.id DESC"
    if limit:
        try:
            params.append(max(int(limit), 0))
        except ValueError:
            return jsonify({"error": "limit must be an integer"}), 400
        sql += " LIMIT %s"

    conn = getconn()
    try:
        cur = conn.cursor()
        cur.execute(sql, tuple(params))
        return jsonify([row_dict(names, r) for r in cur.fetchall()])
    finally:
        conn.close()

@app.get("/events/<int:eid>")
def event_details(eid):
    cols = [f"e.{c}" for c in EVENT_COLUMNS] + ["v.name", "v.address", "v.city"]
    names = EVENT_COLUMNS + ("venue_name", "venue_address", "venue_city")
    conn = getconn()
    try:
        cur = conn.cursor()
        cur.execute(
            f"SELECT {', '.join(cols)} FROM events e LEFT JOIN venues v ON e.venue_id = v.id WHERE e.id=%s;",
            (eid,),
        )
        row = cur.fetchone()
        if not row:
            return jsonify({"error": "Event not found"}), 404
        return jsonify(row_dict(names, row))
    finally:
        conn.close()

@app.post("/admin/events")
def admin_create_event():
    d = request.json or {}
    error = _event_error(d)
    if error:
        return jsonify({"error": error}), 400

    conn = getconn()
    try:
        cur = conn.cursor()
        cur.execute(
            f"""
            INSERT INTO events ({', '.join(EVENT_FIELDS)})
            VALUES (%s,%s,%s,%s,%s,%s,%s,%s)
            RETURNING {EVENT_RETURNING};
            """,
            tuple(_event_params(d)),
        )
        row = cur.fetchone()
        conn.commit()
        logger.info("Event created id=%s date=%s", row[0], d.get("event_date"))
        return jsonify(row_dict(EVENT_COLUMNS, row)), 201
    except Exception as e:
        conn.rollback()
        logger.exception("admin_create_event failed")
        return jsonify({"error": str(e)}), 500
    finally:
        conn.close()

@app.put("/admin/events/<int:eid>")
def admin_update_event(eid):
    d = request.json or {}
    error = _event_error(d)
    if error:
        return jsonify({"error": error}), 400

    conn = getconn()
    try:
        cur = conn.cursor()
        sets = ", ".join(f"{k}=%s" for k in EVENT_FIELDS)
        cur.execute(
            f"UPDATE events SET {sets}, updated_at=NOW() WHERE id=%s RETURNING {EVENT_RETURNING};",
            tuple(_event_params(d) + [eid]),
        )
        row = cur.fetchone()
        conn.commit()
        if not row:
            return jsonify({"error": "Event not found"}), 404
        return jsonify(row_dict(EVENT_COLUMNS, row))
    except pg8000.exceptions.IntegrityError:
        conn.rollback()
        return jsonify({"error": "Another event from the same recurring series already exists on that date."}), 409
    except Exception as e:
        conn.rollback()
        logger.exception("admin_update_event failed")
        return jsonify({"error": str(e)}), 500
    finally:
        conn.close()

@app.delete("/admin/events/<int:eid>")
def admin_delete_event(eid):
    conn = getconn()
    try:
        cur = conn.cursor()
        cur.execute("DELETE FROM events WHERE id=%s;", (eid,))
        conn.commit()
        if cur.rowcount == 0:
            return jsonify({"error": "Event not found"}), 404
        return jsonify({"status": "ok", "message": "Event deleted successfully"})
    except Exception as e:
        conn.rollback()
        logger.exception(f"admin_delete_event {eid} failed")
        return jsonify({"error": str(e)}), 500
    finally:
        conn.close()

# ------------------------------------------------------------------------------
# Recurring events (templates + generation)
# ------------------------------------------------------------------------------
TEMPLATE_FIELDS = TEMPLATE_COLUMNS[1:16]

def _template_json(row):
    return row_dict(TEMPLATE_COLUMNS + ("venue_name",), row)

@app.get("/admin/recurring-events")
def admin_list_recurring_events():
    conn = getconn()
    try:
        cur = conn.cursor()
        cur.execute(f"""
            SELECT {TEMPLATE_SELECT}, v.name
            FROM recurring_events re
            LEFT JOIN venues v ON re.venue_id = v.id
            ORDER BY re.created_at DESC, re.id DESC;
        """)
        return jsonify([_template_json(r) for r in cur.fetchall()])
    finally:
        conn.close()

@app.get("/admin/recurring-events/<int:rid>")
def admin_get_recurring_event(rid):
    conn = getconn()
    try:
        cur = conn.cursor()
        cur.execute(f"""
            SELECT {TEMPLATE_SELECT}, v.name
            FROM recurring_events re
            LEFT JOIN venues v ON re.venue_id = v.id
            WHERE re.id=%s;
        """, (rid,))
        row = cur.fetchone()
        if not row:
            return jsonify({"error": "Recurring event not found"}), 404
        return jsonify(_template_json(row))
    finally:
        conn.close()

@app.post("/admin/recurring-events")
def admin_create_recurring_event():
    clean, errors = clean_template_payload(request.json or {}, DEFAULT_GENERATE_WEEKS_AHEAD)
    if errors:
        return jsonify({"error": "; ".join(errors), "errors": errors}), 400

    conn = getconn()
    try:
        cur = conn.cursor()
        cur.execute(
            f"""
            INSERT INTO recurring_events ({', '.join(TEMPLATE_FIELDS)})
            VALUES ({', '.join(['%s'] * len(TEMPLATE_FIELDS))})
            RETURNING {', '.join(TEMPLATE_COLUMNS)};
            """,
            tuple(clean[k] for k in TEMPLATE_FIELDS),
        )
        row = cur.fetchone()
        conn.commit()
        logger.info("[recurring.create] id=%s type=%s", row[0], clean["recurrence_type"])
        return jsonify(row_dict(TEMPLATE_COLUMNS, row)), 201
    except Exception as e:
        conn.rollback()
        logger.exception("admin_create_recurring_event failed")
        return jsonify({"error": str(e)}), 500
    finally:
        conn.close()

@app.put("/admin/recurring-events/<int:rid>")
def admin_update_recurring_event(rid):
    clean, errors = clean_template_payload(request.json or {}, DEFAULT_GENERATE_WEEKS_AHEAD)
    if errors:
        return jsonify({"error": "; ".join(errors), "errors": errors}), 400

    conn = getconn()
    try:
        cur = conn.cursor()
        sets = ", ".join(f"{k}=%s" for k in TEMPLATE_FIELDS)
        cur.execute(
            f"""
            UPDATE recurring_events SET {sets}, updated_at=NOW()
            WHERE id=%s
            RETURNING {', '.join(TEMPLATE_COLUMNS)};
            """,
            tuple(clean[k] for k in TEMPLATE_FIELDS) + (rid,),
        )
        row = cur.fetchone()
        conn.commit()
        if not row:
            return jsonify({"error": "Recurring event not found"}), 404
        return jsonify(row_dict(TEMPLATE_COLUMNS, row))
    except Exception as e:
        conn.rollback()
        logger.exception(f"admin_update_recurring_event {rid} failed")
        return jsonify({"error": str(e)}), 500
    finally:
        conn.close()

@app.delete("/admin/recurring-events/<int:rid>")
def admin_delete_recurring_event(rid):
    conn = getconn()
    try:
        cur = conn.cursor()
        cur.execute("DELETE FROM recurring_events WHERE id=%s;", (rid,))
        conn.commit()
        if cur.rowcount == 0:
            return jsonify({"error": "Recurring event not found"}), 404
        return jsonify({"status": "ok", "message": "Recurring event deleted successfully"})
    except Exception as e:
        conn.rollback()
        logger.exception(f"admin_delete_recurring_event {rid} failed")
        return jsonify({"error": str(e)}), 500
    finally:
        conn.close()

@app.post("/admin/recurring-events/<int:rid>/generate")
def admin_generate_recurring_event(rid):
    conn = getconn()
    try:
        repo = PgTemplateRepository(conn)
        template = repo.get_template(rid)
        if template is None:
            return jsonify({"error": "Recurring event not found"}), 404
        if not template.is_active:
            return jsonify({"error": "Recurring event is inactive"}), 409

        result = generate_from_template(rid, repo, PgEventStore(conn))
        return jsonify({
            "message": f"Generated {result['count']} events",
            "count": result["count"],
            "events": result["occurrences"],
        })
    except TemplateNotFound:
        return jsonify({"error": "Recurring event not found"}), 404
    except StorageError as e:
        logger.exception(f"admin_generate_recurring_event {rid} failed")
        return jsonify({"error": str(e)}), 500
    finally:
        conn.close()

@app.post("/admin/recurring-events/generate-all")
def admin_generate_all_recurring_events():
    conn = getconn()
    try:
        results = generate_all_active(PgTemplateRepository(conn), PgEventStore(conn))
        total = sum(r["count"] for r in results)
        return jsonify({
            "message": f"Generated {total} events from {len(results)} recurring templates",
            "count": total,
            "templates": results,
        })
    except StorageError as e:
        logger.exception("admin_generate_all_recurring_events failed")
        return jsonify({"error": str(e)}), 500
    finally:
        conn.close()

@app.cli.command("generate-recurring")
@click.option(
    "--today",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Reference date (YYYY-MM-DD); defaults to the current date.",
)
def generate_recurring_command(today):
    """Materialize upcoming events for every active recurring template."""
    ref = today.date() if today else None
    conn = getconn()
    try:
        results = generate_all_active(PgTemplateRepository(conn), PgEventStore(conn), today=ref)
    except StorageError as e:
        raise click.ClickException(f"generation stopped: {e}") from e
    finally:
        conn.close()
    for r in results:
        click.echo(f"{r['id']:>5}  {r['count']:>3} new  {r['title']}")
    click.echo(f"Generated {sum(r['count'] for r in results)} event(s).")

# ------------------------------------------------------------------------------
# Entrypoint
# ------------------------------------------------------------------------------
if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 8080)))
