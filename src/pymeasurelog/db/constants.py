"""SQL statements and other database constants."""

MEASUREMENTS_TABLE = "measurements"

SCHEMA_META_DDL = """
CREATE TABLE IF NOT EXISTS schema_meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""

MEASUREMENTS_DDL = """
CREATE TABLE measurements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    value REAL NOT NULL CHECK (value >= 0),
    unit TEXT NOT NULL,
    captured_at INTEGER NOT NULL,
    session_id TEXT,
    note TEXT
)
"""

MEASUREMENTS_INDEXES = (
    """
    CREATE INDEX IF NOT EXISTS idx_measurements_captured_at
        ON measurements (captured_at DESC, id DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_measurements_session
        ON measurements (session_id)
    """,
)

SCHEMA_VERSION_SELECT = "SELECT value FROM schema_meta WHERE key = 'version'"

SCHEMA_VERSION_UPSERT = """
INSERT INTO schema_meta (key, value) VALUES ('version', ?)
ON CONFLICT (key) DO UPDATE SET value = excluded.value
"""

TABLE_EXISTS = "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?"

SEQUENCE_SELECT = "SELECT seq FROM sqlite_sequence WHERE name = ?"

SEQUENCE_UPDATE = "UPDATE sqlite_sequence SET seq = ? WHERE name = ?"

SEQUENCE_INSERT = "INSERT INTO sqlite_sequence (name, seq) VALUES (?, ?)"

MEASUREMENT_INSERT = """
INSERT INTO measurements (value, unit, captured_at, session_id, note)
VALUES (:value, :unit, :captured_at, :session_id, :note)
"""

MEASUREMENT_RESTORE = """
INSERT INTO measurements (id, value, unit, captured_at, session_id, note)
VALUES (:id, :value, :unit, :captured_at, :session_id, :note)
"""

MEASUREMENT_SELECT_ALL = """
SELECT id, value, unit, captured_at, session_id, note
FROM measurements
ORDER BY captured_at DESC, id DESC
"""

MEASUREMENT_SELECT_BY_SESSION = """
SELECT id, value, unit, captured_at, session_id, note
FROM measurements
WHERE session_id = ?
ORDER BY captured_at DESC, id DESC
"""

MEASUREMENT_SELECT_ONE = """
SELECT id, value, unit, captured_at, session_id, note
FROM measurements
WHERE id = ?
"""

MEASUREMENT_COUNT = "SELECT COUNT(*) FROM measurements"

MEASUREMENT_SESSIONS = """
SELECT session_id
FROM measurements
WHERE session_id IS NOT NULL
GROUP BY session_id
ORDER BY MAX(captured_at) DESC, session_id
"""

MEASUREMENT_ANNOTATE = "UPDATE measurements SET note = ? WHERE id = ?"

MEASUREMENT_DELETE = "DELETE FROM measurements WHERE id = ?"

MEASUREMENT_DELETE_SESSION = "DELETE FROM measurements WHERE session_id = ?"
