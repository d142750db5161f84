"""SQLite schema definitions for HeartSync."""

# SQL schema definitions
SCHEMA_VERSION = 1

CREATE_TABLES = [
    # Key-value items - one row per registry slot that has ever been written
    """
    CREATE TABLE IF NOT EXISTS kv_items (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # Change log - every write/remove appends a row, tagged with the writer's origin.
    # Other processes poll this to learn about external changes.
    """
    CREATE TABLE IF NOT EXISTS kv_changes (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        key TEXT NOT NULL,
        origin TEXT NOT NULL,
        changed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # Schema version tracking
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
]

CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_kv_changes_origin ON kv_changes(origin)",
]


def get_init_schema():
    """Return the statements needed to initialize a fresh database."""
    statements = list(CREATE_TABLES) + list(CREATE_INDEXES)
    statements.append(
        f"INSERT OR IGNORE INTO schema_version (version) VALUES ({SCHEMA_VERSION})"
    )
    return statements
