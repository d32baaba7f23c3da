import sqlite3
import threading
from typing import Optional, Dict, List, Tuple

class StorageDB:
    def __init__(self, db_path: str):
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self._lock:
            # State table: Key-Value store for ledger state
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')
            # Append-only notification log
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS events (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    call_hash TEXT,
                    name TEXT,
                    data TEXT
                )
            ''')
            self.conn.commit()

    # --- State Methods ---
    def get_state(self, key: str) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT value FROM state WHERE key = ?', (key,))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def get_state_by_prefix(self, prefix: str) -> Dict[str, str]:
        with self._lock:
            self.cursor.execute('SELECT key, value FROM state WHERE substr(key, 1, ?) = ?', (len(prefix), prefix))
            return {row[0]: row[1] for row in self.cursor.fetchall()}

    def commit_state(self, updates: Dict[str, str], deletes: List[str],
                     events: List[Tuple[str, str, str]] = ()):
        """
        Writes state changes and new events in one transaction.

        Args:
            updates: key -> value to upsert
            deletes: keys to remove
            events: (call_hash, name, json data) rows to append
        """
        with self._lock:
            try:
                self.cursor.executemany('DELETE FROM state WHERE key = ?', [(k,) for k in deletes])
                self.cursor.executemany(
                    'INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', list(updates.items())
                )
                self.cursor.executemany(
                    'INSERT INTO events (call_hash, name, data) VALUES (?, ?, ?)', list(events)
                )
                self.conn.commit()
            except sqlite3.Error:
                self.conn.rollback()
                raise

    # --- Event Methods ---
    def get_events(self, from_seq: int = 0, limit: int = 1000) -> List[Tuple[int, str, str, str]]:
        """Returns (seq, call_hash, name, data) rows with seq > from_seq."""
        with self._lock:
            self.cursor.execute(
                'SELECT seq, call_hash, name, data FROM events WHERE seq > ? ORDER BY seq LIMIT ?',
                (from_seq, limit)
            )
            return self.cursor.fetchall()

    def close(self):
        with self._lock:
            self.conn.close()
