import sqlite3
from datetime import datetime
from typing import Optional

from models import Event, Room, User


class Database:
    def __init__(self, db_name="events.db"):
        """
        Initialize SQLite database connection.
        The in-memory schedule is the source of truth; this only persists it.
        """
        self.conn = sqlite3.connect(db_name, check_same_thread=False)
        self.create_tables()

    def create_tables(self):
        """Create database tables with appropriate indexes."""
        cursor = self.conn.cursor()
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                username TEXT NOT NULL UNIQUE,
                password TEXT NOT NULL,
                role TEXT NOT NULL CHECK(role IN ('organizer', 'speaker', 'attendee')),
                name TEXT
            )
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS rooms (
                id TEXT PRIMARY KEY,
                room_num INTEGER NOT NULL UNIQUE,
                capacity INTEGER NOT NULL
            )
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS events (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                title TEXT NOT NULL,
                time TEXT NOT NULL,
                room_id TEXT NOT NULL,
                speaker_id TEXT NOT NULL
            )
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS event_attendees (
                event_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                attendee_id TEXT NOT NULL,
                PRIMARY KEY (event_id, position)
            )
        ''')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_users_username ON users(username)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_event_attendees_event_id ON event_attendees(event_id)')
        self.conn.commit()

    # -------------------------------
    # Users
    # -------------------------------
    def add_user(self, user: User) -> bool:
        """Add a user to the database. Returns False if the username is taken."""
        cursor = self.conn.cursor()
        cursor.execute('''
            INSERT OR IGNORE INTO users (id, username, password, role, name)
            VALUES (?, ?, ?, ?, ?)
        ''', (user.id, user.username, user.password, user.role, user.name))
        self.conn.commit()
        return cursor.rowcount > 0

    def _row_to_user(self, row) -> User:
        return User(id=row[0], username=row[1], password=row[2], role=row[3], name=row[4])

    def get_user(self, user_id: str) -> Optional[User]:
        """Retrieve a user by ID."""
        cursor = self.conn.cursor()
        cursor.execute('SELECT id, username, password, role, name FROM users WHERE id = ?', (user_id,))
        row = cursor.fetchone()
        return self._row_to_user(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        """Retrieve a user by username."""
        cursor = self.conn.cursor()
        cursor.execute('SELECT id, username, password, role, name FROM users WHERE username = ?', (username,))
        row = cursor.fetchone()
        return self._row_to_user(row) if row else None

    def list_users(self, role: Optional[str] = None) -> list[User]:
        """Retrieve all users, optionally only those with the given role."""
        cursor = self.conn.cursor()
        if role:
            cursor.execute('SELECT id, username, password, role, name FROM users WHERE role = ? ORDER BY username', (role,))
        else:
            cursor.execute('SELECT id, username, password, role, name FROM users ORDER BY username')
        return [self._row_to_user(r) for r in cursor.fetchall()]

    # -------------------------------
    # Rooms
    # -------------------------------
    def add_room(self, room: Room) -> bool:
        """Add a room. Returns False if the room number already exists."""
        cursor = self.conn.cursor()
        cursor.execute('''
            INSERT OR IGNORE INTO rooms (id, room_num, capacity)
            VALUES (?, ?, ?)
        ''', (room.id, room.room_num, room.capacity))
        self.conn.commit()
        return cursor.rowcount > 0

    def get_room(self, room_id: str) -> Optional[Room]:
        cursor = self.conn.cursor()
        cursor.execute('SELECT id, room_num, capacity FROM rooms WHERE id = ?', (room_id,))
        row = cursor.fetchone()
        return Room(id=row[0], room_num=row[1], capacity=row[2]) if row else None

    def get_room_by_num(self, room_num: int) -> Optional[Room]:
        cursor = self.conn.cursor()
        cursor.execute('SELECT id, room_num, capacity FROM rooms WHERE room_num = ?', (room_num,))
        row = cursor.fetchone()
        return Room(id=row[0], room_num=row[1], capacity=row[2]) if row else None

    def list_rooms(self) -> list[Room]:
        cursor = self.conn.cursor()
        cursor.execute('SELECT id, room_num, capacity FROM rooms ORDER BY room_num')
        return [Room(id=r[0], room_num=r[1], capacity=r[2]) for r in cursor.fetchall()]

    # -------------------------------
    # Events
    # -------------------------------
    def save_event(self, event: Event):
        """Insert or update an event together with its attendee list."""
        cursor = self.conn.cursor()
        cursor.execute('''
            INSERT INTO events (id, title, time, room_id, speaker_id)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                time = excluded.time,
                room_id = excluded.room_id,
                speaker_id = excluded.speaker_id
        ''', (event.id, event.title, event.time.isoformat(), event.room_id, event.speaker_id))
        cursor.execute('DELETE FROM event_attendees WHERE event_id = ?', (event.id,))
        cursor.executemany('''
            INSERT INTO event_attendees (event_id, position, attendee_id)
            VALUES (?, ?, ?)
        ''', [(event.id, i, attendee_id) for i, attendee_id in enumerate(event.attendee_ids)])
        self.conn.commit()

    def delete_event(self, event_id: str) -> bool:
        """Delete an event and its attendees."""
        cursor = self.conn.cursor()
        cursor.execute('DELETE FROM event_attendees WHERE event_id = ?', (event_id,))
        cursor.execute('DELETE FROM events WHERE id = ?', (event_id,))
        self.conn.commit()
        return cursor.rowcount > 0

    def load_events(self) -> list[Event]:
        """Retrieve all events in the order they were first saved."""
        cursor = self.conn.cursor()
        cursor.execute('SELECT id, title, time, room_id, speaker_id FROM events ORDER BY seq')
        events = [
            Event(id=r[0], title=r[1], time=datetime.fromisoformat(r[2]), room_id=r[3], speaker_id=r[4])
            for r in cursor.fetchall()
        ]
        by_id = {e.id: e for e in events}
        cursor.execute('SELECT event_id, attendee_id FROM event_attendees ORDER BY event_id, position')
        for event_id, attendee_id in cursor.fetchall():
            if event_id in by_id:
                by_id[event_id].attendee_ids.append(attendee_id)
        return events

    def close(self):
        """Close the database connection."""
        self.conn.close()
