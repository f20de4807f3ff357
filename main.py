from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from fastapi import status
from pydantic import BaseModel, Field
from typing import Optional, Literal
from models import EventDraft, Room, User, new_id
from manager import EventsManager
from database import Database
from config import Settings, load_settings
from auth import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_user,
    hash_password,
    require_role,
    verify_password,
)
from utils import parse_date, generate_csv
import logging
from contextlib import asynccontextmanager
from jose import JWTError

logger = logging.getLogger(__name__)

# -------------------------------
# Schemas
# -------------------------------
class EventCreate(BaseModel):
    title: str = Field(min_length=1)
    time: str
    room_num: int
    speaker_id: str

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Keynote: The Future of Python",
                "time": "2020-01-01T12:00:00",
                "room_num": 101,
                "speaker_id": "5f1c7c2e-2b1d-4b0e-9a43-3f1f0c8a9d21"
            }
        }

class EventUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    time: Optional[str] = None
    room_num: Optional[int] = None
    speaker_id: Optional[str] = None

class RoomCreate(BaseModel):
    room_num: int
    capacity: int

class UserRegister(BaseModel):
    username: str
    password: str
    role: Literal["organizer", "speaker", "attendee"]
    name: Optional[str] = None

class UserLogin(BaseModel):
    username: str
    password: str

class RefreshRequest(BaseModel):
    refresh_token: str

class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str

# -------------------------------
# Dependencies
# -------------------------------
def get_db(request: Request) -> Database:
    return request.app.state.db

def get_manager(request: Request) -> EventsManager:
    return request.app.state.manager

def get_settings(request: Request) -> Settings:
    return request.app.state.settings

organizer_only = require_role("organizer")
speaker_only = require_role("speaker")


def event_data(event, db: Database) -> dict:
    room = db.get_room(event.room_id)
    return {
        "id": event.id,
        "title": event.title,
        "time": event.time.isoformat(),
        "room_id": event.room_id,
        "room_num": room.room_num if room else None,
        "speaker_id": event.speaker_id,
        "attendee_count": len(event.attendee_ids),
    }


def find_event(event_id: str, manager: EventsManager):
    event = manager.get_event(event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def find_room(room_num: int, db: Database) -> Room:
    room = db.get_room_by_num(room_num)
    if not room:
        raise HTTPException(status_code=400, detail=f"Room {room_num} does not exist")
    return room


def find_speaker(speaker_id: str, db: Database) -> User:
    speaker = db.get_user(speaker_id)
    if not speaker or speaker.role != "speaker":
        raise HTTPException(status_code=400, detail="Speaker does not exist")
    return speaker


def save(event_id: str, manager: EventsManager, db: Database):
    """Write the current state of an event through to the database."""
    db.save_event(manager.get_event(event_id))


# -------------------------------
# App factory
# -------------------------------
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application. Serve with `uvicorn main:create_app --factory`."""
    settings = settings or load_settings()
    logging.basicConfig(level=settings.log_level)

    db = Database(settings.database_path)
    manager = EventsManager()
    loaded = manager.load_events(db.load_events())
    logger.info(f"Loaded {loaded} events from {settings.database_path}")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Closing database connection")
        db.close()

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db
    app.state.manager = manager

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)
    return app


def register_routes(app: FastAPI):
    # -------------------------------
    # Auth Routes
    # -------------------------------
    @app.post("/register", response_model=dict, status_code=status.HTTP_201_CREATED, summary="Register a new user")
    def register(user: UserRegister, db: Database = Depends(get_db)):
        """Register a new organizer, speaker or attendee account."""
        user_obj = User(new_id(), user.username, hash_password(user.password), user.role, user.name)
        if not db.add_user(user_obj):
            raise HTTPException(status_code=400, detail="User already exists")
        logger.info(f"User {user.username} registered with role {user.role}")
        return {"message": "User registered", "data": {"id": user_obj.id, "username": user.username}}

    @app.post("/login", response_model=TokenResponse, summary="Login and receive access/refresh tokens")
    def login(user: UserLogin, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
        """Authenticate user and return access and refresh tokens."""
        db_user = db.get_user_by_username(user.username)
        if not db_user or not verify_password(user.password, db_user.password):
            logger.info(f"Failed login for {user.username}")
            raise HTTPException(status_code=401, detail="Invalid credentials")
        return {
            "access_token": create_access_token({"sub": db_user.username}, settings),
            "refresh_token": create_refresh_token({"sub": db_user.username}, settings),
        }

    @app.post("/refresh", response_model=dict, summary="Exchange a refresh token for a new access token")
    def refresh(body: RefreshRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
        """Issue a new access token from a valid refresh token."""
        credentials_exception = HTTPException(status_code=401, detail="Invalid refresh token")
        try:
            token_data = decode_token(body.refresh_token, settings)
        except JWTError as e:
            logger.error(f"JWTError: {str(e)}")
            raise credentials_exception
        if token_data.type != "refresh" or db.get_user_by_username(token_data.username) is None:
            raise credentials_exception
        access_token = create_access_token({"sub": token_data.username}, settings)
        logger.info(f"Token refreshed for {token_data.username}")
        return {"message": "Token refreshed", "data": {"access_token": access_token}}

    # -------------------------------
    # Directory Routes
    # -------------------------------
    @app.get("/", response_model=dict, summary="API root endpoint")
    def root():
        """Welcome message for the Conference Scheduler API."""
        return {"message": "Welcome to Conference Scheduler API", "data": {}}

    @app.post("/rooms", response_model=dict, status_code=status.HTTP_201_CREATED, summary="Create a room")
    def create_room(room: RoomCreate, current_user: User = Depends(organizer_only), db: Database = Depends(get_db)):
        """Create a new room (organizers only)."""
        if room.capacity <= 0:
            raise HTTPException(status_code=400, detail="Capacity must be positive")
        room_obj = Room(new_id(), room.room_num, room.capacity)
        if not db.add_room(room_obj):
            raise HTTPException(status_code=400, detail=f"Room {room.room_num} already exists")
        logger.info(f"Room {room.room_num} created by {current_user.id}")
        return {"message": "Room created", "data": {"id": room_obj.id, "room_num": room.room_num}}

    @app.get("/rooms", response_model=dict, summary="List rooms")
    def list_rooms(db: Database = Depends(get_db)):
        data = [{"id": r.id, "room_num": r.room_num, "capacity": r.capacity} for r in db.list_rooms()]
        return {"message": "Rooms retrieved", "data": data}

    @app.get("/speakers", response_model=dict, summary="List speakers")
    def list_speakers(current_user: User = Depends(organizer_only), db: Database = Depends(get_db)):
        data = [{"id": s.id, "username": s.username, "name": s.name} for s in db.list_users(role="speaker")]
        return {"message": "Speakers retrieved", "data": data}

    # -------------------------------
    # Event Routes
    # -------------------------------
    @app.post("/events", response_model=dict, status_code=status.HTTP_201_CREATED, summary="Schedule a new event")
    def create_event(
        event: EventCreate,
        current_user: User = Depends(organizer_only),
        manager: EventsManager = Depends(get_manager),
        db: Database = Depends(get_db),
    ):
        """Schedule a new event (organizers only). The room and speaker must exist."""
        room = find_room(event.room_num, db)
        find_speaker(event.speaker_id, db)
        draft = EventDraft(event.title, parse_date(event.time), room.id, event.speaker_id)
        if not manager.schedule_draft(draft):
            raise HTTPException(status_code=409, detail="Room or speaker is already booked at that time")
        save(draft.id, manager, db)
        logger.info(f"Event {draft.id} created by {current_user.id}")
        return {"message": "Event created", "data": event_data(manager.get_event(draft.id), db)}

    @app.get("/events", response_model=dict, summary="List all events")
    def list_events(manager: EventsManager = Depends(get_manager), db: Database = Depends(get_db)):
        """Retrieve a list of all events in scheduling order."""
        data = [event_data(e, db) for e in manager.get_events()]
        return {"message": "Events retrieved", "data": data}

    @app.get("/events/{event_id}", response_model=dict, summary="Get an event")
    def get_event(event_id: str, manager: EventsManager = Depends(get_manager), db: Database = Depends(get_db)):
        event = find_event(event_id, manager)
        return {"message": "Event retrieved", "data": event_data(event, db)}

    @app.put("/events/{event_id}", response_model=dict, summary="Update an event")
    def update_event(
        event_id: str,
        event: EventUpdate,
        current_user: User = Depends(organizer_only),
        manager: EventsManager = Depends(get_manager),
        db: Database = Depends(get_db),
    ):
        """Reschedule, move, retitle or reassign an event (organizers only)."""
        if not manager.has_event(event_id):
            raise HTTPException(status_code=404, detail="Event not found")
        new_time = parse_date(event.time) if event.time is not None else None
        new_room_id = find_room(event.room_num, db).id if event.room_num is not None else None
        if event.speaker_id is not None:
            find_speaker(event.speaker_id, db)
        if not manager.update_event(event_id, title=event.title, time=new_time, room_id=new_room_id, speaker_id=event.speaker_id):
            if not manager.has_event(event_id):
                raise HTTPException(status_code=404, detail="Event not found")
            raise HTTPException(status_code=409, detail="Room or speaker is already booked at that time")
        save(event_id, manager, db)
        logger.info(f"Event {event_id} updated by {current_user.id}")
        return {"message": f"Event {event_id} updated", "data": event_data(manager.get_event(event_id), db)}

    @app.delete("/events/{event_id}", response_model=dict, summary="Delete an event")
    def delete_event(
        event_id: str,
        current_user: User = Depends(organizer_only),
        manager: EventsManager = Depends(get_manager),
        db: Database = Depends(get_db),
    ):
        """Remove an event from the schedule (organizers only)."""
        if not manager.remove_event(event_id):
            raise HTTPException(status_code=404, detail="Event not found")
        db.delete_event(event_id)
        logger.info(f"Event {event_id} deleted by {current_user.id}")
        return {"message": f"Event {event_id} deleted", "data": {}}

    # -------------------------------
    # Attendee Routes
    # -------------------------------
    @app.post("/events/{event_id}/attendees", response_model=dict, summary="Sign up for an event")
    def sign_up(
        event_id: str,
        current_user: User = Depends(get_current_user),
        manager: EventsManager = Depends(get_manager),
        db: Database = Depends(get_db),
    ):
        """Register the current user for an event."""
        event = find_event(event_id, manager)
        if not manager.register_attendee(event_id, current_user.id):
            if not manager.has_event(event_id):
                raise HTTPException(status_code=404, detail="Event not found")
            raise HTTPException(status_code=400, detail="Already registered for this event")
        save(event_id, manager, db)
        logger.info(f"Attendee {current_user.id} registered for event {event_id}")
        return {"message": f"{current_user.username} registered for {event.title}", "data": {"attendee_id": current_user.id}}

    @app.delete("/events/{event_id}/attendees", response_model=dict, summary="Cancel an event sign-up")
    def cancel_sign_up(
        event_id: str,
        current_user: User = Depends(get_current_user),
        manager: EventsManager = Depends(get_manager),
        db: Database = Depends(get_db),
    ):
        """Remove the current user from an event's attendee list."""
        if not manager.has_event(event_id):
            raise HTTPException(status_code=404, detail="Event not found")
        if not manager.remove_attendee(event_id, current_user.id):
            raise HTTPException(status_code=400, detail="Not registered for this event")
        save(event_id, manager, db)
        logger.info(f"Attendee {current_user.id} left event {event_id}")
        return {"message": "Registration cancelled", "data": {}}

    @app.get("/me/events", response_model=dict, summary="List events the current user attends")
    def my_events(
        current_user: User = Depends(get_current_user),
        manager: EventsManager = Depends(get_manager),
        db: Database = Depends(get_db),
    ):
        data = [event_data(e, db) for e in manager.get_user_events(current_user.id)]
        return {"message": "Events retrieved", "data": data}

    @app.get("/me/talks", response_model=dict, summary="List events the current speaker gives")
    def my_talks(
        current_user: User = Depends(speaker_only),
        manager: EventsManager = Depends(get_manager),
        db: Database = Depends(get_db),
    ):
        data = [event_data(e, db) for e in manager.get_speaker_events(current_user.id)]
        return {"message": "Talks retrieved", "data": data}

    @app.get("/events/{event_id}/attendees/export", response_model=None, summary="Export attendees as CSV")
    def export_attendees(
        event_id: str,
        current_user: User = Depends(organizer_only),
        manager: EventsManager = Depends(get_manager),
        db: Database = Depends(get_db),
    ):
        """Export the list of attendees for an event as a CSV file (organizers only)."""
        event = find_event(event_id, manager)
        attendees = [u for u in (db.get_user(a) for a in event.attendee_ids) if u is not None]
        csv_data = generate_csv(attendees)
        logger.info(f"Attendees exported for event {event_id} by {current_user.id}")
        return StreamingResponse(csv_data, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename=attendees_{event_id}.csv"})

