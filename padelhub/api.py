"""
REST API for the padel club backend.
Thin wrappers around domain logic and persistence. Every route lives under /api.
"""
from __future__ import annotations

from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncGenerator, Generator

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from padelhub.auth import create_access_token, decode_token, hash_password, verify_password
from padelhub.config import Config
from padelhub.log import setup_logger
from padelhub.models import LeagueFormat
from padelhub.persistence import ProfileRepository, get_connection, init_db
from padelhub.persistence.db import get_db_path
from padelhub.services import (
    LeagueService,
    LeagueTransitionError,
    MatchService,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
    TournamentService,
)

logger = setup_logger(__name__)


@contextmanager
def db_conn() -> Generator:
    """Yield a DB connection, ensure close on exit."""
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def domain_errors() -> Generator:
    """Map service-layer errors to HTTP status codes."""
    try:
        yield
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except (PreconditionError, LeagueTransitionError) as e:
        raise HTTPException(status_code=400, detail=str(e))


# ---------- Lifespan ----------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    init_db(db_path=get_db_path())
    logger.info("Database ready at %s", get_db_path())
    yield


# ---------- FastAPI app ----------
app = FastAPI(
    title="Padel Hub API",
    description="Backend for padel club leagues, matches and tournaments",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Server error"})


router = APIRouter(prefix="/api")
security = HTTPBearer(auto_error=False)


# ---------- Request/Response models ----------


class SignupRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=6)
    display_name: str | None = Field(None, max_length=100)


class LoginRequest(BaseModel):
    username: str
    password: str


class CreateLeagueRequest(BaseModel):
    name: str = Field(..., max_length=200)
    duration_weeks: int = Field(..., description="2 to 6 weeks")
    max_matches_per_player: int = Field(..., description="5, 10 or 15")
    max_players: int = Field(..., description="4 to 15 players")
    format: str = Field(LeagueFormat.CLASSIC.value, description="'classic' or 'divisions'")


class JoinLeagueRequest(BaseModel):
    invite_code: str


class MatchPlayer(BaseModel):
    player_type: str = Field("user", description="'user' or 'guest'")
    user_id: str | None = None
    guest_name: str | None = None


class MatchSet(BaseModel):
    team1_score: int = Field(..., ge=0)
    team2_score: int = Field(..., ge=0)


class SubmitMatchRequest(BaseModel):
    players: list[MatchPlayer] = Field(..., description="2 or 4 players; first half is team 1")
    winner: int = Field(..., ge=1, le=2)
    sets: list[MatchSet]
    league_id: str | None = None


class ConfirmMatchRequest(BaseModel):
    action: str = Field("confirm", description="'confirm' or 'reject'")


class CreateClubRequest(BaseModel):
    name: str = Field(..., max_length=200)


class CreateTournamentRequest(BaseModel):
    club_id: str
    name: str = Field(..., max_length=200)


class RegistrationRequest(BaseModel):
    player1_id: str
    player2_id: str | None = None


class TournamentMatchRequest(BaseModel):
    round_number: int = Field(..., ge=1)
    round_type: str = Field(..., description="'final', 'third_place' or 'classification'")
    tableau: str = Field(..., description="'principal', 'places_5_8', 'places_9_12' or 'places_13_16'")
    match_order: int = Field(1, ge=1)
    team1_registration_id: str | None = None
    team2_registration_id: str | None = None
    winner_registration_id: str | None = None


def _get_current_user_id(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> str | None:
    """Return user_id from JWT or None if no/invalid token."""
    if credentials is None:
        return None
    return decode_token(credentials.credentials)


def _require_user(user_id: str | None = Depends(_get_current_user_id)) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id


# ---------- Auth ----------


@router.post("/signup")
def signup(req: SignupRequest) -> dict[str, Any]:
    """Create account. Passwords hashed, never stored plain."""
    with db_conn() as conn:
        profile_repo = ProfileRepository()
        if profile_repo.get_by_username(conn, req.username):
            raise HTTPException(status_code=400, detail="Username already taken")
        profile = profile_repo.create(
            conn,
            username=req.username,
            password_hash=hash_password(req.password),
            display_name=req.display_name or req.username,
        )
        token = create_access_token(profile.id)
        return {"user_id": profile.id, "username": profile.username, "token": token}


@router.post("/login")
def login(req: LoginRequest) -> dict[str, Any]:
    """Returns JWT token."""
    with db_conn() as conn:
        profile = ProfileRepository().get_by_username(conn, req.username)
        if profile is None or not verify_password(req.password, profile.password_hash):
            raise HTTPException(status_code=401, detail="Invalid username or password")
        token = create_access_token(profile.id)
        return {"user_id": profile.id, "username": profile.username, "token": token}


@router.get("/me")
def me(user_id: str = Depends(_require_user)) -> dict[str, Any]:
    with db_conn() as conn:
        profile = ProfileRepository().get(conn, user_id)
        if profile is None:
            raise HTTPException(status_code=404, detail="Profile not found")
        return profile.to_dict()


# ---------- Leagues ----------


@router.post("/leagues", status_code=201)
def create_league(req: CreateLeagueRequest, user_id: str = Depends(_require_user)) -> dict[str, Any]:
    """Create a pending league and join it. Share invite_code with the other players."""
    with db_conn() as conn, domain_errors():
        league = LeagueService().create_league(
            conn,
            user_id,
            name=req.name,
            duration_weeks=req.duration_weeks,
            max_matches_per_player=req.max_matches_per_player,
            max_players=req.max_players,
            format=req.format,
        )
        return {"league": league.to_dict(), "invite_code": league.invite_code}


@router.post("/leagues/join")
def join_league(req: JoinLeagueRequest, user_id: str = Depends(_require_user)) -> dict[str, Any]:
    with db_conn() as conn, domain_errors():
        league = LeagueService().join_league(conn, user_id, req.invite_code)
        return {"success": True, "league_id": league.id, "league_name": league.name, "status": league.status}


@router.get("/leagues/mine")
def my_leagues(user_id: str = Depends(_require_user)) -> dict[str, Any]:
    with db_conn() as conn:
        return {"leagues": LeagueService().list_my_leagues(conn, user_id)}


@router.get("/leagues/{league_id}")
def get_league(league_id: str, user_id: str = Depends(_require_user)) -> dict[str, Any]:
    """
    League detail and standings. Members only.
    Ends the current phase first when its boundary has passed (divisions format).
    """
    with db_conn() as conn, domain_errors():
        return LeagueService().get_league_detail(conn, league_id, user_id)


@router.get("/leagues/{league_id}/history")
def get_league_history(
    league_id: str,
    phase: int | None = Query(default=None, ge=0),
    user_id: str = Depends(_require_user),
) -> dict[str, Any]:
    """Standings snapshot of a finished phase."""
    with db_conn() as conn, domain_errors():
        return LeagueService().get_phase_history(conn, league_id, user_id, phase)


# ---------- Matches ----------


@router.post("/matches", status_code=201)
def submit_match(req: SubmitMatchRequest, user_id: str = Depends(_require_user)) -> dict[str, Any]:
    with db_conn() as conn, domain_errors():
        match = MatchService().submit_match(
            conn,
            user_id,
            players=[p.model_dump() for p in req.players],
            winner=req.winner,
            sets=[s.model_dump() for s in req.sets],
            league_id=req.league_id,
        )
        return {"match": match.to_dict()}


@router.get("/matches/pending")
def pending_matches(user_id: str = Depends(_require_user)) -> dict[str, Any]:
    with db_conn() as conn:
        return {"matches": MatchService().list_pending(conn, user_id)}


@router.post("/matches/{match_id}/confirm")
def confirm_match(
    match_id: str,
    req: ConfirmMatchRequest,
    user_id: str = Depends(_require_user),
) -> dict[str, Any]:
    with db_conn() as conn, domain_errors():
        return MatchService().respond(conn, match_id, user_id, req.action)


# ---------- Clubs & tournaments ----------


@router.post("/clubs", status_code=201)
def create_club(req: CreateClubRequest, user_id: str = Depends(_require_user)) -> dict[str, Any]:
    with db_conn() as conn, domain_errors():
        return {"club": TournamentService().create_club(conn, user_id, req.name).to_dict()}


@router.post("/tournaments", status_code=201)
def create_tournament(req: CreateTournamentRequest, user_id: str = Depends(_require_user)) -> dict[str, Any]:
    with db_conn() as conn, domain_errors():
        tournament = TournamentService().create_tournament(conn, user_id, req.club_id, req.name)
        return {"tournament": tournament.to_dict()}


@router.post("/tournaments/{tournament_id}/registrations", status_code=201)
def register_pair(
    tournament_id: str,
    req: RegistrationRequest,
    user_id: str = Depends(_require_user),
) -> dict[str, Any]:
    with db_conn() as conn, domain_errors():
        registration = TournamentService().register_pair(
            conn, user_id, tournament_id, req.player1_id, req.player2_id,
        )
        return {"registration": registration.to_dict()}


@router.post("/tournaments/{tournament_id}/matches", status_code=201)
def record_tournament_match(
    tournament_id: str,
    req: TournamentMatchRequest,
    user_id: str = Depends(_require_user),
) -> dict[str, Any]:
    with db_conn() as conn, domain_errors():
        match = TournamentService().record_match(
            conn,
            user_id,
            tournament_id,
            round_number=req.round_number,
            round_type=req.round_type,
            tableau=req.tableau,
            match_order=req.match_order,
            team1_registration_id=req.team1_registration_id,
            team2_registration_id=req.team2_registration_id,
            winner_registration_id=req.winner_registration_id,
        )
        return {"match": match.to_dict()}


@router.post("/tournaments/{tournament_id}/calculate-final-ranking")
def calculate_final_ranking(tournament_id: str, user_id: str = Depends(_require_user)) -> dict[str, Any]:
    """Club admins only. Every last-round match must have a winner."""
    with db_conn() as conn, domain_errors():
        return TournamentService().calculate_final_ranking(conn, user_id, tournament_id)


@router.get("/tournaments/{tournament_id}/final-rankings")
def final_rankings(tournament_id: str) -> dict[str, Any]:
    with db_conn() as conn, domain_errors():
        return {"rankings": TournamentService().get_final_rankings(conn, tournament_id)}


app.include_router(router)


# ---------- Run with: uvicorn padelhub.api:app --reload ----------
