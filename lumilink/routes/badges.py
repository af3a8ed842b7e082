import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from lumilink.core.auth_guard import require_user_id
from lumilink.core.config import settings
from lumilink.core.dependencies import get_badge_engine
from lumilink.db.crud.profiles import resolve_profile_id
from lumilink.db.session import get_db
from lumilink.schemas.badges import BadgeOut, BadgeProgressOut, BadgeCheckRequest, AwardBadgeRequest
from lumilink.services.gamification import BadgeRuleEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/badges", tags=["badges"])


def is_admin(user_id: str) -> bool:
    return user_id in settings.ADMIN_USER_IDS


def serialize_badge(badge) -> dict:
    return BadgeOut.model_validate(badge).model_dump(by_alias=True)


def serialize_board_entry(entry: dict) -> dict:
    out = BadgeProgressOut(
        **BadgeOut.model_validate(entry["badge"]).model_dump(),
        current=entry["current"],
        progress=entry["progress"],
        is_completed=entry["is_completed"],
        earned_at=entry["earned_at"],
    )
    return out.model_dump(by_alias=True, mode="json")


@router.get("")
def list_badges(
    category: Optional[str] = None,
    engine: BadgeRuleEngine = Depends(get_badge_engine),
):
    badges = engine.catalog(category)
    return {"success": True, "data": [serialize_badge(b) for b in badges], "total": len(badges)}


@router.get("/categories")
def badge_categories(engine: BadgeRuleEngine = Depends(get_badge_engine)):
    return {"success": True, "data": engine.categories()}


@router.get("/stats")
def badge_stats(engine: BadgeRuleEngine = Depends(get_badge_engine)):
    return {"success": True, "data": engine.catalog_stats()}


@router.get("/leaderboard")
def badge_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    engine: BadgeRuleEngine = Depends(get_badge_engine),
):
    return {"success": True, "data": engine.leaderboard(limit)}


@router.get("/user")
def user_badges(
    user_id: str = Depends(require_user_id),
    engine: BadgeRuleEngine = Depends(get_badge_engine),
):
    board = engine.board(user_id)
    data = {key: [serialize_board_entry(e) for e in entries] for key, entries in board.items()}
    data["earnedCount"] = len(board["earned"])
    data["totalCount"] = sum(len(entries) for entries in board.values())
    return {"success": True, "data": data}


@router.post("/check")
def check_badges(
    body: BadgeCheckRequest,
    user_id: str = Depends(require_user_id),
    engine: BadgeRuleEngine = Depends(get_badge_engine),
    db: Session = Depends(get_db),
):
    """
    Re-evaluates the caller's badges. Also called by the link flow after a link
    is created. Admins may evaluate another user by passing `userId`.
    """
    target_user = body.user_id or user_id
    if target_user != user_id and not is_admin(user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    profile_id = resolve_profile_id(db, target_user)
    result = engine.evaluate(target_user, profile_id, activity_data=body.activity_data)

    return {
        "success": True,
        "data": {
            "newBadges": [serialize_badge(b) for b in result.newly_awarded],
            "updatedProgress": result.updated_progress,
            "totalBadges": result.total_completed,
        },
    }


@router.post("/award")
def award_badge(
    body: AwardBadgeRequest,
    user_id: str = Depends(require_user_id),
    engine: BadgeRuleEngine = Depends(get_badge_engine),
):
    if not is_admin(user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")

    awarded = engine.grant(body.user_id, body.badge_id)
    logger.info(f"Manual badge award by {user_id}: user={body.user_id} badge={body.badge_id} awarded={awarded}")
    return {
        "success": True,
        "awarded": awarded,
        "message": "Badge awarded successfully" if awarded else "User already has this badge",
    }
