from sqlalchemy import func
from sqlalchemy.orm import Session
from lumilink.core.errors import ProfileNotFoundError
from lumilink.db.models.profile import Profile, Link

# Read-only hooks into the profile/link service tables.

def resolve_profile_id(db: Session, user_id: str) -> str:
    profile_id = db.query(Profile.id).filter(Profile.user_id == user_id).scalar()
    if not profile_id:
        raise ProfileNotFoundError()
    return profile_id

def get_profile_owner(db: Session, profile_id: str) -> str | None:
    return db.query(Profile.user_id).filter(Profile.id == profile_id).scalar()

def get_link(db: Session, profile_id: str, link_id: str) -> Link | None:
    return db.query(Link).filter(Link.id == link_id, Link.profile_id == profile_id).first()

def count_links(db: Session, profile_id: str, social_only: bool = False) -> int:
    query = db.query(func.count(Link.id)).filter(Link.profile_id == profile_id)
    if social_only:
        query = query.filter(Link.is_social.is_(True))
    return query.scalar() or 0

def get_links(db: Session, link_ids) -> dict[str, Link]:
    if not link_ids:
        return {}
    return {link.id: link for link in db.query(Link).filter(Link.id.in_(list(link_ids))).all()}
