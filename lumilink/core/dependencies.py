from fastapi import Depends
from sqlalchemy.orm import Session
from lumilink.core.auth_guard import require_user_id
from lumilink.db.crud.profiles import resolve_profile_id
from lumilink.db.session import get_db
from lumilink.db.store import EventStore
from lumilink.services.aggregation import AggregationEngine
from lumilink.services.gamification import BadgeRuleEngine
from lumilink.services.ingestion import EventIngestionGateway

# Components are built per request around the request's session; nothing is shared.

def get_event_store(db: Session = Depends(get_db)) -> EventStore:
    return EventStore(db)

def get_aggregator(store: EventStore = Depends(get_event_store)) -> AggregationEngine:
    return AggregationEngine(store)

def get_badge_engine(
    store: EventStore = Depends(get_event_store),
    aggregator: AggregationEngine = Depends(get_aggregator),
) -> BadgeRuleEngine:
    return BadgeRuleEngine(store, aggregator)

def get_ingestion_gateway(
    store: EventStore = Depends(get_event_store),
    badge_engine: BadgeRuleEngine = Depends(get_badge_engine),
) -> EventIngestionGateway:
    return EventIngestionGateway(store, badge_engine)

def get_current_profile_id(
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
) -> str:
    """Profile of the authenticated user; ProfileNotFoundError (404) if there is none."""
    return resolve_profile_id(db, user_id)
