from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from lumilink.core.utils import utcnow
from lumilink.db.base_class import Base
import uuid

# Profiles and links are owned by the profile/link CRUD service. Only the
# columns the analytics pipeline reads are mapped here.

class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    links = relationship("Link", back_populates="profile", cascade="all, delete-orphan")


class Link(Base):
    __tablename__ = "links"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    profile_id = Column(String, ForeignKey("profiles.id"), index=True, nullable=False)
    title = Column(String, nullable=True)
    url = Column(String, nullable=True)
    is_social = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)

    profile = relationship("Profile", back_populates="links")
