import uuid
from sqlalchemy.sql import func
from sqlalchemy import Column, String, DateTime, ForeignKey
from split_ledger.db.database import Base


# Groups and memberships are written by the group service; the ledger only reads them.
class Group(Base):
    __tablename__ = "groups"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    name = Column(String(100), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class GroupMember(Base):
    __tablename__ = "group_members"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)  # Reference to user service
    display_name = Column(String(100), nullable=True)
    joined_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
