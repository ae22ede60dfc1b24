from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, func
from . import Base

PENDING = 'pending'
ACCEPTED = 'accepted'
BLOCKED = 'blocked'


class Relationship(Base):
    """
    Friendship edge between two users.

    `requester_id` created the record (or, for `blocked`, is the blocker).
    `user_low`/`user_high` hold the ordered pair so the unique key covers
    both directions: at most one record per unordered pair.
    """
    __tablename__ = 'relationships'
    id = Column(Integer, primary_key=True)
    requester_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    target_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    user_low = Column(Integer, nullable=False)
    user_high = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=PENDING)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    __table_args__ = (
        UniqueConstraint('user_low', 'user_high', name='uix_relationship_pair'),
        CheckConstraint('requester_id <> target_id', name='ck_relationship_not_self'),
    )

    def other(self, user_id: int) -> int:
        return self.target_id if self.requester_id == user_id else self.requester_id


class Follow(Base):
    """Asymmetric follow edge: no approval step."""
    __tablename__ = 'follows'
    id = Column(Integer, primary_key=True)
    follower_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    followed_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    __table_args__ = (
        UniqueConstraint('follower_id', 'followed_id', name='uix_follow_pair'),
    )
