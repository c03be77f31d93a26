from sqlalchemy import (
    Column, Integer, String, DateTime, Date, Boolean, ForeignKey, Text, JSON, UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime, timezone

Base = declarative_base()

def utcnow() -> datetime:
    # Naive UTC, SQLite drops tzinfo anyway
    return datetime.now(timezone.utc).replace(tzinfo=None)

class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone = Column(String(64), unique=True, nullable=False) # Telegram chat id
    name = Column(String(100), nullable=True)
    timezone = Column(String(50), default="America/Los_Angeles")

    # 'HH:MM', 24h
    wake_time = Column(String(5), nullable=True)
    sleep_time = Column(String(5), nullable=True)
    eating_window_start = Column(String(5), nullable=True)
    eating_window_end = Column(String(5), nullable=True)
    risk_times = Column(JSON, default=list)

    shame_level = Column(Integer, default=1) # 0 = disabled, max 3
    loss_aversion_enabled = Column(Boolean, default=True)
    onboarding_complete = Column(Boolean, default=False)
    onboarding_step = Column(String(50), default="start")
    created_at = Column(DateTime, default=utcnow)

    contracts = relationship("Contract", back_populates="user")
    daily_logs = relationship("DailyLog", back_populates="user")

class Contract(Base):
    __tablename__ = 'contracts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    goal = Column(Text, nullable=False)
    binary_actions = Column(JSON, nullable=False) # ordered [{name, threshold, points}]
    rules_text = Column(Text, nullable=True)
    locked_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=True)
    active = Column(Boolean, default=True)

    user = relationship("User", back_populates="contracts")

class DailyLog(Base):
    __tablename__ = 'daily_logs'
    __table_args__ = (UniqueConstraint('user_id', 'date', name='uq_daily_logs_user_date'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    date = Column(Date, nullable=False)

    scores = Column(JSON, default=dict) # action name -> points earned
    total_score = Column(Integer, default=0)
    tomorrow_locked = Column(Boolean, default=False)
    tomorrow_plan = Column(JSON, nullable=True)
    miss_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True) # 'DOWNSHIFT: ...' marks a bad day
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="daily_logs")

class TokenRecord(Base):
    __tablename__ = 'tokens'
    __table_args__ = (UniqueConstraint('user_id', 'week_start', name='uq_tokens_user_week'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    week_start = Column(Date, nullable=False) # ISO week Monday
    starting_tokens = Column(Integer, default=7)
    current_tokens = Column(Integer, default=7)
    loss_events = Column(JSON, default=list) # [{date, reason, amount}]
    punishment_triggered = Column(Boolean, default=False)

class Pattern(Base):
    __tablename__ = 'patterns'
    __table_args__ = (Index('idx_patterns_user_type', 'user_id', 'pattern_type'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    pattern_type = Column(String(50)) # 'miss_reason', 'failure_time', 'bad_day', 'trigger', ...
    content = Column(Text)
    frequency = Column(Integer, default=1)
    last_seen = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)

class Message(Base):
    __tablename__ = 'messages'
    __table_args__ = (Index('idx_messages_user_created', 'user_id', 'created_at'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    role = Column(String(10)) # 'user', 'assistant'
    content = Column(Text)
    flow = Column(String(50))
    created_at = Column(DateTime, default=utcnow)

class Photo(Base):
    __tablename__ = 'photos'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    type = Column(String(20)) # 'baseline', 'daily'
    url = Column(Text, nullable=False)
    date = Column(Date)
    created_at = Column(DateTime, default=utcnow)

class FlowSession(Base):
    __tablename__ = 'flow_sessions'

    key = Column(String(200), primary_key=True)
    state = Column(String(100), nullable=True)
    data = Column(JSON, default=dict)
    updated_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=True)
