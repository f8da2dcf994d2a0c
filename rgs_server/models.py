from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from .database import Base


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String, nullable=False)  # debit | credit
    round_id = Column(Integer, index=True, nullable=True)
    amount = Column(Integer, nullable=False)
    before_balance = Column(Integer, nullable=False)
    after_balance = Column(Integer, nullable=False)
    currency = Column(String, nullable=False)
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class GameLog(Base):
    __tablename__ = "game_logs"

    id = Column(Integer, primary_key=True, index=True)
    game_id = Column(String, nullable=True)
    round_id = Column(Integer, index=True, nullable=True)
    action = Column(String, nullable=False)
    detail = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
