"""
Shipping Zone database model.

A zone groups delivery states; rates are priced per zone.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from fulfillment_engine.app.db.session import Base, utcnow


class Zone(Base):
    """
    Zone model.
    
    Every deliverable state belongs to exactly one zone. Overlaps are
    rejected when zones are configured, never resolved at lookup time.
    """
    __tablename__ = "zones"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    name = Column(String(100), nullable=False, unique=True)
    code = Column(String(20), nullable=False, unique=True)
    
    # Member states (and optional cities) as JSON lists of names
    states = Column(JSON, nullable=False, default=list)
    cities = Column(JSON, nullable=True)
    
    estimated_delivery_days = Column(Integer, nullable=True)
    
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    
    def covers_state(self, state: str) -> bool:
        wanted = state.strip().lower()
        return any(member.strip().lower() == wanted for member in (self.states or []))
    
    def __repr__(self):
        return f"<Zone(id={self.id}, name='{self.name}', states={len(self.states or [])})>"
