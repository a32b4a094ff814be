"""
Courier database model.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float
from fulfillment_engine.app.db.session import Base, utcnow


class Courier(Base):
    """
    Courier (delivery partner) model.
    
    success_rate is informational only; selection uses HubCourier ranking.
    """
    __tablename__ = "couriers"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    name = Column(String(100), nullable=False)
    code = Column(String(20), nullable=False, unique=True, index=True)
    
    base_rate = Column(Float, nullable=True)
    success_rate = Column(Float, nullable=True)
    
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    
    created_at = Column(DateTime, default=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<Courier(id={self.id}, code='{self.code}', active={self.is_active})>"
