from sqlalchemy import Column, String, DateTime, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from crewcall.database import Base


class Company(Base):
    __tablename__ = "companies"

    id = Column(UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()"))
    company_name = Column(String(255), nullable=False)
    # Two-way SMS number that associates can reply to
    phone_number = Column(String(20), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    associates = relationship("Associate", back_populates="company", lazy="select")
    jobs = relationship("Job", back_populates="company", lazy="select")

    def __repr__(self):
        return f"<Company(id={self.id}, name='{self.company_name}')>"
