from sqlalchemy import Column, Index, String, Boolean, DateTime, ForeignKey, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from crewcall.database import Base


class Associate(Base):
    __tablename__ = "associates"
    __table_args__ = (
        Index("ix_associates_phone_number", "phone_number"),
        Index("ix_associates_company", "company_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()"))
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    phone_number = Column(String(20), nullable=True)
    email_address = Column(String(255), nullable=True)
    sms_opt_out = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    company = relationship("Company", back_populates="associates", lazy="select")
    assignments = relationship("JobAssignment", back_populates="associate", lazy="select")
    opt_info = relationship("OptInfo", back_populates="associate", uselist=False, lazy="select")

    def __repr__(self):
        return f"<Associate(id={self.id}, name='{self.first_name} {self.last_name}')>"
