"""SQLAlchemy ORM models for authorization requests"""

import uuid
from sqlalchemy import Column, String, Float, DateTime, Integer, Text, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class AuthorizationRequestRecord(Base):
    """Authorization request row; `version` guards against lost updates"""

    __tablename__ = "authorization_request"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    simulation_id = Column(Text, nullable=True, index=True)
    quote_id = Column(Text, nullable=True, index=True)

    status = Column(String(20), nullable=False, default="pending", index=True)
    priority = Column(String(20), nullable=False, default="medium", index=True)
    risk_level = Column(String(20), nullable=False, default="medium")

    client_name = Column(Text, nullable=True)
    client_email = Column(Text, nullable=True)
    client_phone = Column(Text, nullable=True)
    vehicle_brand = Column(Text, nullable=True)
    vehicle_model = Column(Text, nullable=True)
    vehicle_year = Column(Integer, nullable=True)
    vehicle_value = Column(Float, nullable=True)
    requested_amount = Column(Float, nullable=True)
    monthly_payment = Column(Float, nullable=True)
    term_months = Column(Integer, nullable=True)
    agency_name = Column(Text, nullable=True)
    dealer_name = Column(Text, nullable=True)
    promoter_code = Column(Text, nullable=True)

    created_by_user_id = Column(Text, nullable=True)
    assigned_to_user_id = Column(Text, nullable=True, index=True)
    advisor_reviewed_by = Column(Text, nullable=True)
    advisor_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    internal_committee_reviewed_by = Column(Text, nullable=True)
    internal_committee_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    partners_committee_reviewed_by = Column(Text, nullable=True)
    partners_committee_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    decided_by_user_id = Column(Text, nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)

    client_comments = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)
    approval_notes = Column(Text, nullable=True)

    authorization_data = Column(JSON, nullable=True)
    competitors_data = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
