from datetime import datetime

from sqlalchemy import (
    Boolean, Column, Date, DateTime, DECIMAL, ForeignKey, Integer, String, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

class User(Base):
    __tablename__ = 'users'
    __table_args__ = (
        UniqueConstraint('username', name='ux_users_username'),
        UniqueConstraint('email', name='ux_users_email'),
    )
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    username = Column(String(100))
    email = Column(String(191))
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default='client')  # admin, employee, client
    phone = Column(String(32))
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

class Policy(Base):
    __tablename__ = 'policies'
    __table_args__ = (UniqueConstraint('policy_number', name='ux_policies_policy_number'),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    policy_number = Column(String(50), nullable=False)
    user_id = Column(Integer, ForeignKey('users.id'))          # NULL for anonymous self-service
    created_by = Column(Integer, ForeignKey('users.id'))       # staff creator, if any
    holder_name = Column(String(255))
    holder_phone = Column(String(32))
    policy_type = Column(String(100), nullable=False)
    premium_amount = Column(DECIMAL(10, 2))
    status = Column(String(20), nullable=False, default='pending')  # pending, active, deactivated, claimed
    start_date = Column(Date)
    payment_due_date = Column(Date)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    deactivation_reason = Column(Text)
    deactivated_at = Column(DateTime)

class Beneficiary(Base):
    __tablename__ = 'beneficiaries'
    id = Column(Integer, primary_key=True, autoincrement=True)
    policy_id = Column(Integer, ForeignKey('policies.id', ondelete='CASCADE'), nullable=False)
    name = Column(String(255), nullable=False)
    relation = Column(String(100))
    id_number = Column(String(50))

class Claim(Base):
    __tablename__ = 'claims'
    id = Column(Integer, primary_key=True, autoincrement=True)
    policy_id = Column(Integer, ForeignKey('policies.id'), nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default='pending')  # pending, approved, rejected
    submitted_by = Column(Integer, ForeignKey('users.id'))
    submitted_at = Column(DateTime, nullable=False, default=datetime.now)
    decided_by = Column(Integer, ForeignKey('users.id'))
    decided_at = Column(DateTime)

class ClaimDocument(Base):
    __tablename__ = 'claim_documents'
    __table_args__ = (UniqueConstraint('claim_id', 'position', name='ux_claim_documents_position'),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    claim_id = Column(Integer, ForeignKey('claims.id', ondelete='CASCADE'), nullable=False)
    position = Column(Integer, nullable=False)
    original_name = Column(String(255))
    stored_path = Column(String(500), nullable=False)
    content_type = Column(String(100))
    size_bytes = Column(Integer, nullable=False, default=0)
