from sqlalchemy import Column, Integer, String, Text, Numeric, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from database import Base
from fields import (
    EMAIL_LEN, ORDER_NAME_LEN, PERSON_NAME_LEN, STATUS_LEN, DATE_LEN, TIME_LEN,
    PRICE_PRECISION, PRICE_SCALE, OrderStatus, PaymentStatus,
)

class Account(Base):
    __tablename__ = "accounts"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(EMAIL_LEN), unique=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    orders = relationship("Order", back_populates="account", cascade="all, delete-orphan", passive_deletes=True)
    staff = relationship("Staff", back_populates="account", cascade="all, delete-orphan", passive_deletes=True)

class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(ORDER_NAME_LEN), nullable=False)
    cleaning_date = Column(String(DATE_LEN), nullable=False, index=True)  # 'YYYY-MM-DD'
    start_time = Column(String(TIME_LEN))  # 'HH:MM'
    status = Column(String(STATUS_LEN), nullable=False, default=OrderStatus.PENDING.value)
    payment_status = Column(String(STATUS_LEN), nullable=False, default=PaymentStatus.UNPAID.value)
    notes = Column(Text)
    price = Column(Numeric(PRICE_PRECISION, PRICE_SCALE))
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    account = relationship("Account", back_populates="orders")
    assignments = relationship("Assignment", back_populates="order", cascade="all, delete-orphan", passive_deletes=True)
    __table_args__ = (CheckConstraint("price IS NULL OR price >= 0", name="ck_order_price_non_negative"),)

class Staff(Base):
    __tablename__ = "staff"
    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(PERSON_NAME_LEN), nullable=False)
    last_name = Column(String(PERSON_NAME_LEN), nullable=False)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    account = relationship("Account", back_populates="staff")
    assignments = relationship("Assignment", back_populates="staff", cascade="all, delete-orphan", passive_deletes=True)

class Assignment(Base):
    __tablename__ = "assignments"
    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    staff_id = Column(Integer, ForeignKey("staff.id", ondelete="CASCADE"), nullable=False, index=True)
    order = relationship("Order", back_populates="assignments")
    staff = relationship("Staff", back_populates="assignments")
    __table_args__ = (UniqueConstraint("order_id", "staff_id", name="uniq_order_staff"),)
