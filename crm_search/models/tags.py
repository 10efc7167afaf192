"""
Entity tag tables.

Each taggable entity keeps its tags in its own link table so that
"has any of these tags" compiles to a portable EXISTS subquery.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint

from crm_search.database import Base


class LeadTag(Base):
    __tablename__ = "lead_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    tag = Column(String(100), nullable=False, index=True)

    __table_args__ = (UniqueConstraint("lead_id", "tag", name="uq_lead_tag"),)


class DealTag(Base):
    __tablename__ = "deal_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    deal_id = Column(String(36), ForeignKey("deals.id", ondelete="CASCADE"), nullable=False, index=True)
    tag = Column(String(100), nullable=False, index=True)

    __table_args__ = (UniqueConstraint("deal_id", "tag", name="uq_deal_tag"),)


class CustomerTag(Base):
    __tablename__ = "customer_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    tag = Column(String(100), nullable=False, index=True)

    __table_args__ = (UniqueConstraint("customer_id", "tag", name="uq_customer_tag"),)


class TicketTag(Base):
    __tablename__ = "ticket_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ticket_id = Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    tag = Column(String(100), nullable=False, index=True)

    __table_args__ = (UniqueConstraint("ticket_id", "tag", name="uq_ticket_tag"),)
