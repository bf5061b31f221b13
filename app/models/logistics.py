"""
Trade Operations Platform
Logistics domain models.

Models:
    - Contract: sales / purchase contract header
    - PaymentScheduleItem: per-contract payment terms (advance, balance, ...)
    - Shipment: one physical shipment, buyer (incoming) or seller (outgoing)
    - ShipmentDocument: archived shipping documents (BL, PL, COO, COA, ...)
    - QualityIncident: quality problem reported against a shipment

These tables are owned by the contract / shipment / quality workflows.
The notification engine reads them and only writes the bookkeeping columns
``last_notification_check`` and ``quality_feedback_requested``.
"""

from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

CONTRACT_STATUSES = {"DRAFT", "PENDING", "ACTIVE", "FULFILLED", "COMPLETED", "CANCELLED"}
TRANSACTION_TYPES = {"incoming", "outgoing"}
PAYMENT_BASES = {"ON_BOOKING", "ON_BL", "ON_ARRIVAL", "ON_DELIVERY", "ON_SIGNING"}
QUALIFYING_DOC_TYPES = ("BL_DRAFT", "BL_FINAL", "PL", "COO", "COA")
QUALITY_INCIDENT_STATUSES = {"draft", "submitted", "under_review", "action_set", "closed"}

# Shipments in these states are out of the periodic notification scan.
TERMINAL_SHIPMENT_STATUSES = ("delivered", "invoiced")


def _utcnow():
    return datetime.now(timezone.utc)


class Contract(db.Model):
    """Contract header. Shipments and payment schedule items hang off it."""

    __tablename__ = "contracts"

    id = db.Column(db.Integer, primary_key=True)
    contract_no = db.Column(db.String(50), nullable=False, index=True)
    status = db.Column(db.String(20), default="DRAFT",
                       comment="DRAFT, PENDING, ACTIVE, FULFILLED, COMPLETED, CANCELLED")
    signed_at = db.Column(db.Date, nullable=True)
    buyer_company_id = db.Column(db.Integer, nullable=True)
    seller_company_id = db.Column(db.Integer, nullable=True)
    is_deleted = db.Column(db.Boolean, default=False, nullable=False)
    last_notification_check = db.Column(db.DateTime(timezone=True), nullable=True,
                                        comment="Last time the notification scan visited this contract")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    shipments = db.relationship("Shipment", back_populates="contract", lazy="dynamic")
    payment_schedule = db.relationship(
        "PaymentScheduleItem", back_populates="contract",
        order_by="PaymentScheduleItem.seq", lazy="select",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "contract_no": self.contract_no,
            "status": self.status,
            "signed_at": self.signed_at.isoformat() if self.signed_at else None,
            "buyer_company_id": self.buyer_company_id,
            "seller_company_id": self.seller_company_id,
            "last_notification_check": (
                self.last_notification_check.isoformat() if self.last_notification_check else None
            ),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Contract {self.contract_no} [{self.status}]>"


class PaymentScheduleItem(db.Model):
    """One line of a contract's payment terms, ordered by ``seq``."""

    __tablename__ = "contract_payment_schedules"
    __table_args__ = (
        db.UniqueConstraint("contract_id", "seq", name="uq_payment_schedule_contract_seq"),
    )

    id = db.Column(db.Integer, primary_key=True)
    contract_id = db.Column(
        db.Integer, db.ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    seq = db.Column(db.Integer, nullable=False, comment="1 = advance payment")
    basis = db.Column(db.String(20), default="ON_BOOKING",
                      comment="ON_BOOKING, ON_BL, ON_ARRIVAL, ON_DELIVERY, ON_SIGNING")
    days_after = db.Column(db.Integer, default=0)
    percent = db.Column(db.Numeric(5, 2), nullable=True)
    amount = db.Column(db.Numeric(14, 2), nullable=True)
    is_deferred = db.Column(db.Boolean, default=False)

    contract = db.relationship("Contract", back_populates="payment_schedule")

    def to_dict(self):
        return {
            "id": self.id,
            "contract_id": self.contract_id,
            "seq": self.seq,
            "basis": self.basis,
            "days_after": self.days_after,
            "percent": float(self.percent) if self.percent is not None else None,
            "amount": float(self.amount) if self.amount is not None else None,
            "is_deferred": self.is_deferred,
        }

    def __repr__(self):
        return f"<PaymentScheduleItem contract={self.contract_id} seq={self.seq} {self.basis}>"


class Shipment(db.Model):
    """
    Shipment record, flattened with its financial and logistics columns.

    ``transaction_type`` selects the workflow: ``incoming`` is a purchase
    (we are the buyer), ``outgoing`` a sale (we are the seller).
    """

    __tablename__ = "shipments"

    id = db.Column(db.Integer, primary_key=True)
    sn = db.Column(db.String(50), nullable=False, index=True, comment="Shipment number")
    transaction_type = db.Column(db.String(20), default="incoming", nullable=False)
    contract_id = db.Column(
        db.Integer, db.ForeignKey("contracts.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    product_text = db.Column(db.String(300), default="")
    status = db.Column(db.String(30), default="planning", index=True)

    # Dates
    contract_ship_date = db.Column(db.Date, nullable=True,
                                   comment="Latest shipping date agreed in the contract")
    agreed_shipping_date = db.Column(db.Date, nullable=True)
    eta = db.Column(db.Date, nullable=True, index=True)
    bl_no = db.Column(db.String(60), nullable=True)
    customs_clearance_date = db.Column(db.Date, nullable=True)
    free_time_days = db.Column(db.Integer, nullable=True,
                               comment="Demurrage-free days after arrival")

    # Financials (USD)
    total_value_usd = db.Column(db.Numeric(14, 2), default=0)
    paid_value_usd = db.Column(db.Numeric(14, 2), default=0)
    balance_value_usd = db.Column(db.Numeric(14, 2), default=0)

    # Document / feedback flags
    docs_draft_approved = db.Column(db.Boolean, default=False)
    original_docs_sent = db.Column(db.Boolean, default=False)
    quality_feedback_requested = db.Column(db.Boolean, default=False)
    warehouse_receipt_confirmed = db.Column(db.Boolean, default=False)
    warehouse_receipt_has_issues = db.Column(db.Boolean, default=False)

    is_deleted = db.Column(db.Boolean, default=False, nullable=False)
    last_notification_check = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    contract = db.relationship("Contract", back_populates="shipments")
    documents = db.relationship("ShipmentDocument", back_populates="shipment", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "sn": self.sn,
            "transaction_type": self.transaction_type,
            "contract_id": self.contract_id,
            "product_text": self.product_text,
            "status": self.status,
            "contract_ship_date": self.contract_ship_date.isoformat() if self.contract_ship_date else None,
            "eta": self.eta.isoformat() if self.eta else None,
            "bl_no": self.bl_no,
            "customs_clearance_date": (
                self.customs_clearance_date.isoformat() if self.customs_clearance_date else None
            ),
            "free_time_days": self.free_time_days,
            "balance_value_usd": float(self.balance_value_usd or 0),
            "quality_feedback_requested": self.quality_feedback_requested,
            "last_notification_check": (
                self.last_notification_check.isoformat() if self.last_notification_check else None
            ),
        }

    def __repr__(self):
        return f"<Shipment {self.sn} [{self.status}]>"


class ShipmentDocument(db.Model):
    """Archived document attached to a shipment. Only ``doc_type`` matters here."""

    __tablename__ = "shipment_documents"

    id = db.Column(db.Integer, primary_key=True)
    shipment_id = db.Column(
        db.Integer, db.ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    doc_type = db.Column(db.String(30), nullable=False,
                         comment="BL_DRAFT, BL_FINAL, PL, COO, COA, INVOICE, ...")
    file_name = db.Column(db.String(255), default="")
    is_deleted = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    shipment = db.relationship("Shipment", back_populates="documents")

    def __repr__(self):
        return f"<ShipmentDocument {self.doc_type} shipment={self.shipment_id}>"


class QualityIncident(db.Model):
    """Quality incident reported against a shipment."""

    __tablename__ = "quality_incidents"

    id = db.Column(db.Integer, primary_key=True)
    shipment_id = db.Column(
        db.Integer, db.ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    status = db.Column(db.String(20), default="draft",
                       comment="draft, submitted, under_review, action_set, closed")
    issue_type = db.Column(db.String(50), default="")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "shipment_id": self.shipment_id,
            "status": self.status,
            "issue_type": self.issue_type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<QualityIncident {self.id} shipment={self.shipment_id} [{self.status}]>"
