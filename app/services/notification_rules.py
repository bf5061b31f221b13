"""
Trade Operations Platform
Notification rule-checks.

One function per business milestone. A rule-check receives the entity and a
:class:`RuleContext` and returns the notifications that *should* exist right
now; it never writes. The generator hands each draft to
``NotificationService.create``, which drops the ones already open.

Rule lists (run in this order):
    CONTRACT_RULES: contracts (purchase side)
    BUYER_RULES: shipments with transaction_type == "incoming"
    SELLER_RULES: shipments with transaction_type == "outgoing"

Severity tiering for "days until X":
    < 0 or <= 2  error
    3 .. 7       warning
    > 7          info
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable

from app.models.logistics import Contract, PaymentScheduleItem, Shipment
from app.services.demurrage import EXCEEDED, WARNING, calculate_demurrage, is_clearance_entry_overdue
from app.services.entity_snapshot import count_qualifying_documents, load_payment_schedule
from app.services.notification import NotificationDraft

logger = logging.getLogger(__name__)

URGENT = "URGENT: "
URGENT_AR = "عاجل: "
DOCUMENTS_REQUIRED = 3

STATUS_AR = {
    "planning": "قيد التخطيط",
    "booked": "محجوزة",
    "loaded": "محملة",
    "sailed": "أبحرت",
    "arrived": "وصلت",
    "delivered": "تم التسليم",
    "invoiced": "تمت الفوترة",
}


# ═══════════════════════════════════════════════════════════════════════════
#  Context & helpers
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class RuleContext:
    """Clock and read helpers shared by every rule-check of one pass."""

    now: datetime

    @property
    def today(self) -> date:
        return self.now.date()

    def days_until(self, target: date) -> int:
        return (target - self.today).days

    def days_since(self, target: date) -> int:
        return (self.today - target).days

    def in_days(self, days: int) -> date:
        return self.today + timedelta(days=days)

    def doc_count(self, shipment_id: int) -> int:
        return count_qualifying_documents(shipment_id)

    def payment_schedule(self, contract_id: int) -> list[PaymentScheduleItem]:
        return load_payment_schedule(contract_id)


def severity_for_days(days: int) -> str:
    if days <= 2:
        return "error"
    if days <= 7:
        return "warning"
    return "info"


def format_date(value: date | None) -> str:
    return value.strftime("%d/%m/%Y") if value else ""


def payment_due_date(item: PaymentScheduleItem, signed_at: date | None) -> date | None:
    """ON_BOOKING: signed_at + days_after; any other basis: signed_at + 7 days."""
    if signed_at is None:
        return None
    if item.basis == "ON_BOOKING":
        return signed_at + timedelta(days=item.days_after or 0)
    return signed_at + timedelta(days=7)


def _balance(shipment: Shipment) -> float:
    return float(shipment.balance_value_usd or 0)


def _percent(item: PaymentScheduleItem) -> str:
    return f"{float(item.percent):g}" if item.percent is not None else "?"


def _days_text_ar(days: int) -> str:
    return f"متأخر {abs(days)} يوم" if days < 0 else f"{days} يوم"


RuleCheck = Callable[..., "list[NotificationDraft]"]

CONTRACT_RULES: list[RuleCheck] = []
BUYER_RULES: list[RuleCheck] = []
SELLER_RULES: list[RuleCheck] = []


def rule(registry: list[RuleCheck]):
    """Append the decorated rule-check to ``registry`` (definition order = run order)."""
    def decorator(fn: RuleCheck) -> RuleCheck:
        registry.append(fn)
        return fn
    return decorator


# ═══════════════════════════════════════════════════════════════════════════
#  Contract rules
# ═══════════════════════════════════════════════════════════════════════════

@rule(CONTRACT_RULES)
def check_contract_created(contract: Contract, ctx: RuleContext) -> list[NotificationDraft]:
    if contract.status != "ACTIVE":
        return []
    return [NotificationDraft(
        type="send_contract_to_supplier",
        severity="info",
        title="Send contract documents to supplier",
        title_ar="إرسال مستندات العقد للمورد",
        message=(f"Contract {contract.contract_no} is active. Send signed proforma, "
                 "markings, and shipping instructions to supplier."),
        message_ar=(f"العقد {contract.contract_no} نشط. أرسل الفاتورة الأولية الموقعة "
                    "والعلامات وتعليمات الشحن للمورد."),
        action_required=("Send to supplier:\n1. Signed proforma invoice\n"
                         "2. Product markings/labels\n3. Shipping instructions"),
        action_required_ar="أرسل للمورد:\n1. فاتورة أولية موقعة\n2. علامات المنتج\n3. تعليمات الشحن",
        due_date=ctx.in_days(3),
        auto_escalate_hours=72,
        contract_id=contract.id,
    )]


@rule(CONTRACT_RULES)
def check_advance_payment(contract: Contract, ctx: RuleContext) -> list[NotificationDraft]:
    if contract.status != "ACTIVE":
        return []
    advance = next((p for p in ctx.payment_schedule(contract.id) if p.seq == 1), None)
    if advance is None:
        return []
    due = payment_due_date(advance, contract.signed_at)
    if due is None:
        return []
    days = ctx.days_until(due)
    if not 0 <= days <= 7:
        return []
    severity = severity_for_days(days)
    return [NotificationDraft(
        type="advance_payment_due",
        severity=severity,
        title="Advance payment OVERDUE" if severity == "error" else "Advance payment due",
        title_ar="الدفعة المقدمة متأخرة" if severity == "error" else "الدفعة المقدمة مستحقة",
        message=(f"Contract {contract.contract_no}: Advance payment ({_percent(advance)}%) "
                 f"due in {days} days."),
        message_ar=(f"العقد {contract.contract_no}: الدفعة المقدمة ({_percent(advance)}%) "
                    f"مستحقة خلال {days} يوم."),
        action_required="Arrange advance payment to supplier",
        action_required_ar="ترتيب الدفعة المقدمة للمورد",
        due_date=due,
        auto_escalate_hours=24,
        contract_id=contract.id,
    )]


# ═══════════════════════════════════════════════════════════════════════════
#  Buyer rules (incoming shipments)
# ═══════════════════════════════════════════════════════════════════════════

@rule(BUYER_RULES)
def check_shipping_deadline(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    if not shipment.contract_ship_date:
        return []
    if shipment.status in ("sailed", "arrived", "delivered"):
        return []
    days = ctx.days_until(shipment.contract_ship_date)
    if days > 7:
        return []
    urgent = days <= 2
    ship_by = format_date(shipment.contract_ship_date)
    return [NotificationDraft(
        type="shipping_deadline_approaching",
        severity="error" if urgent else "warning",
        title=f"{URGENT}Shipping deadline critical" if urgent else "Shipping deadline approaching",
        title_ar=f"{URGENT_AR}موعد الشحن حرج" if urgent else "موعد الشحن يقترب",
        message=f"Shipment {shipment.sn} should ship by {ship_by} ({days} days)",
        message_ar=f"الشحنة {shipment.sn} يجب شحنها بحلول {ship_by} ({_days_text_ar(days)})",
        action_required=(
            "Immediate action: Contact supplier NOW to confirm shipping status"
            if urgent else "Contact supplier to confirm shipping schedule"
        ),
        action_required_ar=(
            "إجراء فوري: تواصل مع المورد الآن لتأكيد حالة الشحن"
            if urgent else "تواصل مع المورد لتأكيد جدول الشحن"
        ),
        due_date=shipment.contract_ship_date,
        auto_escalate_hours=24 if urgent else None,
        shipment_id=shipment.id,
    )]


@rule(BUYER_RULES)
def check_documents_needed(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    if shipment.status not in ("booked", "loaded", "sailed"):
        return []
    if ctx.doc_count(shipment.id) >= DOCUMENTS_REQUIRED:
        return []
    sailed = shipment.status == "sailed"
    return [NotificationDraft(
        type="documents_needed",
        severity="warning" if sailed else "info",
        title="Request shipping documents from supplier",
        title_ar="طلب مستندات الشحن من المورد",
        message=f"Shipment {shipment.sn} is {shipment.status}. Request documents from supplier.",
        message_ar=(f"الشحنة {shipment.sn} حالتها {STATUS_AR.get(shipment.status, shipment.status)}. "
                    "اطلب المستندات من المورد."),
        action_required=("Request from supplier:\n1. Bill of Lading (BL)\n2. Packing List\n"
                         "3. Certificate of Origin\n4. Certificate of Analysis"),
        action_required_ar="اطلب من المورد:\n1. بوليصة الشحن\n2. قائمة التعبئة\n3. شهادة المنشأ\n4. شهادة التحليل",
        due_date=ctx.in_days(2 if sailed else 5),
        shipment_id=shipment.id,
    )]


@rule(BUYER_RULES)
def check_balance_payments(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    """Balance reminders keyed off ETA: 14 days, the final 8 days, and 2 days out."""
    if shipment.status in ("delivered", "invoiced") or not shipment.eta:
        return []
    days = ctx.days_until(shipment.eta)
    balance = _balance(shipment)
    eta = shipment.eta
    drafts = []

    if days == 14 and balance > 0:
        drafts.append(NotificationDraft(
            type="balance_payment_due_2w",
            severity="warning",
            title="Balance payment due in 2 weeks",
            title_ar="دفع الرصيد مستحق خلال أسبوعين",
            message=(f"Shipment {shipment.sn} arrives {format_date(eta)}. "
                     f"Prepare balance payment of ${balance:,.2f}."),
            message_ar=(f"الشحنة {shipment.sn} تصل {format_date(eta)}. "
                        f"جهز دفع الرصيد بمبلغ ${balance:,.2f}."),
            action_required="Schedule balance payment to supplier",
            action_required_ar="جدولة دفع الرصيد للمورد",
            due_date=eta - timedelta(days=8),
            shipment_id=shipment.id,
        ))

    if 0 <= days <= 8 and balance > 0:
        drafts.append(NotificationDraft(
            type="balance_payment_critical_8d",
            severity="error",
            title=f"{URGENT}Balance payment required",
            title_ar=f"{URGENT_AR}دفع الرصيد مطلوب",
            message=f"ETA in {days} days! Balance payment MUST be made NOW! Amount: ${balance:,.2f}",
            message_ar=f"الوصول خلال {days} يوم! يجب دفع الرصيد الآن! المبلغ: ${balance:,.2f}",
            action_required="Pay balance immediately to release documents",
            action_required_ar="ادفع الرصيد فوراً للإفراج عن المستندات",
            due_date=eta - timedelta(days=5),
            auto_escalate_hours=24,
            shipment_id=shipment.id,
        ))

    if days == 2:
        drafts.append(NotificationDraft(
            type="send_docs_to_customs",
            severity="warning",
            title="Send documents to customs agent",
            title_ar="إرسال المستندات للمخلص الجمركي",
            message=f"Shipment {shipment.sn} arrives in 2 days. Send original documents to customs agent.",
            message_ar=f"الشحنة {shipment.sn} تصل خلال يومين. أرسل المستندات الأصلية للمخلص الجمركي.",
            action_required="Send BL, invoice, packing list and certificates to customs agent",
            action_required_ar="أرسل البوليصة والفاتورة وقائمة التعبئة والشهادات للمخلص",
            due_date=eta,
            shipment_id=shipment.id,
        ))
    return drafts


@rule(BUYER_RULES)
def check_pod_clearance(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    if not shipment.eta or shipment.status != "arrived":
        return []
    if ctx.days_since(shipment.eta) != 2:
        return []
    return [NotificationDraft(
        type="pod_clearance_check",
        severity="info",
        title="Check clearance status",
        title_ar="تحقق من حالة التخليص",
        message=f"Shipment {shipment.sn} arrived 2 days ago. Check clearance progress at port.",
        message_ar=f"وصلت الشحنة {shipment.sn} منذ يومين. تحقق من تقدم التخليص في الميناء.",
        action_required="Contact customs agent for clearance status",
        action_required_ar="تواصل مع المخلص الجمركي لمعرفة حالة التخليص",
        due_date=ctx.in_days(1),
        shipment_id=shipment.id,
    )]


@rule(BUYER_RULES)
def check_delivery_status(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    if not shipment.eta or shipment.status == "delivered":
        return []
    if ctx.days_since(shipment.eta) != 7:
        return []
    return [NotificationDraft(
        type="delivery_status_check",
        severity="warning",
        title="Delivery status update needed",
        title_ar="مطلوب تحديث حالة التسليم",
        message=f"It has been 7 days since ETA for shipment {shipment.sn}. Please update delivery status.",
        message_ar=f"مرت 7 أيام على موعد وصول الشحنة {shipment.sn}. يرجى تحديث حالة التسليم.",
        action_required="Update shipment delivery status",
        action_required_ar="تحديث حالة تسليم الشحنة",
        due_date=ctx.in_days(1),
        shipment_id=shipment.id,
    )]


@rule(BUYER_RULES)
def check_quality_check(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    if shipment.status != "delivered":
        return []
    return [NotificationDraft(
        type="quality_check_needed",
        severity="info",
        title="Quality check required",
        title_ar="فحص الجودة مطلوب",
        message=f"Shipment {shipment.sn} has been delivered. Request warehouse quality inspection.",
        message_ar=f"تم تسليم الشحنة {shipment.sn}. اطلب فحص الجودة من المستودع.",
        action_required="Contact warehouse for quality check and feedback",
        action_required_ar="تواصل مع المستودع لفحص الجودة والملاحظات",
        due_date=ctx.in_days(3),
        shipment_id=shipment.id,
    )]


@rule(BUYER_RULES)
def check_clearance_entry_overdue(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    if not is_clearance_entry_overdue(shipment.status, shipment.customs_clearance_date,
                                      shipment.eta, ctx.today):
        return []
    return [NotificationDraft(
        type="clearance_overdue",
        severity="warning",
        title="Customs clearance date missing",
        title_ar="تاريخ التخليص الجمركي مفقود",
        message=(f"Shipment {shipment.sn} has arrived but no customs clearance date has been "
                 "entered. Contact the customs agent to prevent demurrage charges."),
        message_ar=(f"وصلت الشحنة {shipment.sn} لكن لم يتم إدخال تاريخ التخليص الجمركي. "
                    "تواصل مع المخلص لتجنب رسوم الأرضية."),
        action_required="Enter customs clearance date",
        action_required_ar="إدخال تاريخ التخليص الجمركي",
        shipment_id=shipment.id,
    )]


@rule(BUYER_RULES)
def check_demurrage_warning(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    status = calculate_demurrage(shipment.eta, shipment.free_time_days,
                                 shipment.customs_clearance_date, ctx.today)
    if status is None or status.state != WARNING:
        return []
    deadline = format_date(status.deadline)
    return [NotificationDraft(
        type="demurrage_warning",
        severity="warning",
        title="Free time ending soon",
        title_ar="الوقت المجاني ينتهي قريباً",
        message=(f"Shipment {shipment.sn} has {status.days_remaining} day(s) of free time left "
                 f"(deadline {deadline}). Clear the goods to avoid demurrage."),
        message_ar=(f"الشحنة {shipment.sn} متبقي لها {status.days_remaining} يوم من الوقت المجاني "
                    f"(الموعد {deadline}). خلّص البضاعة لتجنب رسوم الأرضية."),
        action_required="Expedite customs clearance",
        action_required_ar="تسريع التخليص الجمركي",
        due_date=status.deadline,
        shipment_id=shipment.id,
    )]


@rule(BUYER_RULES)
def check_demurrage_exceeded(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    status = calculate_demurrage(shipment.eta, shipment.free_time_days,
                                 shipment.customs_clearance_date, ctx.today)
    if status is None or status.state != EXCEEDED:
        return []
    deadline = format_date(status.deadline)
    return [NotificationDraft(
        type="demurrage_exceeded",
        severity="error",
        title=f"{URGENT}Demurrage charges accruing",
        title_ar=f"{URGENT_AR}رسوم الأرضية قيد التراكم",
        message=(f"Shipment {shipment.sn} has exceeded free time by {status.days_overdue} day(s). "
                 f"Deadline was {deadline}. Contact accounting to track demurrage costs."),
        message_ar=(f"الشحنة {shipment.sn} تجاوزت الوقت المجاني بـ {status.days_overdue} يوم. "
                    f"كان الموعد النهائي {deadline}. تواصل مع المحاسبة لتتبع تكاليف الأرضية."),
        action_required="Record demurrage costs and expedite clearance",
        action_required_ar="تسجيل تكاليف الأرضية وتسريع التخليص",
        due_date=status.deadline,
        shipment_id=shipment.id,
    )]


# ═══════════════════════════════════════════════════════════════════════════
#  Seller rules (outgoing shipments)
# ═══════════════════════════════════════════════════════════════════════════

@rule(SELLER_RULES)
def check_seller_contract_created(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    if not shipment.contract_id:
        return []
    return [NotificationDraft(
        type="seller_contract_created",
        severity="info",
        title="Request documents from buyer",
        title_ar="طلب المستندات من المشتري",
        message=(f"Shipment {shipment.sn}: Request buyer to send signed proforma/contract, "
                 "markings, shipping instructions, and advance payment."),
        message_ar=(f"الشحنة {shipment.sn}: اطلب من المشتري إرسال العقد الموقع والعلامات "
                    "وتعليمات الشحن والدفعة المقدمة."),
        action_required=("Contact buyer to send:\n1. Signed proforma/contract\n2. Product markings\n"
                         "3. Shipping instructions\n4. Advance payment (if applicable)"),
        action_required_ar="تواصل مع المشتري لإرسال:\n1. العقد الموقع\n2. علامات المنتج\n3. تعليمات الشحن\n4. الدفعة المقدمة",
        due_date=ctx.in_days(3),
        contract_id=shipment.contract_id,
        meta={"shipment_id": shipment.id, "shipment_sn": shipment.sn},
    )]


@rule(SELLER_RULES)
def check_seller_shipping_deadline(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    if not shipment.contract_ship_date:
        return []
    if shipment.status in ("sailed", "arrived", "delivered"):
        return []
    days = ctx.days_until(shipment.contract_ship_date)
    if days > 5:
        return []
    urgent = days <= 2
    ship_by = format_date(shipment.contract_ship_date)
    return [NotificationDraft(
        type="seller_shipping_deadline",
        severity="error" if urgent else "warning",
        title=f"{URGENT}Shipping deadline critical" if urgent else "Shipping deadline approaching",
        title_ar=f"{URGENT_AR}موعد الشحن حرج" if urgent else "موعد الشحن يقترب",
        message=f"Shipment {shipment.sn} must ship by {ship_by} ({days} days)",
        message_ar=f"الشحنة {shipment.sn} يجب شحنها بحلول {ship_by} ({_days_text_ar(days)})",
        action_required="Coordinate with warehouse and logistics to load on time",
        action_required_ar="التنسيق مع المستودع والخدمات اللوجستية للتحميل في الموعد",
        due_date=shipment.contract_ship_date,
        shipment_id=shipment.id,
    )]


@rule(SELLER_RULES)
def check_seller_booking_share(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    if shipment.status != "booked":
        return []
    return [NotificationDraft(
        type="seller_booking_share",
        severity="info",
        title="Share booking details with customer",
        title_ar="مشاركة تفاصيل الحجز مع العميل",
        message=f"Shipment {shipment.sn} is booked. Share booking details with customer.",
        message_ar=f"تم حجز الشحنة {shipment.sn}. شارك تفاصيل الحجز مع العميل.",
        action_required="Send booking confirmation and details to customer",
        action_required_ar="إرسال تأكيد وتفاصيل الحجز للعميل",
        due_date=ctx.in_days(1),
        shipment_id=shipment.id,
    )]


@rule(SELLER_RULES)
def check_seller_goods_loaded(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    if shipment.status not in ("loaded", "sailed"):
        return []
    return [NotificationDraft(
        type="seller_goods_loaded",
        severity="warning",
        title="Issue shipping documents",
        title_ar="إصدار مستندات الشحن",
        message=(f"Shipment {shipment.sn} is loaded. Customs agent must issue export docs "
                 "and in-house docs must be prepared."),
        message_ar=(f"تم تحميل الشحنة {shipment.sn}. يجب على وكيل الجمارك إصدار مستندات "
                    "التصدير وتجهيز المستندات الداخلية."),
        action_required=("1. Customs agent: issue shipping documents\n2. Issue in-house docs\n"
                         "3. Share draft with customer for approval"),
        action_required_ar="1. وكيل الجمارك: إصدار مستندات الشحن\n2. إصدار المستندات الداخلية\n3. مشاركة المسودة مع العميل",
        due_date=ctx.in_days(2),
        shipment_id=shipment.id,
    )]


_SELLER_PAYMENT_REMINDERS = {
    7: ("seller_payment_reminder_7d", "info", "Payment due in 7 days", "الدفع مستحق خلال 7 أيام"),
    3: ("seller_payment_reminder_3d", "warning", "Payment due in 3 days", "الدفع مستحق خلال 3 أيام"),
    0: ("seller_payment_due_today", "error", "Payment due TODAY", "الدفع مستحق اليوم"),
}


@rule(SELLER_RULES)
def check_seller_payment_reminders(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    if not shipment.eta or not shipment.contract_id:
        return []
    contract = shipment.contract
    signed_at = contract.signed_at if contract and contract.signed_at else (
        shipment.created_at.date() if shipment.created_at else None
    )
    drafts = []
    for item in ctx.payment_schedule(shipment.contract_id):
        due = payment_due_date(item, signed_at)
        if due is None:
            continue
        reminder = _SELLER_PAYMENT_REMINDERS.get(ctx.days_until(due))
        if reminder is None:
            continue
        ntype, severity, title, title_ar = reminder
        drafts.append(NotificationDraft(
            type=ntype,
            severity=severity,
            title=title,
            title_ar=title_ar,
            message=f"Shipment {shipment.sn}: {_percent(item)}% payment is due {format_date(due)}.",
            message_ar=f"الشحنة {shipment.sn}: دفعة {_percent(item)}% مستحقة {format_date(due)}.",
            action_required=f"Remind customer: payment ({_percent(item)}%) due {format_date(due)}",
            action_required_ar=f"ذكّر العميل: الدفعة ({_percent(item)}%) مستحقة {format_date(due)}",
            due_date=due,
            shipment_id=shipment.id,
        ))

    if ctx.days_until(shipment.eta) == 14:
        drafts.append(NotificationDraft(
            type="seller_request_balance",
            severity="info",
            title="Request balance payment from customer",
            title_ar="طلب دفع الرصيد من العميل",
            message=(f"Shipment {shipment.sn} ETA is {format_date(shipment.eta)} (14 days). "
                     "Ask customer to pay balance."),
            message_ar=(f"الشحنة {shipment.sn} موعد الوصول {format_date(shipment.eta)} (14 يوم). "
                        "اطلب من العميل دفع الرصيد."),
            action_required="Contact customer to arrange balance payment",
            action_required_ar="تواصل مع العميل لترتيب دفع الرصيد",
            due_date=shipment.eta - timedelta(days=7),
            shipment_id=shipment.id,
        ))
    return drafts


@rule(SELLER_RULES)
def check_seller_send_original_docs(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    if _balance(shipment) > 0 or not shipment.docs_draft_approved or shipment.original_docs_sent:
        return []
    return [NotificationDraft(
        type="seller_send_original_docs",
        severity="warning",
        title="Send original documents to customer",
        title_ar="إرسال المستندات الأصلية للعميل",
        message=(f"Shipment {shipment.sn}: Payment received and drafts approved. "
                 "Send original documents via courier."),
        message_ar=(f"الشحنة {shipment.sn}: تم استلام الدفع والموافقة على المسودات. "
                    "أرسل المستندات الأصلية عبر البريد السريع."),
        action_required=("1. Confirm courier address with customer\n2. Send original documents\n"
                         "3. Provide tracking number"),
        action_required_ar="1. تأكيد العنوان مع العميل\n2. إرسال المستندات الأصلية\n3. تقديم رقم التتبع",
        due_date=ctx.in_days(2),
        shipment_id=shipment.id,
    )]


@rule(SELLER_RULES)
def check_seller_arrival_followup(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    if not shipment.eta or shipment.status != "arrived":
        return []
    if ctx.days_since(shipment.eta) != 2:
        return []
    return [NotificationDraft(
        type="seller_arrival_followup",
        severity="info",
        title="Follow up on arrival",
        title_ar="متابعة الوصول",
        message=f"Shipment {shipment.sn} arrived 2 days ago. Check with customer that all is in order.",
        message_ar=f"وصلت الشحنة {shipment.sn} منذ يومين. تحقق مع العميل من أن كل شيء على ما يرام.",
        action_required="Contact customer: is the shipment cleared? Any issues?",
        action_required_ar="تواصل مع العميل: هل تم تخليص الشحنة؟ هل توجد مشاكل؟",
        due_date=ctx.in_days(1),
        shipment_id=shipment.id,
    )]


@rule(SELLER_RULES)
def check_seller_quality_feedback(shipment: Shipment, ctx: RuleContext) -> list[NotificationDraft]:
    if not shipment.eta or shipment.quality_feedback_requested:
        return []
    if ctx.days_since(shipment.eta) != 10:
        return []

    def _mark_requested(_notification):
        shipment.quality_feedback_requested = True

    return [NotificationDraft(
        type="seller_quality_feedback",
        severity="info",
        title="Request quality feedback",
        title_ar="طلب ملاحظات الجودة",
        message=f"Shipment {shipment.sn}: 10 days since arrival. Request quality feedback from customer.",
        message_ar=f"الشحنة {shipment.sn}: مرت 10 أيام منذ الوصول. اطلب ملاحظات الجودة من العميل.",
        action_required="Ask customer for product quality feedback",
        action_required_ar="اطلب من العميل ملاحظاته على جودة المنتج",
        due_date=ctx.in_days(3),
        shipment_id=shipment.id,
        on_created=_mark_requested,
    )]
