"""
Subject/body rendering for deadline reminders.

Precedence for a category: custom body -> built-in category copy ->
stored template for the category -> stored DEFAULT template -> hard-coded
fallback. Placeholders ({{client_name}} etc.) are replaced with plain
string substitution so that user-authored bodies never go through a
template engine; Jinja2 is only used for the fixed footers.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from jinja2 import Template
from sqlalchemy.orm import Session

from deadline_alerts.config import settings
from deadline_alerts.models import AlertTemplate, AlertType, Client, DEFAULT_TEMPLATE_KEY
from deadline_alerts.services.deadline_resolver import ResolvedDeadline, friendly_name


@dataclass(frozen=True)
class TemplateEntry:
    subject: str
    body: str
    default_days_before_due: Optional[int] = None


@dataclass(frozen=True)
class RenderContext:
    client_name: str
    company_name: str
    due_date: str
    task_title: str
    task_description: str
    client_portal_link: str
    alert_type_friendly_name: str

    def placeholders(self) -> Dict[str, str]:
        return {
            "{{client_name}}": self.client_name,
            "{{company_name}}": self.company_name,
            "{{due_date}}": self.due_date,
            "{{task_title}}": self.task_title,
            "{{task_description}}": self.task_description,
            "{{client_portal_link}}": self.client_portal_link,
            "{{alert_type_friendly_name}}": self.alert_type_friendly_name,
        }


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    body: str


class TemplateStore:
    """Stored templates keyed by category, fetched once and passed around."""

    def __init__(self, entries: Optional[Dict[str, TemplateEntry]] = None):
        self._entries = dict(entries or {})

    @classmethod
    def load(cls, db: Session) -> "TemplateStore":
        rows: Iterable[AlertTemplate] = db.query(AlertTemplate).all()
        return cls({
            row.alert_type: TemplateEntry(
                subject=row.subject,
                body=row.body,
                default_days_before_due=row.default_days_before_due,
            )
            for row in rows
        })

    def get(self, alert_type) -> Optional[TemplateEntry]:
        key = getattr(alert_type, "value", alert_type)
        return self._entries.get(key)

    def default(self) -> Optional[TemplateEntry]:
        return self._entries.get(DEFAULT_TEMPLATE_KEY)


def format_due_date(value) -> str:
    """31 December 2024"""
    return f"{value.day} {value.strftime('%B %Y')}"


def client_portal_link(client: Client) -> str:
    return f"{settings.client_portal_base}/client-portal/{client.id}"


def build_context(client: Client, deadline: ResolvedDeadline, alert_type) -> RenderContext:
    client_name = client.client_name or "Valued Client"
    return RenderContext(
        client_name=client_name,
        company_name=client.company_name or client.client_name or "Your Company",
        due_date=format_due_date(deadline.due_date),
        task_title=deadline.title,
        task_description=deadline.description or "",
        client_portal_link=client_portal_link(client),
        alert_type_friendly_name=friendly_name(alert_type),
    )


def substitute_placeholders(text: str, context: RenderContext) -> str:
    for token, value in context.placeholders().items():
        text = text.replace(token, value)
    return text


BUILTIN_TEMPLATES: Dict[AlertType, TemplateEntry] = {
    AlertType.NEXT_ACCOUNTS_DUE: TemplateEntry(
        subject="Important: Annual Accounts Filing Deadline - {{company_name}}",
        body=(
            "<p>Dear {{client_name}},</p>"
            "<p>This is a reminder that the annual accounts for <strong>{{company_name}}</strong> "
            "must be filed with Companies House by <strong>{{due_date}}</strong>.</p>"
            "<p>To prepare your accounts in good time we will need your bank statements, sales and "
            "purchase records, and details of any assets bought or sold during the year. Late filing "
            "attracts an automatic penalty from Companies House, so please send these to us as soon "
            "as you can.</p>"
            "<p>You can upload documents securely through your client portal: "
            "<a href=\"{{client_portal_link}}\">{{client_portal_link}}</a></p>"
        ),
    ),
    AlertType.NEXT_CONFIRMATION_STATEMENT_DUE: TemplateEntry(
        subject="Action Required: Confirmation Statement Filing for {{company_name}}",
        body=(
            "<p>Dear {{client_name}},</p>"
            "<p>The confirmation statement for <strong>{{company_name}}</strong> is due by "
            "<strong>{{due_date}}</strong>.</p>"
            "<p>Please let us know if there have been any changes to directors, shareholders, "
            "people with significant control, the registered office address or your SIC codes "
            "during the past year. If nothing has changed, a short reply confirming this is all "
            "we need to file on your behalf.</p>"
            "<p>Your client portal: <a href=\"{{client_portal_link}}\">{{client_portal_link}}</a></p>"
        ),
    ),
    AlertType.NEXT_VAT_DUE: TemplateEntry(
        subject="VAT Return Deadline Approaching - {{company_name}}",
        body=(
            "<p>Dear {{client_name}},</p>"
            "<p>Your next VAT return for <strong>{{company_name}}</strong> must be submitted, and "
            "any VAT owed paid, by <strong>{{due_date}}</strong>.</p>"
            "<p>Please make sure all sales invoices, purchase receipts and bank transactions for the "
            "period are up to date so that we can prepare the return under Making Tax Digital. Late "
            "submission or payment can lead to penalty points and interest charges from HMRC.</p>"
            "<p>Upload your records here: <a href=\"{{client_portal_link}}\">{{client_portal_link}}</a></p>"
        ),
    ),
    AlertType.CORPORATION_TAX_DEADLINE: TemplateEntry(
        subject="Corporation Tax Payment Deadline - {{company_name}}",
        body=(
            "<p>Dear {{client_name}},</p>"
            "<p>The corporation tax payment for <strong>{{company_name}}</strong> is due by "
            "<strong>{{due_date}}</strong>.</p>"
            "<p>HMRC charges interest on late payments from the day after the deadline. If you would "
            "like us to confirm the amount payable or discuss a payment plan, please get in touch "
            "before the due date.</p>"
            "<p>Your client portal: <a href=\"{{client_portal_link}}\">{{client_portal_link}}</a></p>"
        ),
    ),
    AlertType.CLIENT_TASK: TemplateEntry(
        subject="Important Reminder: {{task_title}} - Action Required",
        body=(
            "<p>Dear {{client_name}},</p>"
            "<p>I am writing to remind you about <strong>{{task_title}}</strong>, due by "
            "<strong>{{due_date}}</strong>.</p>"
            "<p>{{task_description}}</p>"
            "<p>Please let us know if you have any questions or need more time.</p>"
        ),
    ),
}

FALLBACK_TEMPLATE = TemplateEntry(
    subject="Important Deadline Reminder - {{company_name}}",
    body=(
        "<p>Dear {{client_name}},</p>"
        "<p>This is a reminder for an upcoming deadline on <strong>{{due_date}}</strong>.</p>"
    ),
)


def custom_subject(title: str) -> str:
    return f"Reminder: {title} Due Soon"


def follow_up_subject(title: str) -> str:
    return f"Follow-up Reminder: {title}"


def select_template(alert_type, store: Optional[TemplateStore]) -> TemplateEntry:
    """Built-in copy first, then stored category row, stored DEFAULT, fallback."""
    try:
        builtin = BUILTIN_TEMPLATES.get(AlertType(getattr(alert_type, "value", alert_type)))
    except ValueError:
        builtin = None
    if builtin:
        return builtin
    if store is not None:
        entry = store.get(alert_type) or store.default()
        if entry:
            return entry
    return FALLBACK_TEMPLATE


def render_for_category(
    alert_type,
    custom_body: Optional[str],
    context: RenderContext,
    store: Optional[TemplateStore] = None,
    subject: Optional[str] = None,
) -> RenderedMessage:
    """
    Render subject and body for one reminder.

    A non-blank custom body wins outright and is paired with the generic
    "Reminder: ... Due Soon" subject unless an explicit subject is given.
    """
    if custom_body and custom_body.strip():
        chosen_subject = subject or custom_subject(context.task_title)
        return RenderedMessage(
            subject=substitute_placeholders(chosen_subject, context),
            body=substitute_placeholders(custom_body, context),
        )

    entry = select_template(alert_type, store)
    return RenderedMessage(
        subject=substitute_placeholders(entry.subject, context),
        body=substitute_placeholders(entry.body, context),
    )


PRODUCTION_FOOTER = Template(
    """
<p>&nbsp;</p>
<p>Kind regards,</p>
<p><strong>{{ firm_name }}</strong></p>
<hr style="border:none; border-top:1px solid #e5e7eb;">
<p style="font-size:11px; color:#6b7280;">This email and any attachments are confidential and intended solely for the addressee. If you have received it in error, please notify {{ firm_name }} and delete it. This reminder was sent automatically based on the deadlines we hold for your company.</p>
"""
)

TEST_FOOTER = Template(
    """
<p>&nbsp;</p>
<p>Kind regards,</p>
<p><strong>{{ firm_name }}</strong></p>
{% if contact_email %}<p>If you have any questions, please contact us at {{ contact_email }}.</p>{% endif %}
<p>&nbsp;</p>
<p style="font-size:12px; color:#505050;">This is a test email. In a real scenario, your accountant might be CC'd if notification preference allows.</p>
"""
)


def with_production_footer(body: str, firm_name: Optional[str] = None) -> str:
    return body + PRODUCTION_FOOTER.render(firm_name=firm_name or settings.FIRM_NAME)


def with_test_footer(body: str, contact_email: Optional[str] = None, firm_name: Optional[str] = None) -> str:
    return body + TEST_FOOTER.render(
        firm_name=firm_name or settings.FIRM_NAME,
        contact_email=contact_email or settings.FIRM_CONTACT_EMAIL,
    )
