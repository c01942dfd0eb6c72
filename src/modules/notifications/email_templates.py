"""Named email templates for order and dispute notifications.

Each template is a subject, a heading and a list of body lines written as
``str.format`` patterns over a flat context dict.  A body line whose
fields are missing or empty in the context is dropped, so optional facts
(dispute description, resolution) need no conditional markup.

The registry renders a template into plain text plus an HTML alternative
(``notifications/email.html``, autoescaped by Django's template engine).
"""

from __future__ import annotations

import string
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from django.conf import settings
from django.template.loader import render_to_string

_formatter = string.Formatter()


class TemplateNotRegistered(KeyError):
    """No email template is registered under the requested name."""


@dataclass(frozen=True)
class EmailTemplate:
    subject: str
    heading: str
    lines: Tuple[str, ...] = ()
    closing: str = "The Marketplace Team"


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    text: str
    html: str
    lines: List[str] = field(default_factory=list)


def _fields(pattern: str) -> List[str]:
    return [name for _, name, _, _ in _formatter.parse(pattern) if name]


def _fill(pattern: str, context: Mapping[str, Any]) -> Optional[str]:
    names = _fields(pattern)
    if any(context.get(name) in (None, "") for name in names):
        return None
    return pattern.format(**{name: context[name] for name in names})


class EmailTemplateRegistry:
    def __init__(self, templates: Optional[Dict[str, EmailTemplate]] = None) -> None:
        self._templates: Dict[str, EmailTemplate] = dict(templates or {})

    def register(self, name: str, template: EmailTemplate) -> None:
        self._templates[name] = template

    def get(self, name: str) -> EmailTemplate:
        try:
            return self._templates[name]
        except KeyError:
            raise TemplateNotRegistered(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._templates

    def names(self) -> List[str]:
        return sorted(self._templates)

    def render(self, name: str, context: Mapping[str, Any]) -> RenderedEmail:
        template = self.get(name)
        ctx = {"frontend_url": settings.FRONTEND_URL, **context}

        subject = _fill(template.subject, ctx) or template.subject
        heading = _fill(template.heading, ctx) or template.heading
        lines = [line for line in (_fill(p, ctx) for p in template.lines) if line]

        text = "\n\n".join([heading, *lines, f"-- {template.closing}"])
        html = render_to_string(
            "notifications/email.html",
            {
                "subject": subject,
                "heading": heading,
                "lines": lines,
                "closing": template.closing,
            },
        )
        return RenderedEmail(subject=subject, text=text, html=html, lines=lines)


DEFAULT_TEMPLATES: Dict[str, EmailTemplate] = {
    "payment_reminder": EmailTemplate(
        subject="Complete your payment - Order #{order_number}",
        heading="Hi {customer_name}, your order is waiting for payment",
        lines=(
            "Order #{order_number} was created and is reserved for you.",
            "Total due: ${total_price} via {payment_method}.",
            "Pay now: {order_url}",
        ),
    ),
    "order_confirmation": EmailTemplate(
        subject="Order Confirmation - #{order_number}",
        heading="Thank you for your purchase, {customer_name}!",
        lines=(
            "We received your payment for Order #{order_number}.",
            "Items: {items_summary}",
            "Total paid: ${total_price}",
            "Track your order: {order_url}",
        ),
    ),
    "payment_received": EmailTemplate(
        subject="Payment Received - Order #{order_number}",
        heading="Payment Received!",
        lines=(
            "Your order has been paid. Please ship ASAP.",
            "Order #{order_number} total: ${total_price}",
            "Ship to: {shipping_summary}",
            "Update shipping details in your dashboard.",
        ),
    ),
    "order_shipped": EmailTemplate(
        subject="Your Order Has Been Shipped - #{order_number}",
        heading="Order Shipped!",
        lines=(
            "Order: #{order_number}",
            "Tracking: {tracking_number}",
            "Carrier: {carrier}",
            "Your order is on its way. Confirm when received.",
        ),
    ),
    "order_delivered": EmailTemplate(
        subject="Order Delivered - #{order_number}",
        heading="Order Delivered",
        lines=("The buyer has confirmed delivery for Order #{order_number}.",),
    ),
    "dispute_created": EmailTemplate(
        subject="New Dispute - Order #{order_number}",
        heading="New Dispute Created",
        lines=(
            "Order: #{order_number}",
            "Reason: {reason}",
            "Description: {description}",
            "Opened by: {opened_by}",
        ),
        closing="Admin Team",
    ),
    "dispute_notification": EmailTemplate(
        subject="Dispute for Your Order #{order_number}",
        heading="Dispute Opened",
        lines=(
            "Order: #{order_number}",
            "Reason: {reason}",
            "Description: {description}",
            "We will review it shortly.",
        ),
    ),
    "dispute_request_received": EmailTemplate(
        subject="We received your dispute - Order #{order_number}",
        heading="Hi {customer_name}, your dispute request was received",
        lines=(
            "Order: #{order_number}",
            "Reason: {reason}",
            "Our team will review it and get back to you.",
        ),
    ),
    "dispute_updated": EmailTemplate(
        subject="Dispute Update - Order #{order_number}",
        heading="Dispute Status: {status}",
        lines=(
            "Order: #{order_number}",
            "Resolution: {resolution}",
        ),
    ),
}


def default_registry() -> EmailTemplateRegistry:
    return EmailTemplateRegistry(DEFAULT_TEMPLATES)
