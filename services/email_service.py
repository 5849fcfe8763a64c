# services/email_service.py
import logging

import requests
from jinja2 import Environment, select_autoescape

from config import BREVO_API_URL, BREVO_TIMEOUT

logger = logging.getLogger(__name__)

_env = Environment(autoescape=select_autoescape(default=True, default_for_string=True))

LOW_STOCK_TEMPLATE = _env.from_string("""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: #ff6b6b; color: white; padding: 20px; border-radius: 8px 8px 0 0;">
    <h1 style="margin: 0; font-size: 24px;">Stock Alert</h1>
  </div>
  <div style="background: #f5f5f5; padding: 20px; border-radius: 0 0 8px 8px;">
    <p><strong>Item:</strong> {{ name }}</p>
    <p><strong>Location:</strong> {{ location }}</p>
    <p><strong>Current Stock:</strong> {{ on_hand }} {{ unit }}</p>
    <p><strong>Minimum Required:</strong> {{ min_level }} {{ unit }}</p>
    <p><strong>Last Updated By:</strong> {{ updated_by_name }}</p>
    <p style="color: #999; margin-top: 30px; font-size: 12px;">
      This is an automated alert from {{ app_name }}.
    </p>
  </div>
</div>
""")


def render_low_stock_email(payload, app_name="Inventory Check"):
    """HTML body for a low-stock alert; every payload value is escaped"""
    return LOW_STOCK_TEMPLATE.render(
        name=payload.get("name", ""),
        location=payload.get("location", ""),
        on_hand=payload.get("on_hand", ""),
        min_level=payload.get("min_level", ""),
        unit=payload.get("unit", ""),
        updated_by_name=payload.get("updated_by_name", ""),
        app_name=app_name,
    )


def send_transactional_email(api_key, sender, recipients, subject, html, url=BREVO_API_URL):
    """
    Send one HTML message through the Brevo transactional API.
    sender is {"email": ..., "name": ...}. Returns the requests.Response;
    callers decide what a non-2xx status means.
    """
    response = requests.post(
        url,
        headers={"api-key": api_key, "Content-Type": "application/json"},
        json={
            "sender": sender,
            "to": [{"email": email} for email in recipients],
            "subject": subject,
            "html": html,
        },
        timeout=BREVO_TIMEOUT,
    )
    if response.ok:
        logger.info(f"[Email] Alert sent to: {recipients}")
    else:
        logger.error(f"[Email] Brevo error: {response.status_code} - {response.text}")
    return response
