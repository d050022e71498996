from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from paygsite.application.services.template_renderer import render_template

PARAGRAPH_STYLE = "margin: 0 0 16px 0; color: #3f3f46; line-height: 1.6;"
BUTTON_STYLE = (
    "display: inline-block; background-color: #2563eb; color: #ffffff; padding: 12px 24px; "
    "border-radius: 6px; text-decoration: none; font-weight: 500;"
)

EMAIL_WRAPPER = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>PAYGSite</title>
</head>
<body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f4f4f5;">
  <table width="100%" cellpadding="0" cellspacing="0" style="background-color: #f4f4f5; padding: 40px 20px;">
    <tr><td align="center">
      <table width="100%" cellpadding="0" cellspacing="0" style="max-width: 600px; background-color: #ffffff; border-radius: 8px;">
        <tr><td style="background-color: #2563eb; padding: 24px; text-align: center;">
          <h1 style="margin: 0; color: #ffffff; font-size: 24px;">PAYGSite</h1>
        </td></tr>
        <tr><td style="padding: 32px 24px;">{body}</td></tr>
        <tr><td style="background-color: #f4f4f5; padding: 24px; text-align: center; font-size: 12px; color: #71717a;">
          <p style="margin: 0 0 8px 0;">&copy; {{ year }} PAYGSite. All rights reserved.</p>
          <p style="margin: 0;">Pay-As-You-Go websites for UK small businesses</p>
        </td></tr>
      </table>
    </td></tr>
  </table>
</body>
</html>
"""


@dataclass(frozen=True)
class EmailTemplate:
    subject: str
    html_body: str
    text: str


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


EMAIL_TEMPLATES: dict[str, EmailTemplate] = {
    "welcome": EmailTemplate(
        subject="Welcome to PAYGSite! - {{ businessName }}",
        html_body=f"""
<h2>Welcome to PAYGSite!</h2>
<p style="{PARAGRAPH_STYLE}">Thank you for signing up! Your account for <strong>{{{{ businessName }}}}</strong> is ready.</p>
<p style="{PARAGRAPH_STYLE}">We're building your website now. You'll receive another email once it's ready for you to review.</p>
<p><a href="{{{{ dashboardUrl }}}}" style="{BUTTON_STYLE}">Access Your Dashboard</a></p>
<p style="{PARAGRAPH_STYLE}">If you have any questions, just reply to this email.</p>
""",
        text="""Welcome to PAYGSite!

Thank you for signing up! Your account for {{ businessName }} is ready.

We're building your website now. You'll receive another email once it's ready for you to review.

Access your dashboard: {{ dashboardUrl }}

- The PAYGSite Team
""",
    ),
    "site_ready": EmailTemplate(
        subject="Your website is ready! - {{ businessName }}",
        html_body=f"""
<h2>Great news! Your website is live</h2>
<p style="{PARAGRAPH_STYLE}">Your website for <strong>{{{{ businessName }}}}</strong> has been created and is now live!</p>
<p><a href="{{{{ siteUrl }}}}" style="{BUTTON_STYLE}">View Your Website</a></p>
<p style="{PARAGRAPH_STYLE}">To make changes to your site, access your dashboard: <a href="{{{{ dashboardUrl }}}}">{{{{ dashboardUrl }}}}</a></p>
""",
        text="""Great news! Your website is live!

Your website for {{ businessName }} has been created and is now live.

View your site: {{ siteUrl }}

To make changes, access your dashboard: {{ dashboardUrl }}

- The PAYGSite Team
""",
    ),
    "payment_failed": EmailTemplate(
        subject="Action required: Payment failed - {{ businessName }}",
        html_body=f"""
<h2>Payment failed</h2>
<p style="{PARAGRAPH_STYLE}">We were unable to process your payment for <strong>{{{{ businessName }}}}</strong>.</p>
<p style="{PARAGRAPH_STYLE}">To keep your website active, please update your payment method:</p>
<p><a href="{{{{ dashboardUrl }}}}/billing" style="{BUTTON_STYLE}">Update Payment Method</a></p>
""",
        text="""Payment failed

We were unable to process your payment for {{ businessName }}.

To keep your website active, please update your payment method:
{{ dashboardUrl }}/billing

- The PAYGSite Team
""",
    ),
    "subscription_cancelled": EmailTemplate(
        subject="Subscription cancelled - {{ businessName }}",
        html_body=f"""
<h2>Your subscription has been cancelled</h2>
<p style="{PARAGRAPH_STYLE}">Your subscription for <strong>{{{{ businessName }}}}</strong> has been cancelled.</p>
<p style="{PARAGRAPH_STYLE}">Your website will remain accessible until the end of your current billing period.</p>
<p><a href="{{{{ dashboardUrl }}}}/billing" style="{BUTTON_STYLE}">Reactivate Subscription</a></p>
""",
        text="""Your subscription has been cancelled

Your subscription for {{ businessName }} has been cancelled.

Your website will remain accessible until the end of your current billing period.

Reactivate from your dashboard: {{ dashboardUrl }}/billing

- The PAYGSite Team
""",
    ),
}


def render_email(template_name: str, data: dict[str, Any]) -> RenderedEmail | None:
    template = EMAIL_TEMPLATES.get(template_name)
    if template is None:
        return None

    variables = {"year": datetime.now(UTC).year, **data}
    return RenderedEmail(
        subject=render_template(template.subject, variables),
        html=render_template(EMAIL_WRAPPER.replace("{body}", template.html_body), variables, escape_html=True),
        text=render_template(template.text, variables),
    )
