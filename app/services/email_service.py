import logging
from typing import List, Optional, Dict, Any, Tuple
import resend
from app.config import settings
from app.utils.retry import retry_email
from jinja2 import Template

logger = logging.getLogger(__name__)

# Configure Resend global API key
resend.api_key = settings.RESEND_API_KEY

FOOTER = '<p style="font-size: 12px; color: #666;">This email was sent from Tracker Suite CRM</p>'

# Client-facing templates available from the composer
CLIENT_EMAIL_TEMPLATES: Dict[str, Dict[str, str]] = {
    "followUpReminder": {
        "name": "Follow-up Reminder",
        "subject": "Follow-up on our recent conversation",
        "html": """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #333;">Hello {{ clientName }},</h2>
            <p>I hope this email finds you well. I wanted to follow up on our recent conversation regarding {{ topic }}.</p>
            <p>{{ message }}</p>
            <p>Please feel free to reach out if you have any questions or would like to schedule a call.</p>
            <p>Best regards,<br>{{ senderName }}</p>
            <hr style="border: none; border-top: 1px solid #eee; margin: 20px 0;">
            """ + FOOTER + """
        </div>
        """,
    },
    "welcomeMessage": {
        "name": "Welcome Message",
        "subject": "Welcome to our service!",
        "html": """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #333;">Welcome {{ clientName }}!</h2>
            <p>Thank you for choosing our services. We're excited to work with you.</p>
            <p>{{ message }}</p>
            <p>If you have any questions, please don't hesitate to reach out.</p>
            <p>Best regards,<br>{{ senderName }}</p>
            <hr style="border: none; border-top: 1px solid #eee; margin: 20px 0;">
            """ + FOOTER + """
        </div>
        """,
    },
    "projectUpdate": {
        "name": "Project Update",
        "subject": "Project Update - {{ projectName }}",
        "html": """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #333;">Project Update: {{ projectName }}</h2>
            <p>Hello {{ clientName }},</p>
            <p>I wanted to provide you with an update on {{ projectName }}:</p>
            <div style="background: #f9f9f9; padding: 15px; border-radius: 5px; margin: 15px 0;">
                {{ message }}
            </div>
            <p>Please let me know if you have any questions or feedback.</p>
            <p>Best regards,<br>{{ senderName }}</p>
            <hr style="border: none; border-top: 1px solid #eee; margin: 20px 0;">
            """ + FOOTER + """
        </div>
        """,
    },
}

TRIAL_WARNING_TEMPLATE = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h2 style="color: #2563eb;">Your Trial is Ending Soon</h2>
    <p>Hi {{ first_name }},</p>
    <p>Your free trial of Tracker Suite will expire in <strong>{{ days }} day{{ plural }}</strong>.</p>
    <p>To continue managing your client relationships without interruption, please upgrade your account:</p>
    <div style="text-align: center; margin: 30px 0;">
        <a href="{{ upgrade_url }}"
           style="background-color: #2563eb; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block;">
            Upgrade Now
        </a>
    </div>
    <p>Questions? Reply to this email and we'll be happy to help.</p>
    <p>Best regards,<br>The Tracker Suite Team</p>
</div>
"""

TRIAL_EXPIRED_TEMPLATE = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h2 style="color: #dc2626;">Your Trial Has Expired</h2>
    <p>Hi {{ first_name }},</p>
    <p>Your free trial of Tracker Suite has expired. To continue accessing your client data and using our powerful features, please upgrade your account.</p>
    <div style="text-align: center; margin: 30px 0;">
        <a href="{{ upgrade_url }}"
           style="background-color: #dc2626; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block;">
            Upgrade Now
        </a>
    </div>
    <p>Your data is safe and will be restored once you upgrade.</p>
    <p>Need help choosing a plan? Reply to this email and we'll assist you.</p>
    <p>Best regards,<br>The Tracker Suite Team</p>
</div>
"""


def _is_configured() -> bool:
    api_key = settings.RESEND_API_KEY
    return bool(api_key) and not api_key.startswith("your-") and api_key != "None"


@retry_email
def _deliver(params: Dict[str, Any]) -> Any:
    return resend.Emails.send(params)


class EmailService:
    """Email service with template rendering."""

    @staticmethod
    def send_email(
        to: List[str],
        subject: str,
        html_content: str,
        from_email: Optional[str] = None,
        text_content: Optional[str] = None,
        return_details: bool = False
    ) -> Any:
        """
        Send email using Resend.

        Args:
            to: List of recipient emails
            subject: Email subject
            html_content: HTML email content
            from_email: Sender email (default: configured sender)
            text_content: Optional plain-text alternative
            return_details: If True, returns (success, message/error) tuple.

        Returns:
            bool or (bool, str)
        """
        # Mock mode if no API key or placeholder
        if not _is_configured():
            msg = "Resend API Key missing/invalid. Mocking success."
            logger.info(msg)
            return (True, msg) if return_details else True

        params = {
            "from": from_email or settings.EMAIL_FROM,
            "to": to,
            "subject": subject,
            "html": html_content,
        }
        if text_content:
            params["text"] = text_content

        try:
            response = _deliver(params)
            logger.info(f"Email sent to {to}: {response}")
            return (True, "Email sent successfully") if return_details else True
        except Exception as e:
            error_str = str(e)
            logger.error(f"Error sending email: {error_str}")
            if "api key" in error_str.lower():
                error_str = "Email service authentication failed. Please check your Resend API key."
            return (False, error_str) if return_details else False

    @staticmethod
    def render_template(template_str: str, context: Dict[str, Any]) -> str:
        """Render Jinja2 template with context."""
        template = Template(template_str)
        return template.render(**context)

    @staticmethod
    def render_client_template(template_key: str, variables: Dict[str, Any]) -> Tuple[str, str]:
        """Render a client template to (subject, html). Raises KeyError for unknown keys."""
        template = CLIENT_EMAIL_TEMPLATES[template_key]
        subject = EmailService.render_template(template["subject"], variables)
        html = EmailService.render_template(template["html"], variables)
        return subject, html

    @staticmethod
    def list_client_templates() -> List[Dict[str, str]]:
        return [
            {"id": key, "name": t["name"], "subject": t["subject"]}
            for key, t in CLIENT_EMAIL_TEMPLATES.items()
        ]

    @staticmethod
    def send_trial_warning_email(to_email: str, first_name: str, days_remaining: int) -> bool:
        plural = "" if days_remaining == 1 else "s"
        context = {
            "first_name": first_name,
            "days": days_remaining,
            "plural": plural,
            "upgrade_url": f"{settings.FRONTEND_URL}/upgrade",
        }
        html_content = EmailService.render_template(TRIAL_WARNING_TEMPLATE, context)
        text_content = (
            f"Hi {first_name},\n\n"
            f"Your free trial of Tracker Suite will expire in {days_remaining} day{plural}.\n\n"
            f"To continue managing your client relationships without interruption, "
            f"please upgrade your account at: {context['upgrade_url']}\n\n"
            "Best regards,\nThe Tracker Suite Team"
        )
        return EmailService.send_email(
            to=[to_email],
            subject=f"Your Tracker Suite trial expires in {days_remaining} day{plural}",
            html_content=html_content,
            text_content=text_content,
        )

    @staticmethod
    def send_trial_expired_email(to_email: str, first_name: str) -> bool:
        context = {"first_name": first_name, "upgrade_url": f"{settings.FRONTEND_URL}/upgrade"}
        html_content = EmailService.render_template(TRIAL_EXPIRED_TEMPLATE, context)
        text_content = (
            f"Hi {first_name},\n\n"
            "Your free trial of Tracker Suite has expired. To continue accessing your client data, "
            f"please upgrade your account at: {context['upgrade_url']}\n\n"
            "Your data is safe and will be restored once you upgrade.\n\n"
            "Best regards,\nThe Tracker Suite Team"
        )
        return EmailService.send_email(
            to=[to_email],
            subject="Your Tracker Suite trial has expired",
            html_content=html_content,
            text_content=text_content,
        )


# Global email service instance
email_service = EmailService()
