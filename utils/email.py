import resend
from config import config
from logging_config import get_logger

logger = get_logger("email")

if config.RESEND_API_KEY:
    resend.api_key = config.RESEND_API_KEY

def send_email(to_email: str, subject: str, html_content: str):
    """
    Send an email through Resend.
    Does nothing if RESEND_API_KEY is not configured.
    """
    if not config.RESEND_API_KEY:
        logger.warning(f"Resend API key not configured. Skipping email to {to_email} with subject '{subject}'")
        return None

    try:
        params = {
            "from": config.MAIL_FROM,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }
        response = resend.Emails.send(params)
        logger.info(f"Email sent successfully to {to_email}", extra={"data": {"email_id": response.get("id")}})
        return response
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}", exc_info=True)
        return None


def base_email_template(title: str, content: str, cta_url: str = None, cta_text: str = None, footer_text: str = "") -> str:
    """Minimal responsive HTML wrapper shared by all Costify emails."""
    cta_html = f"""
        <p style="text-align: center; margin: 32px 0;">
            <a href="{cta_url}" style="background-color: #f59e0b; color: #111827; padding: 14px 28px; text-decoration: none; border-radius: 8px; font-weight: 600;">{cta_text}</a>
        </p>
    """ if cta_url and cta_text else ""

    return f"""
    <!DOCTYPE html>
    <html lang="en">
    <head><meta charset="UTF-8"><title>{title}</title></head>
    <body style="font-family: -apple-system, 'Segoe UI', Roboto, Arial, sans-serif; background-color: #f3f4f6; margin: 0; padding: 40px 20px;">
        <div style="max-width: 600px; margin: 0 auto; background-color: #ffffff; border-radius: 12px; overflow: hidden;">
            <div style="background-color: #1f2937; padding: 24px; text-align: center;">
                <h1 style="color: #ffffff; font-size: 22px; margin: 0;">Costify</h1>
            </div>
            <div style="padding: 32px; color: #374151; line-height: 1.6;">
                {content}
                {cta_html}
            </div>
            <div style="background-color: #f9fafb; padding: 20px 32px; text-align: center; color: #6b7280; font-size: 13px;">
                {footer_text}
            </div>
        </div>
    </body>
    </html>
    """


def send_project_invitation_email(to_email: str, project_name: str, invited_by_name: str, role: str, invite_url: str):
    """Email an invitation link for joining a project."""
    subject = f"{invited_by_name} invited you to {project_name} on Costify"

    content = f"""
        <h2 style="color: #111827; font-size: 20px; margin-top: 0;">You're invited</h2>
        <p><strong>{invited_by_name}</strong> has invited you to join <strong>{project_name}</strong> as a <strong>{role.title()}</strong>.</p>
        <p>Open the link below to accept. The invitation can be used once and expires in {config.INVITATION_EXPIRY_DAYS} days.</p>
    """

    html_content = base_email_template(
        title="Project Invitation",
        content=content,
        cta_url=invite_url,
        cta_text="Accept Invitation",
        footer_text="If you didn't expect this invitation, you can safely ignore this email.",
    )

    return send_email(to_email, subject, html_content)
