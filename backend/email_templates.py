from typing import Optional, Tuple

FEST_NAME = "Fest Portal"
SIGNATURE_TEXT = (
    "Regards,\n"
    "FEST WEB TEAM\n"
)
SIGNATURE_HTML = "<p style=\"margin-bottom: 0;\">Regards,<br><strong>FEST WEB TEAM</strong></p>"


def _wrap_html(heading: str, body: str) -> str:
    return f"""
    <html>
      <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #1b1f24;">
        <div style="max-width: 560px; margin: 0 auto; padding: 24px; border: 1px solid #e6e6e6; border-radius: 12px;">
          <h2 style="margin-top: 0;">{heading}</h2>
          {body}
          <hr style="border: none; border-top: 1px solid #e6e6e6; margin: 24px 0;" />
          {SIGNATURE_HTML}
        </div>
      </body>
    </html>
    """


def _button(url: str, label: str) -> str:
    return (
        "<p style=\"text-align: center; margin: 24px 0;\">"
        f"<a href=\"{url}\" style=\"display:inline-block;padding:12px 18px;background:#11131a;color:#fff;"
        f"text-decoration:none;border-radius:6px;\">{label}</a></p>"
        "<p>If the button doesn't work, copy and paste this URL into your browser:</p>"
        f"<p style=\"word-break: break-all;\">{url}</p>"
    )


def build_verification_email(verify_url: str, validity_hours: int = 24, otp: Optional[str] = None, otp_minutes: int = 10) -> Tuple[str, str, str]:
    subject = f"Verify your email address for {FEST_NAME}"
    otp_text = f"Alternatively, enter this one-time code: {otp} (valid for {otp_minutes} minutes).\n\n" if otp else ""
    text = (
        "Hello,\n\n"
        f"Thank you for registering with {FEST_NAME}. Please verify your email address using the link below:\n"
        f"{verify_url}\n\n"
        f"This link is valid for {validity_hours} hours.\n\n"
        f"{otp_text}"
        "If you did not request this, you can safely ignore this email.\n\n"
        f"{SIGNATURE_TEXT}"
    )
    otp_html = (
        f"<p>Or enter this one-time code: <strong style=\"letter-spacing: 4px;\">{otp}</strong> "
        f"(valid for {otp_minutes} minutes).</p>"
        if otp else ""
    )
    html = _wrap_html(
        "Verify your email address",
        f"<p>Hello,</p><p>Thank you for registering with {FEST_NAME}. Please verify your email address using the button below.</p>"
        f"{_button(verify_url, 'Verify Email')}"
        f"<p>This verification link is valid for <strong>{validity_hours} hours</strong>.</p>"
        f"{otp_html}",
    )
    return subject, html, text


def build_otp_email(otp: str, validity_minutes: int = 10) -> Tuple[str, str, str]:
    subject = f"Your {FEST_NAME} verification code"
    text = (
        "Hello,\n\n"
        f"Your verification code is {otp}. It is valid for {validity_minutes} minutes.\n\n"
        "If you did not request this, you can safely ignore this email.\n\n"
        f"{SIGNATURE_TEXT}"
    )
    html = _wrap_html(
        "Your verification code",
        f"<p>Hello,</p><p>Your verification code is</p>"
        f"<p style=\"font-size: 28px; letter-spacing: 6px; text-align: center;\"><strong>{otp}</strong></p>"
        f"<p>It is valid for <strong>{validity_minutes} minutes</strong>.</p>",
    )
    return subject, html, text


def build_reset_email(reset_url: str, validity_minutes: int = 30) -> Tuple[str, str, str]:
    subject = f"Reset your {FEST_NAME} password"
    text = (
        "Hello,\n\n"
        f"We received a request to reset your {FEST_NAME} account password. Use the link below to proceed:\n"
        f"{reset_url}\n\n"
        f"This link is valid for {validity_minutes} minutes.\n\n"
        "If you did not request this, you can safely ignore this email.\n\n"
        f"{SIGNATURE_TEXT}"
    )
    html = _wrap_html(
        "Reset your password",
        f"<p>Hello,</p><p>We received a request to reset your {FEST_NAME} account password. Click the button below to continue.</p>"
        f"{_button(reset_url, 'Reset Password')}"
        f"<p>This reset link is valid for <strong>{validity_minutes} minutes</strong>.</p>",
    )
    return subject, html, text


def build_admin_invite_email(signup_url: str, event_name: str, club_name: str, validity_days: int = 7) -> Tuple[str, str, str]:
    subject = f"You're invited to coordinate {event_name}"
    text = (
        "Hello,\n\n"
        f"You have been invited to join {FEST_NAME} as the admin of {event_name} ({club_name}).\n"
        f"Complete your admin signup here:\n{signup_url}\n\n"
        f"This invitation is valid for {validity_days} days and can be used once.\n\n"
        f"{SIGNATURE_TEXT}"
    )
    html = _wrap_html(
        "Admin invitation",
        f"<p>Hello,</p><p>You have been invited to join {FEST_NAME} as the admin of "
        f"<strong>{event_name}</strong> ({club_name}).</p>"
        f"{_button(signup_url, 'Complete Signup')}"
        f"<p>This invitation is valid for <strong>{validity_days} days</strong> and can be used once.</p>",
    )
    return subject, html, text


def build_registration_email(name: str, event_name: str, team_name: Optional[str] = None) -> Tuple[str, str, str]:
    subject = f"Registration confirmed: {event_name}"
    team_line = f" with team {team_name}" if team_name else ""
    text = (
        f"Hello {name},\n\n"
        f"Your registration for {event_name}{team_line} is confirmed.\n\n"
        f"{SIGNATURE_TEXT}"
    )
    html = _wrap_html(
        "Registration confirmed",
        f"<p>Hello {name},</p><p>Your registration for <strong>{event_name}</strong>{team_line} is confirmed.</p>",
    )
    return subject, html, text


def build_smtp_test_email(sent_at: str) -> Tuple[str, str, str]:
    subject = "SMTP Configuration Test"
    text = f"This is a test email to verify SMTP configuration.\n\nSent at: {sent_at}\n"
    html = _wrap_html("SMTP configuration test", f"<p>This is a test email to verify SMTP configuration.</p><p>Sent at: {sent_at}</p>")
    return subject, html, text
