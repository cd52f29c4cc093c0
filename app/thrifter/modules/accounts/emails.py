from __future__ import annotations

from datetime import date

from flask import current_app, render_template

from app.thrifter import mailer
from app.thrifter.constants import ROLE_ADMIN, ROLE_DRIVER

_ROLE_LABELS = {ROLE_ADMIN: "Administrator", ROLE_DRIVER: "Driver"}


def send_verify_otp_email(to_email: str, to_name: str, otp: str) -> bool:
    ttl = current_app.config["OTP_TTL_MINUTES"]
    html = render_template("email/verify_otp.html", name=to_name, otp=otp, ttl_minutes=ttl)
    text = f"Hi {to_name},\n\nYour verification code is {otp}. It expires in {ttl} minutes."
    return mailer.send_html_email(to_email, "Your verification code", html, text)


def send_reset_password_email(to_email: str, to_name: str, reset_url: str) -> bool:
    ttl = current_app.config["RESET_TOKEN_TTL_MINUTES"]
    html = render_template("email/reset_password.html", name=to_name, reset_url=reset_url, ttl_minutes=ttl)
    text = f"Hi {to_name},\n\nReset your password here (expires in {ttl} minutes):\n{reset_url}"
    return mailer.send_html_email(to_email, "Reset your password", html, text)


def send_credentials_email(to_email: str, name: str, password: str, role: str) -> bool:
    """Welcome email for accounts created by an administrator."""
    role_label = _ROLE_LABELS.get(role, "User")
    login_url = f"{current_app.config['FRONTEND_URL']}/login"
    html = render_template(
        "email/credentials.html",
        name=name,
        email=to_email,
        password=password,
        role_label=role_label,
        login_url=login_url,
        year=date.today().year,
    )
    text = (
        f"Welcome to Thrifter!\n\nHi {name},\n\n"
        f"Your {role_label.lower()} account has been created.\n\n"
        f"Email: {to_email}\nPassword: {password}\nRole: {role_label}\n\n"
        f"Login URL: {login_url}\n\n"
        "For security, please change your password after your first login."
    )
    return mailer.send_html_email(to_email, f"Welcome to Thrifter - Your {role_label} Account Credentials", html, text)
