"""
HTML mail templates and the renderer that fills them.

Each template is declared together with the pydantic model of the fields it
substitutes. Placeholders are written ``{fieldAlias}``; a template whose
placeholders differ from its model's fields fails when it is defined, so a
typo surfaces at import time instead of in a user's inbox.
"""

import html
from string import Formatter
from typing import Type

from pydantic import BaseModel, ConfigDict, Field


class VerificationFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    verification_code: str = Field(alias="verificationCode")


class WelcomeFields(BaseModel):
    name: str


class PasswordResetFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reset_url: str = Field(alias="resetURL")


class ResetSuccessFields(BaseModel):
    pass


class EmailTemplate:
    def __init__(self, subject: str, body: str, fields: Type[BaseModel]):
        expected = {field.alias or name for name, field in fields.model_fields.items()}
        found = {name for _, name, _, _ in Formatter().parse(body) if name is not None}
        if found != expected:
            raise ValueError(
                f"Template '{subject}' placeholders {sorted(found)} "
                f"do not match fields {sorted(expected)}"
            )
        self.subject = subject
        self.body = body
        self.fields = fields

    def render(self, values: BaseModel) -> str:
        if not isinstance(values, self.fields):
            raise TypeError(f"Expected {self.fields.__name__}, got {type(values).__name__}")
        # Stored names are already escaped; unescape first so nothing is escaped twice
        substitutions = {
            key: html.escape(html.unescape(str(value)))
            for key, value in values.model_dump(by_alias=True).items()
        }
        return self.body.format(**substitutions)


_FOOTER = """
  <div style="text-align: center; margin-top: 20px; font-size: 0.8em; color: #777;">
    <p>This email was sent automatically. Please do not reply.</p>
  </div>
</body>
</html>
"""


def _page(title: str, color: str, heading: str, content: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0" />
  <title>{title}</title>
</head>
<body style="font-family: 'Segoe UI', sans-serif; color: #2b2b2b; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background-color: {color}; padding: 20px; text-align: center;">
    <h1 style="color: #ffffff; margin: 0;">{heading}</h1>
  </div>
  <div style="background-color: #ffffff; padding: 20px; border-radius: 0 0 8px 8px; box-shadow: 0 2px 8px rgba(0, 0, 0, 0.1);">
{content}
  </div>{_FOOTER}"""


VERIFICATION_EMAIL = EmailTemplate(
    subject="Verify your email",
    body=_page("Email Confirmation", "#003366", "Confirm Your Email", """
    <p>Hi there,</p>
    <p>Thank you for creating an account! To continue, please verify your email with the following code:</p>
    <div style="text-align: center; margin: 30px 0;">
      <span style="font-size: 36px; font-weight: bold; color: #003366;">{verificationCode}</span>
    </div>
    <p>This code will be valid for 24 hours.</p>
    <p>If you did not register for an account, kindly ignore this email.</p>"""),
    fields=VerificationFields,
)

WELCOME_EMAIL = EmailTemplate(
    subject="Welcome!",
    body=_page("Welcome", "#005f73", "Welcome!", """
    <p>Dear {name},</p>
    <p>Your email address has been verified and your account is ready.</p>
    <ul style="margin-left: 20px;">
      <li>Log in and explore your dashboard</li>
      <li>Update your preferences and settings</li>
    </ul>"""),
    fields=WelcomeFields,
)

PASSWORD_RESET_EMAIL = EmailTemplate(
    subject="Reset your password",
    body=_page("Password Reset Request", "#cc0000", "Reset Your Password", """
    <p>Hello,</p>
    <p>We received a request to reset the password for your account. Click below to proceed:</p>
    <div style="text-align: center; margin: 30px 0;">
      <a href="{resetURL}" style="background-color: #cc0000; color: white; padding: 12px 20px; text-decoration: none; border-radius: 5px; font-weight: bold;">Reset Password</a>
    </div>
    <p>This link is valid for one hour. If you did not request this, please ignore this email.</p>"""),
    fields=PasswordResetFields,
)

RESET_SUCCESS_EMAIL = EmailTemplate(
    subject="Password reset successful",
    body=_page("Password Changed", "#006400", "Password Updated Successfully", """
    <p>Hello,</p>
    <p>Your password has been changed for your account.</p>
    <p>If this was not you, reset your password immediately and contact support.</p>"""),
    fields=ResetSuccessFields,
)
