"""
OTP delivery
============

Formats the step-up email and hands it to the injected mail transport
(any object exposing send(to, subject, html, text) -> bool, EmailService in
production, a fake in tests).

When the transport is missing or fails, the code can optionally be disclosed
back to the operator (OTP_INSECURE_DISCLOSURE). That path is flagged on the
result and must never be presented as an email send.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from payroll.models import OperationType
from payroll.utils.helpers import mask_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryResult:
    sent: bool
    recipient: str
    disclosed_code: Optional[str] = None
    error: Optional[str] = None

    @property
    def insecure(self) -> bool:
        return self.disclosed_code is not None

    def to_dict(self):
        data = {
            'sent': self.sent,
            'channel': 'email' if self.sent else None,
            'destination_masked': mask_email(self.recipient),
        }
        if self.insecure:
            data.update({
                'channel': 'disclosed',
                'assurance': 'insecure_disclosure',
                'code': self.disclosed_code,
            })
        return data


class OTPDelivery:
    """Sends step-up codes by email"""

    def __init__(self, transport=None, validity_minutes: int = 10, insecure_disclosure: bool = False):
        self.transport = transport
        self.validity_minutes = validity_minutes
        self.insecure_disclosure = insecure_disclosure

    def deliver(self, recipient_email: str, code: str, operation_type: OperationType) -> DeliveryResult:
        error = None

        if self.transport is None:
            error = 'No mail transport configured'
        else:
            subject = f"OTP Verification Required - {operation_type.label}"
            html = self.render_html(code, operation_type)
            text = self.render_text(code, operation_type)
            try:
                if self.transport.send(recipient_email, subject, html, text):
                    logger.info(f"OTP sent to {mask_email(recipient_email)} for {operation_type.value}")
                    return DeliveryResult(sent=True, recipient=recipient_email)
                error = 'Mail transport rejected the message'
            except Exception as e:
                logger.error(f"Mail transport error: {e}")
                error = str(e)

        logger.error(f"Failed to send OTP to {mask_email(recipient_email)}: {error}")

        if self.insecure_disclosure:
            logger.warning(
                f"[INSECURE] OTP for {operation_type.value} disclosed to the operator "
                f"instead of {mask_email(recipient_email)}"
            )
            return DeliveryResult(sent=False, recipient=recipient_email, disclosed_code=code, error=error)

        return DeliveryResult(sent=False, recipient=recipient_email, error=error)

    def render_html(self, code: str, operation_type: OperationType) -> str:
        operation_text = operation_type.label
        return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>OTP Verification - PayrollPro</title>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background: #2563eb; color: white; padding: 20px; text-align: center; border-radius: 8px 8px 0 0; }}
        .content {{ background: #f9fafb; padding: 30px; border-radius: 0 0 8px 8px; }}
        .otp-code {{ background: #1f2937; color: #f9fafb; font-size: 32px; font-weight: bold; text-align: center; padding: 20px; border-radius: 8px; letter-spacing: 8px; margin: 20px 0; }}
        .warning {{ background: #fef3c7; border: 1px solid #f59e0b; color: #92400e; padding: 15px; border-radius: 6px; margin: 20px 0; }}
        .footer {{ text-align: center; margin-top: 30px; color: #6b7280; font-size: 14px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>OTP Verification Required</h1>
            <p>PayrollPro Security Verification</p>
        </div>
        <div class="content">
            <h2>{operation_text} Operation</h2>
            <p>You have requested a sensitive operation ({operation_text.lower()}). For security reasons, this action requires verification.</p>
            <p><strong>Your verification code is:</strong></p>
            <div class="otp-code">{code}</div>
            <div class="warning">
                <strong>Important Security Information:</strong>
                <ul>
                    <li>This code expires in {self.validity_minutes} minutes</li>
                    <li>Do not share this code with anyone</li>
                    <li>If you didn't request this action, please contact support immediately</li>
                </ul>
            </div>
            <p>Enter this code in the verification dialog to complete the operation.</p>
        </div>
        <div class="footer">
            <p>This is an automated message from PayrollPro. Please do not reply to this email.</p>
        </div>
    </div>
</body>
</html>"""

    def render_text(self, code: str, operation_type: OperationType) -> str:
        return f"""OTP Verification Required - PayrollPro

You have requested a sensitive operation ({operation_type.label.lower()}). For security reasons, this action requires verification.

Your verification code is: {code}

IMPORTANT SECURITY INFORMATION:
- This code expires in {self.validity_minutes} minutes
- Do not share this code with anyone
- If you didn't request this action, please contact support immediately

Enter this code in the verification dialog to complete the operation.

This is an automated message from PayrollPro. Please do not reply to this email."""
