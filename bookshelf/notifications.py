"""
Contact form delivery by email.

Each submission is sent once over SMTP to the operator mailbox; there is
no retry or queue.
"""

from email.message import EmailMessage
from html import escape

import aiosmtplib
import structlog

from bookshelf.exceptions import DeliveryFailed
from bookshelf.models import ContactMessage, MessageResponse

logger = structlog.get_logger(__name__)

SENDER_NAME = "BooksHouse Contact"
SUCCESS_MESSAGE = "Message sent successfully!"


class ContactMailer:
    """Sends contact form messages to the operator address."""

    def __init__(
        self,
        username: str,
        password: str,
        hostname: str = "smtp.gmail.com",
        port: int = 465,
        timeout: float = 30.0
    ):
        """
        Initialize contact mailer.

        Args:
            username: SMTP account; also the sender and recipient address
            password: SMTP password or app password
            hostname: SMTP server host
            port: SMTP server port (implicit TLS)
            timeout: Connection and command timeout in seconds
        """
        self.username = username
        self.password = password
        self.hostname = hostname
        self.port = port
        self.timeout = timeout
        self.logger = logger.bind(component="contact_mailer")

    def build_message(self, contact: ContactMessage) -> EmailMessage:
        message = EmailMessage()
        message["From"] = f'"{SENDER_NAME}" <{self.username}>'
        message["To"] = self.username
        message["Subject"] = f"BooksHouse Form Message from {contact.name}"
        message.set_content(
            f"Name: {contact.name}\nEmail: {contact.email}\nMessage:\n{contact.message}\n"
        )
        message.add_alternative(
            "<h3>New Message from BooksHouse Contact Form</h3>"
            f"<p><strong>Name:</strong> {escape(contact.name)}</p>"
            f"<p><strong>Email:</strong> {escape(contact.email)}</p>"
            f"<p><strong>Message:</strong><br/> {escape(contact.message)}</p>",
            subtype="html"
        )
        return message

    async def send_contact_message(self, contact: ContactMessage) -> MessageResponse:
        """
        Deliver a contact form submission.

        Raises:
            DeliveryFailed: If the transport rejects or fails the send
        """
        message = self.build_message(contact)
        try:
            await aiosmtplib.send(
                message,
                hostname=self.hostname,
                port=self.port,
                username=self.username,
                password=self.password,
                use_tls=True,
                timeout=self.timeout
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            self.logger.error("Failed to send contact message", sender=contact.email, error=str(e))
            raise DeliveryFailed("Failed to send message") from e

        self.logger.info("Contact message sent", sender=contact.email)
        return MessageResponse(message=SUCCESS_MESSAGE)
