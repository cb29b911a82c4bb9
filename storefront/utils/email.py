import logging

import requests
from fastapi import Request

from storefront.config import Settings

logger = logging.getLogger(__name__)


class Mailer:
    """
    Sends email via the Mailgun HTTP API.

    ``send`` never raises: it returns True on success and False on any
    failure, leaving the caller to decide whether the failure matters.
    """

    def __init__(self, settings: Settings):
        self.api_key = settings.mailgun_api_key
        self.domain = settings.mailgun_domain
        self.from_address = settings.sender_email
        self.from_name = settings.sender_name

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.domain and self.from_address)

    def send(
        self,
        to_email: str,
        subject: str,
        text_content: str,
        html_content: str | None = None,
    ) -> bool:
        if not self.configured:
            logger.error(
                "Mailgun not configured | domain=%s from=%s",
                self.domain,
                self.from_address,
            )
            return False

        data = {
            "from": f"{self.from_name} <{self.from_address}>",
            "to": to_email,
            "subject": subject,
            "text": text_content,
        }
        if html_content:
            data["html"] = html_content

        try:
            response = requests.post(
                f"https://api.mailgun.net/v3/{self.domain}/messages",
                auth=("api", self.api_key),
                data=data,
                timeout=10,
            )
        except requests.RequestException as e:
            logger.exception("Mailgun email exception | to=%s | error=%s", to_email, str(e))
            return False

        if response.status_code != 200:
            logger.error(
                "Mailgun email failed | to=%s | status=%s | response=%s",
                to_email,
                response.status_code,
                response.text,
            )
            return False

        return True


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer
