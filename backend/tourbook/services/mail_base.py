"""
Tourbook API: Abstract Mail Service Interface
=============================================

What:  Contract for delivering transactional email (password reset links).
Why:   AuthService depends on this interface only, so tests and alternative
       transports can stand in for SMTP.
"""

from abc import ABC, abstractmethod


class MailService(ABC):
    """
    Contract:
        - send() delivers one plain-text message or raises MailDeliveryError
        - implementations own their retry policy
    """

    @abstractmethod
    async def send(self, to: str, subject: str, body: str) -> None:
        ...
