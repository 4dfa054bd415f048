# app/utils/dependencies.py

from app.db.mongo import get_scheduled_emails_collection
from app.db.scheduled_email_store import ScheduledEmailStore
from app.utils.credential_vault import Base64CredentialVault
from app.utils.gmail_sender import GmailSender


def get_store() -> ScheduledEmailStore:
    return ScheduledEmailStore(get_scheduled_emails_collection())


def get_vault():
    return Base64CredentialVault()


def get_mail_sender():
    return GmailSender()
