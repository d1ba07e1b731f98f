"""
channels — Per-channel delivery backends.

Each channel exposes a sender with one coroutine:
    EmailSender.send_email(to, subject, body) → DeliveryAttempt
    SmsSender.send_sms(to, body)              → DeliveryAttempt

Senders pick the first configured provider and never raise.
"""
