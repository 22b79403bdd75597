"""
partnertrace -- Anonymous Contact-Trace Notification Fan-out
============================================================

When a user reports a positive test result, partnertrace finds every partner
they met within each condition's lookback window and notifies each of them
exactly once per channel -- in-app and push for platform users, SMS for known
phone numbers, and a manual follow-up list for everyone else -- without ever
revealing who reported or when exactly the encounter took place.

PRIVACY: Recipient-facing text only ever contains a condition label and a
deliberately vague elapsed-time phrase.  Reporter identity and literal dates
are blocked from every outbound channel.
"""

__version__ = "0.1.0"
