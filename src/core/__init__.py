"""Core domain package for the moderation gateway.

Core contains admission, template matching, the pending-request ledger and
review logic without any Telegram or storage-specific code, keeping the
business logic portable.
"""
