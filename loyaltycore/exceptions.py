"""Exception hierarchy for loyaltycore."""


class LoyaltyCoreError(Exception):
    """Base exception for all loyaltycore errors."""


class ChallengeStoreError(LoyaltyCoreError):
    """Raised when the challenge store backend cannot be reached."""


class PersistenceError(LoyaltyCoreError):
    """Raised when subscription storage operations fail."""


class NotificationError(LoyaltyCoreError):
    """Raised when an outbound notification cannot be delivered."""


class TrialProcessingError(LoyaltyCoreError):
    """Raised when a trial batch cannot enumerate its candidates."""


class ConfigError(LoyaltyCoreError):
    """Raised when configuration is invalid."""
