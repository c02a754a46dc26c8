"""Custom exception hierarchy for the vaultshare core.

Every error is scoped to a single request.  The request layer decides
what to show the end user from ``informational`` and ``user_message``.
"""

GENERIC_MESSAGE = "Something went wrong. Please try again."


class VaultError(Exception):
    """Base exception for all vaultshare errors."""

    informational: bool = False
    """True when the condition is a no-op the user should only be told about."""

    @property
    def user_message(self) -> str:
        return GENERIC_MESSAGE


class ForbiddenError(VaultError):
    """Raised when the caller is not the owner or an authorized recipient."""


class NotFoundError(VaultError):
    """Raised when an item or grant does not exist in the caller's scope."""


class AlreadySharedError(VaultError):
    """Raised when a grant already exists for the (item, recipient) pair."""

    informational = True

    @property
    def user_message(self) -> str:
        return "This item is already shared with that person."


class RecipientMustPurgeFirstError(VaultError):
    """Raised when the recipient still holds this item in their trash.

    The owner can re-share only after the recipient permanently deletes
    their trashed copy.
    """

    def __init__(self, item_id: str, recipient_id: str) -> None:
        super().__init__(f"Recipient {recipient_id} has item {item_id} in their trash")
        self.item_id = item_id
        self.recipient_id = recipient_id

    @property
    def user_message(self) -> str:
        return (
            f"{self.recipient_id} has this item in their trash. "
            "They must permanently delete it before it can be shared again."
        )


class InvalidStateError(VaultError):
    """Raised when an operation's state precondition does not hold."""


class StorageFailureError(VaultError):
    """Raised on transaction or commit failures; the operation was rolled back."""


class ShareLinkUnavailableError(VaultError):
    """Raised when a share link exists but can no longer be used."""


class ShareLinkRevokedError(ShareLinkUnavailableError):
    """Raised when the link's creator revoked it."""

    @property
    def user_message(self) -> str:
        return "This link was revoked."


class ShareLinkExpiredError(ShareLinkUnavailableError):
    """Raised when the link is past its expiry time."""

    @property
    def user_message(self) -> str:
        return "This link has expired."
