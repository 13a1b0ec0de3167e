from enum import Enum
from typing import Optional


class ChatState(str, Enum):
    UNVERIFIED = "unverified"
    VERIFIED_NO_MODEL = "verified_no_model"
    VERIFIED_WITH_MODEL = "verified_with_model"
    ADMIN_BROADCAST_PENDING = "admin_broadcast_pending"


def derive_state(
    is_member: bool,
    selected_model: Optional[str],
    broadcast_pending: bool = False,
    is_admin: bool = False,
) -> ChatState:
    """State of a chat for this turn; never stored.

    A pending broadcast session only counts when the sender is the admin.
    """
    if is_admin and broadcast_pending:
        return ChatState.ADMIN_BROADCAST_PENDING
    if not is_member:
        return ChatState.UNVERIFIED
    if selected_model:
        return ChatState.VERIFIED_WITH_MODEL
    return ChatState.VERIFIED_NO_MODEL
