"""Authorization predicates over (conversation, acting user).

Every gateway operation that needs a right calls one of these before it
touches anything, instead of checking member/admin lists inline.
"""

from murmur.db.models import Conversation, ConversationMember, User
from murmur.errors import Forbidden, InvalidInput, NotAMember


def require_member(conversation: Conversation, user: User) -> ConversationMember:
    """The caller's membership row; NotAMember if there is none."""
    member = conversation.member(user.id)
    if member is None:
        raise NotAMember()
    return member


def require_admin(conversation: Conversation, user: User) -> ConversationMember:
    """The caller's membership row; Forbidden unless they are an admin."""
    member = conversation.member(user.id)
    if member is None or not member.is_admin:
        raise Forbidden("Only a group admin can do this")
    return member


def require_group(conversation: Conversation) -> None:
    if not conversation.is_group:
        raise InvalidInput("This operation is only valid for group conversations")
