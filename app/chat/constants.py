"""
Constants and configuration for chat module features.

This module centralizes configuration values for:
- Message operations (content limits, search, history pages)
- Group chats (name/description limits, minimum size)
- Reactions
- Typing indicators

Time windows that operators tune per environment (typing expiry, edit
window) live in Django settings: CHAT_TYPING_TIMEOUT_SECONDS and
CHAT_EDIT_WINDOW_HOURS.

Import example:
    from chat.constants import MESSAGE_CONFIG, CHAT_CONFIG
"""

from typing import Final


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message operations."""

    # Content limits
    MAX_CONTENT_LENGTH: Final[int] = 1000  # Characters

    # Content shown in place of a soft-deleted message
    DELETED_PLACEHOLDER: Final[str] = "This message was deleted"

    # Search settings
    SEARCH_MIN_QUERY_LENGTH: Final[int] = 2
    SEARCH_MAX_RESULTS: Final[int] = 20

    # History pages
    HISTORY_DEFAULT_PAGE_SIZE: Final[int] = 50
    HISTORY_MAX_PAGE_SIZE: Final[int] = 100


# =============================================================================
# Chat Configuration
# =============================================================================


class CHAT_CONFIG:
    """Configuration for chats."""

    MAX_NAME_LENGTH: Final[int] = 100
    MAX_DESCRIPTION_LENGTH: Final[int] = 500

    # A group needs the creator plus at least this many other users
    MIN_GROUP_OTHER_MEMBERS: Final[int] = 2

    # Generated avatar for new groups, formatted with the URL-quoted name
    GROUP_AVATAR_URL: Final[str] = (
        "https://ui-avatars.com/api/?name={name}&background=random&size=200"
    )


# =============================================================================
# Reaction Configuration
# =============================================================================


class REACTION_CONFIG:
    """Configuration for message reactions."""

    # Max characters for a single emoji (compound emojis span several code points)
    MAX_EMOJI_LENGTH: Final[int] = 16


# =============================================================================
# Typing Configuration
# =============================================================================


class TYPING_CONFIG:
    """Configuration for typing indicators."""

    # Cache key prefix; one key per chat holds {user_id: started_at}
    KEY_PREFIX: Final[str] = "typing:chat"
