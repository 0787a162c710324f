"""
Maps the free text of an inbound SMS onto a ``MessageAction``.

Precedence, first match wins:
  1. confirmation keyword anywhere in the text (as a whole word or phrase)
  2. exactly "help"
  3. exactly an opt-in keyword
  4. exactly "stop" / "unsubscribe"
  5. anything else is UNKNOWN

"yes" is both a confirmation and an opt-in keyword; confirmation is checked
first, so "yes" always confirms.

Confirmation keywords match as whole words, never as substrings: a plain
substring check would find the "c" inside "unsubscribe" and "subscribe",
and those opt-out and opt-in replies would confirm instead.
"""

import re

from crewcall.services.types import MessageAction

CONFIRMATION_KEYWORDS = (
    "c",
    "confirm",
    "confirmed",
    "yes",
    "y",
    "ok",
    "okay",
    "sure",
    "will be there",
    "i'll be there",
    "ill be there",
)
HELP_KEYWORDS = frozenset({"help"})
OPT_IN_KEYWORDS = frozenset({"start", "subscribe", "yes", "optin", "opt-in"})
OPT_OUT_KEYWORDS = frozenset({"stop", "unsubscribe"})

# A keyword only counts when it is not glued to other letters, so the "c"
# in "unsubscribe" is not a confirmation.
_CONFIRMATION_PATTERN = re.compile(
    r"(?<![\w'])(?:" + "|".join(re.escape(k) for k in CONFIRMATION_KEYWORDS) + r")(?![\w'])"
)


def normalize_message(text: str) -> str:
    return (text or "").strip().lower()


def is_confirmation_message(text: str) -> bool:
    message = normalize_message(text)
    return message in CONFIRMATION_KEYWORDS or bool(_CONFIRMATION_PATTERN.search(message))


def parse_message_action(text: str) -> MessageAction:
    message = normalize_message(text)

    if is_confirmation_message(message):
        return MessageAction.CONFIRMATION
    if message in HELP_KEYWORDS:
        return MessageAction.HELP_REQUEST
    if message in OPT_IN_KEYWORDS:
        return MessageAction.OPT_IN
    if message in OPT_OUT_KEYWORDS:
        return MessageAction.OPT_OUT
    return MessageAction.UNKNOWN
