"""
User-facing WhatsApp message strings.

Massif, mountain and place names are *bold*; voice is second person.
"""
from typing import Sequence

HELP_SHORT = "Send a place name, share your location, or browse all massifs."

WELCOME = (
    "Welcome to Conditions! I can send you French avalanche bulletins from Météo France.\n\n"
    "What would you like to do?"
)

HELP = (
    "📋 *Conditions Bot Help*\n\n"
    "*Download* - Get the latest avalanche bulletin for any massif.\n\n"
    "*Subscribe* - Receive automatic bulletin updates when new conditions are published.\n\n"
    f"{HELP_SHORT}\n\n"
    "Send any message to return to the main menu."
)

ERROR = "Something went wrong. Please try again."

MASSIF_NOT_FOUND = "Massif not found. Send a name or browse the list."

LOCATION_NOT_FOUND = "No massif found at your location.\n\nTry a massif name or browse the list."

NO_SUBSCRIPTIONS = "No active subscriptions.\n\nSend a place name or share your location to get started."

SUBSCRIPTION_NOT_FOUND = "Subscription not found."

MORE = "More →"


def multiple_matches(count: int, query: str) -> str:
    return f'{count} massifs match "*{query}*". Which one?'


def no_results_for(query: str) -> str:
    return f'No results for "*{query}*".\n\n{HELP_SHORT}'


def outside_coverage(query: str) -> str:
    return f"*{query}* doesn't appear to be in a massif.\n\n{HELP_SHORT}"


def geocoded_place(place: str, massif_name: str) -> str:
    return (
        f"Looks like *{place}* is in the *{massif_name}* massif.\n"
        f"Sending you the current bulletin for *{massif_name}*."
    )


def choose_mountain(page: int, purpose: str = "") -> str:
    if page > 0:
        return f"Mountain ranges (page {page + 1}):"
    return f"Choose a mountain range{purpose}."


def choose_massif(mountain: str, page: int) -> str:
    if page > 0:
        return f"Massifs in *{mountain}* (page {page + 1}):"
    return f"Choose a massif in *{mountain}*."


def no_massifs_in_mountain(mountain: str) -> str:
    return f"No massifs found in *{mountain}*."


def choose_content(massif_name: str) -> str:
    return f"What content would you like for *{massif_name}*?"


def no_bulletin(massif_name: str) -> str:
    return f"No bulletin available for *{massif_name}* right now."


def no_content(massif_name: str) -> str:
    return (
        f"No content available for *{massif_name}*. The requested data might not be "
        "available from Météo France at this time."
    )


def already_subscribed(massif_name: str) -> str:
    return f"You're already subscribed to *{massif_name}* bulletins."


def subscribe_prompt(massif_name: str) -> str:
    return f"Subscribe to *{massif_name}* bulletins?"


def subscribed_actions(massif_name: str) -> str:
    return f"You're subscribed to *{massif_name}*. What would you like to do?"


def select_content_types(massif_name: str) -> str:
    return f'Select content types for *{massif_name}*. Tap to toggle, then tap "Done - Save".'


def subscribed(massif_name: str) -> str:
    return f"Subscribed to *{massif_name}*! You'll receive bulletin updates automatically."


def subscribed_with_preferences(massif_name: str) -> str:
    return f"Subscribed to *{massif_name}*! Your content preferences have been saved."


def unsubscribed(massif_name: str) -> str:
    return f"Unsubscribed from *{massif_name}*."


def your_subscriptions(names: Sequence[str]) -> str:
    lines = "\n".join(f"• *{name}*" for name in names)
    return f"Your subscriptions:\n\n{lines}\n\nPick one to manage it."


def bulletin_update(massif_name: str) -> str:
    return f"New *{massif_name}* bulletin."


def bulletin_updates(names: Sequence[str]) -> str:
    return "New bulletins for " + ", ".join(f"*{n}*" for n in names) + "."


NO_THANKS = f"No problem. {HELP_SHORT}"

SELECT_AT_LEAST_ONE = "Select at least one content type before saving."
