"""WhatsApp click-to-chat links and phone number helpers."""

import re
from urllib.parse import quote

from growth_game.config.settings import settings

DEFAULT_LEAD_MESSAGE = (
    "Olá {leadName}! 👋\n\n"
    "O {barberName} te indicou para conhecer nossa barbearia! 💈\n\n"
    "Você ganhou uma vantagem especial por ser uma indicação. "
    "Vamos agendar seu primeiro corte?"
)

DEFAULT_CLIENT_MESSAGE = (
    "Olá {leadName}! 👋\n\n"
    "Aqui é o {barberName} da barbearia. 💈\n\n"
    "Passando para lembrar que você pode indicar amigos e ganhar pontos. "
    "Vamos agendar seu próximo corte?"
)

_NON_DIGITS = re.compile(r"\D")


def clean_phone(phone: str) -> str:
    """Strip everything but digits."""
    return _NON_DIGITS.sub("", phone or "")


def build_lead_message(template: str, lead_name: str, barber_name: str) -> str:
    """Fill the {leadName} and {barberName} placeholders of a message template."""
    return template.replace("{leadName}", lead_name).replace("{barberName}", barber_name)


def generate_whatsapp_link(
    lead_name: str,
    lead_phone: str,
    barber_name: str,
    template: str = DEFAULT_LEAD_MESSAGE,
) -> str:
    """
    Build a wa.me link with a pre-filled message.

    The country code is prefixed unless the number already starts with it.
    """
    country_code = settings.whatsapp_default_country_code
    digits = clean_phone(lead_phone)
    if not digits.startswith(country_code):
        digits = f"{country_code}{digits}"

    message = build_lead_message(template, lead_name, barber_name)
    # Match JavaScript's encodeURIComponent
    encoded = quote(message, safe="-_.!~*'()")
    return f"https://wa.me/{digits}?text={encoded}"


def format_phone_number(phone: str) -> str:
    """Format 10 or 11 digit numbers as (DD) XXXXX-XXXX; return others unchanged."""
    digits = clean_phone(phone)
    if len(digits) == 11:
        return f"({digits[:2]}) {digits[2:7]}-{digits[7:]}"
    if len(digits) == 10:
        return f"({digits[:2]}) {digits[2:6]}-{digits[6:]}"
    return phone


def is_valid_phone(phone: str) -> bool:
    """A phone is valid when it has 10 or 11 digits once cleaned."""
    return 10 <= len(clean_phone(phone)) <= 11
