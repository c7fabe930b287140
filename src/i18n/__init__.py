"""
Message translation helpers for arch-updates.

Log and CLI messages are wrapped with ``_()`` so they can be translated via
gettext catalogs shipped under ``locales/``. When no catalog exists for the
requested language the message is returned unchanged.
"""

import gettext
import os
from typing import Optional

DEFAULT_LANGUAGE = "en"

TRANSLATION_DOMAIN = "arch-updates"

# Chosen once per process from the environment
CURRENT_LANGUAGE = os.environ.get("ARCH_UPDATES_LANG", DEFAULT_LANGUAGE)

# Cache for loaded translation objects
TRANSLATIONS = {}


def get_translation(language: Optional[str] = None) -> gettext.NullTranslations:
    """Get (and cache) the translation object for a language."""
    if language is None:
        language = CURRENT_LANGUAGE

    if language not in TRANSLATIONS:
        localedir = os.path.join(os.path.dirname(__file__), "locales")
        TRANSLATIONS[language] = gettext.translation(
            TRANSLATION_DOMAIN, localedir, [language], fallback=True
        )

    return TRANSLATIONS[language]


def _(message: str, language: Optional[str] = None) -> str:
    """Translate a message."""
    return get_translation(language).gettext(message)
