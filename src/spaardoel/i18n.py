"""Interface strings in English and Dutch."""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Tuple

TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "en": {
        "dashboard.title": "My savings garden",
        "goal.saved": "Saved",
        "goal.remaining": "Still to go",
        "stage.seed": "Seed",
        "stage.sprout": "Sprout",
        "stage.small": "Small plant",
        "stage.medium": "Growing plant",
        "stage.large": "Big plant",
        "stage.flowering": "Flowering",
        "stage.fruiting": "Fully grown",
    },
    "nl": {
        "dashboard.title": "Mijn spaartuin",
        "goal.saved": "Gespaard",
        "goal.remaining": "Nog te gaan",
        "stage.seed": "Zaadje",
        "stage.sprout": "Kiemplantje",
        "stage.small": "Klein plantje",
        "stage.medium": "Groeiende plant",
        "stage.large": "Grote plant",
        "stage.flowering": "In bloei",
        "stage.fruiting": "Volgroeid",
    },
}


class Translator:
    """Look up interface strings, falling back to the default locale and then the key."""

    def __init__(self, default_locale: str = "en", *, extra: Optional[Mapping[str, Mapping[str, str]]] = None) -> None:
        self.default_locale = default_locale if default_locale in TRANSLATIONS else "en"
        self._catalog: Dict[str, Dict[str, str]] = {code: dict(strings) for code, strings in TRANSLATIONS.items()}
        for code, strings in (extra or {}).items():
            self._catalog.setdefault(code, {}).update(strings)

    def translate(self, key: str, *, locale: Optional[str] = None) -> str:
        strings = self._catalog.get(locale or self.default_locale, self._catalog[self.default_locale])
        if key in strings:
            return strings[key]
        return self._catalog[self.default_locale].get(key, key)

    def stage_label(self, stage: str, *, locale: Optional[str] = None) -> str:
        return self.translate(f"stage.{stage}", locale=locale)

    def available_locales(self) -> Tuple[str, ...]:
        return tuple(sorted(self._catalog))


__all__ = ["TRANSLATIONS", "Translator"]
