"""
Headline translation through the Google Translate v2 REST API.
"""

import requests

from . import config


class TranslationError(Exception):

    def __init__(self, message, status=500):
        super().__init__(message)
        self.status = status


def translate_texts(q, target: str, source: str = None, api_key: str = None,
                    session=None, timeout: float = config.TRANSLATE_TIMEOUT) -> list:
    """Translate one string or a list of strings into ``target``."""
    api_key = config.GOOGLE_TRANSLATE_API_KEY if api_key is None else api_key
    if not api_key:
        raise TranslationError("Missing GOOGLE_TRANSLATE_API_KEY", status=500)
    if not q or not target:
        raise TranslationError("Missing q or target", status=400)

    items = q if isinstance(q, list) else [q]
    params = [("q", t) for t in items]
    params.append(("target", target))
    if source:
        params.append(("source", source))
    params.append(("format", "text"))
    params.append(("key", api_key))

    http = session or requests
    resp = http.post(config.GOOGLE_TRANSLATE_URL, data=params, timeout=timeout)
    if not resp.ok:
        raise TranslationError(resp.text, status=resp.status_code)

    data = resp.json()
    return [t.get("translatedText", "") for t in (data.get("data") or {}).get("translations", [])]


def translate_headline(text: str, lang: str, **kwargs):
    """Translated headline, or ``None`` to keep the English text."""
    if not lang or lang == "en":
        return None
    try:
        translations = translate_texts(text, lang, **kwargs)
    except (TranslationError, requests.RequestException, ValueError) as e:
        print(f"[translate] falling back to English ({lang}): {e}")
        return None
    return translations[0] if translations and translations[0] else None
