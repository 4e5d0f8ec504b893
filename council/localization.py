"""Response-language instructions prepended to prompts for non-default locales."""

DEFAULT_LOCALE = "en"

LANGUAGE_INSTRUCTIONS: dict[str, str] = {
    "en": "",
    "es": "Responde en español.",
    "pt": "Responda em português.",
    "fr": "Réponds en français.",
    "de": "Antworte auf Deutsch.",
    "it": "Rispondi in italiano.",
    "pl": "Odpowiedz po polsku.",
    "tr": "Türkçe olarak cevap ver.",
    "ar": "أجب باللغة العربية.",
    "sw": "Jibu kwa Kiswahili.",
    "hi": "कृपया हिंदी में जवाब दें।",
    "bn": "বাংলায় উত্তর দিন।",
    "ur": "براہ کرم اردو میں جواب دیں۔",
    "zh": "请用中文回答。",
    "ja": "日本語で回答してください。",
    "ko": "한국어로 답변해 주세요.",
    "id": "Jawab dalam Bahasa Indonesia.",
    "vi": "Hãy trả lời bằng tiếng Việt.",
    "th": "กรุณาตอบเป็นภาษาไทย",
    "tl": "Sumagot sa Tagalog.",
}


def language_instruction(locale: str | None) -> str:
    """Instruction for ``locale`` ("de", "pt-BR"); empty for the default or an unknown locale."""
    if not locale:
        return ""
    language = locale.replace("_", "-").split("-")[0].lower()
    return LANGUAGE_INSTRUCTIONS.get(language, "")


def localize(prompt: str, instruction: str) -> str:
    return f"{instruction}\n\n{prompt}" if instruction else prompt
