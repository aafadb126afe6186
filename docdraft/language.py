"""Language detection and localized user-facing messages."""

import re

DEFAULT_LANGUAGE = "ru"

LANGUAGE_NAMES = {
    "ru": "Russian",
    "kz": "Kazakh",
    "en": "English",
}

_KAZAKH_LETTERS = re.compile(r"[әғқңөұүіһӘҒҚҢӨҰҮІҺ]")
_KAZAKH_WORDS = re.compile(
    r"(?<!\w)(және|немесе|туралы|бойынша|бастап|дейін|үшін|арқылы|керек|құжат)(?!\w)",
    re.IGNORECASE,
)
_CYRILLIC = re.compile(r"[а-яёА-ЯЁ]")
_LATIN = re.compile(r"[A-Za-z]")

MESSAGES: dict[str, dict[str, str]] = {
    "greeting": {
        "ru": (
            "Здравствуйте! Я ваш ИИ-помощник по документам. Я могу помочь вам "
            "создать нужный документ. Если у вас общие вопросы, лучше задать их "
            "в 'ИИ-Чате'."
        ),
        "kz": (
            "Сәлеметсіз бе! Мен сіздің құжаттар бойынша ЖИ-көмекшіңізбін. Мен "
            "сізге қажетті құжатты жасауға көмектесе аламын. Егер жалпы "
            "сұрақтарыңыз болса, оларды 'ЖИ-Чат' терезесінде қойғаныңыз жөн."
        ),
        "en": (
            "Hello! I am your document assistant. I can help you draft the "
            "document you need. General questions are best asked in the 'AI Chat'."
        ),
    },
    "query_redirect": {
        "ru": (
            "Это похоже на общий вопрос. Для консультаций, пожалуйста, "
            "воспользуйтесь 'ИИ-Чатом'. Здесь я помогаю только с созданием документов."
        ),
        "kz": (
            "Бұл жалпы сұраққа ұқсайды. Кеңес алу үшін 'ЖИ-Чат' терезесін "
            "пайдаланыңыз. Мұнда мен тек құжаттарды жасауға көмектесемін."
        ),
        "en": (
            "This looks like a general question. Please use the 'AI Chat' for "
            "consultations. Here I only help with drafting documents."
        ),
    },
    "clarify": {
        "ru": "Уточните, какой документ вам нужен?",
        "kz": "Қандай құжат керектігін нақтылаңызшы.",
        "en": "Which document do you need?",
    },
    "nothing_to_continue": {
        "ru": "Сейчас нет начатого документа, который можно продолжить.",
        "kz": "Қазір жалғастыруға болатын басталған құжат жоқ.",
        "en": "There is no document in progress to continue.",
    },
    "cancelled": {
        "ru": "Хорошо, заполнение документа отменено.",
        "kz": "Жарайды, құжатты толтыру тоқтатылды.",
        "en": "All right, the document has been cancelled.",
    },
    "template_list_header": {
        "ru": "Вот список доступных документов:",
        "kz": "Міне, қолжетімді құжаттар тізімі:",
        "en": "Here are the available documents:",
    },
    "no_templates": {
        "ru": "Сейчас нет доступных шаблонов документов.",
        "kz": "Қазір қолжетімді құжат үлгілері жоқ.",
        "en": "No document templates are available right now.",
    },
    "start_document": {
        "ru": "Начинаем заполнять документ «{name}».",
        "kz": "«{name}» құжатын толтыруды бастаймыз.",
        "en": "Let's fill in the document \"{name}\".",
    },
    "example_prefix": {
        "ru": "Например",
        "kz": "Мысалы",
        "en": "For example",
    },
    "invalid_answer": {
        "ru": "Не удалось разобрать ответ. Пожалуйста, ответьте ещё раз.",
        "kz": "Жауапты түсіну мүмкін болмады. Қайтадан жауап беріңізші.",
        "en": "I could not understand the answer. Please answer again.",
    },
    "field_skipped": {
        "ru": "Не удалось получить ответ на этот вопрос, поле останется пустым.",
        "kz": "Бұл сұраққа жауап алынбады, өріс бос қалады.",
        "en": "I could not get an answer to this question; the field will stay empty.",
    },
    "document_ready": {
        "ru": "Ваш документ «{name}» готов.",
        "kz": "Сіздің «{name}» құжатыңыз дайын.",
        "en": "Your document \"{name}\" is ready.",
    },
    "template_unavailable": {
        "ru": (
            "Не удалось сгенерировать вопросы для документа. "
            "Попробуйте еще раз или выберите другой документ."
        ),
        "kz": (
            "Құжат үшін сұрақтарды дайындау мүмкін болмады. "
            "Қайталап көріңіз немесе басқа құжатты таңдаңыз."
        ),
        "en": (
            "I could not prepare the questions for this document. "
            "Please try again or choose another document."
        ),
    },
    "try_again": {
        "ru": "Произошла ошибка. Пожалуйста, попробуйте еще раз.",
        "kz": "Қате орын алды. Қайталап көріңізші.",
        "en": "Something went wrong. Please try again.",
    },
    "model_unavailable": {
        "ru": (
            "Извините, сервис сейчас перегружен. "
            "Пожалуйста, повторите запрос немного позже."
        ),
        "kz": (
            "Кешіріңіз, қызмет қазір шамадан тыс жүктелген. "
            "Сұрауды сәл кейінірек қайталаңызшы."
        ),
        "en": "Sorry, the service is overloaded right now. Please try again shortly.",
    },
}


def detect_language(text: str) -> str:
    """Guess the conversation language of a message.

    Kazakh-specific letters or common Kazakh words mean ``kz``, any other
    Cyrillic text is ``ru`` and Latin text is ``en``. Text without letters
    gets the default language.

    Returns:
        One of ``"kz"``, ``"ru"`` or ``"en"``.
    """
    if _KAZAKH_LETTERS.search(text) or _KAZAKH_WORDS.search(text):
        return "kz"
    if _CYRILLIC.search(text):
        return "ru"
    if _LATIN.search(text):
        return "en"
    return DEFAULT_LANGUAGE


def message(key: str, language: str, **values: str) -> str:
    """Look up a localized message, falling back to Russian.

    Returns:
        The formatted message text.
    """
    variants = MESSAGES[key]
    text = variants.get(language) or variants[DEFAULT_LANGUAGE]
    return text.format(**values) if values else text


def language_name(language: str) -> str:
    """English name of a language code, for use inside prompts."""  # noqa: DOC201
    return LANGUAGE_NAMES.get(language, LANGUAGE_NAMES[DEFAULT_LANGUAGE])
