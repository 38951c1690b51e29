from __future__ import annotations

MIN_ANSWER = 0
MAX_ANSWER = 4

# Default wellbeing screening. Each answer: 0 = never ... 4 = almost every day.
QUESTIONS = [
    "Как часто за последние две недели вы чувствовали усталость или упадок сил?",
    "Как часто у вас были проблемы со сном (трудно уснуть, частые пробуждения)?",
    "Как часто вы испытывали головные боли или головокружение?",
    "Как часто вы чувствовали тревогу или напряжение?",
    "Как часто у вас снижался аппетит или наоборот было переедание?",
    "Как часто вам было трудно сосредоточиться на обычных делах?",
]

# (low, high, feedback); inclusive, must cover 0..len(QUESTIONS) * MAX_ANSWER.
SCORE_BANDS = [
    (0, 6, "Низкий уровень жалоб. Продолжайте следить за режимом сна и нагрузкой."),
    (7, 12, "Умеренный уровень жалоб. Обратите внимание на отдых и повторите опрос через пару недель."),
    (13, 18, "Выраженный уровень жалоб. Рекомендуем обсудить самочувствие с терапевтом."),
    (19, 24, "Высокий уровень жалоб. Пожалуйста, обратитесь к врачу в ближайшее время."),
]

ANSWER_SCALE_HINT = (
    f"Ответьте числом от {MIN_ANSWER} до {MAX_ANSWER}: "
    "0 - никогда, 1 - редко, 2 - иногда, 3 - часто, 4 - почти каждый день."
)

RECORD_KIND_TEXT = "text"
RECORD_KIND_IMAGE = "image_text"
RECORD_KIND_PDF = "pdf_text"
RECORD_KIND_QUESTIONNAIRE = "questionnaire"

RECORD_KINDS = [
    RECORD_KIND_TEXT,
    RECORD_KIND_IMAGE,
    RECORD_KIND_PDF,
    RECORD_KIND_QUESTIONNAIRE,
]

RECORD_KIND_DISPLAY = {
    RECORD_KIND_TEXT: "Текст",
    RECORD_KIND_IMAGE: "Изображение",
    RECORD_KIND_PDF: "PDF",
    RECORD_KIND_QUESTIONNAIRE: "Опрос",
}

MEDIA_KIND_IMAGE = "image"
MEDIA_KIND_PDF = "pdf"
MEDIA_KIND_UNSUPPORTED = "unsupported"

MEDIA_KIND_TO_RECORD_KIND = {
    MEDIA_KIND_IMAGE: RECORD_KIND_IMAGE,
    MEDIA_KIND_PDF: RECORD_KIND_PDF,
}

PROFILE_FIELDS = ["age", "gender", "height_cm", "weight_kg"]

PROFILE_FIELD_DISPLAY = {
    "age": "Возраст",
    "gender": "Пол",
    "height_cm": "Рост, см",
    "weight_kg": "Вес, кг",
}

FIRST_SUBMISSION_TEXT = "Это ваш первый загруженный анализ. Пришлите следующий, и я сравню их."
REGISTER_PROMPT_TEXT = "Пользователь не найден. Пожалуйста, начните с команды /start."
ANALYSIS_UNAVAILABLE_TEXT = (
    "Не удалось получить сравнение прямо сейчас. Данные сохранены, попробуйте позже."
)
SCORING_FALLBACK_TEXT = (
    "Спасибо, ответы сохранены. Не удалось рассчитать итог опроса, мы уже разбираемся."
)
