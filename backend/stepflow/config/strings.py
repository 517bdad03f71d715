# /stepflow/config/strings.py

# Default user-facing text for each response key, so results can carry a
# ready-to-send rendering next to the structured response. Entities are
# substituted with str.format; keys containing "/" are exposed with "_".

RESPONSE_TEXTS = {
    "prompt/type": "Which class would you like to book?",
    "prompt/datetime": "Great! Which session works for you?",
    "prompt/name": "Could I get your first and last name?",
    "prompt/email": "What e-mail address should we use?",
    "confirmation": "You're booked for {type} on {datetime}. See you there! ✨",
    "upcoming/appointments": "You have {number_count} upcoming class(es):{classes}",
    "upcoming/none": "You don't have any upcoming classes.",
    "error/generic": "Sorry, something went wrong on our side. Please try again in a moment.",
}


def render_response(response_key: str, entities: dict) -> str | None:
    template = RESPONSE_TEXTS.get(response_key)
    if template is None:
        return None
    values = {key.replace("/", "_"): value for key, value in entities.items()}
    try:
        return template.format(**values)
    except (KeyError, IndexError):
        return template
